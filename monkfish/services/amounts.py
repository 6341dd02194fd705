import re
from decimal import Decimal, InvalidOperation
from typing import Optional

_AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$")


def parse_positive_amount(text: str, max_decimals: int = 9) -> Optional[Decimal]:
    """Parse a plain decimal amount such as ``0.05``; None unless it is > 0 and fits ``max_decimals``."""
    raw = (text or "").strip()
    if not _AMOUNT_RE.fullmatch(raw):
        return None

    _, _, fraction = raw.partition(".")
    if len(fraction) > max_decimals:
        return None

    try:
        amount = Decimal(raw)
    except InvalidOperation:
        return None
    return amount if amount > 0 else None
