"""Clients for the Koi backend."""

from .koi import KoiGateway
from .models import CallerIdentity

__all__ = ["CallerIdentity", "KoiGateway"]
