import logging
import os

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

# Issued user tokens are always reused for at least this long
MIN_TOKEN_TTL_SECONDS = 60

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the millisecond timeout variable used by older deployments."""

        super().model_post_init(__context)

        if "HTTP_TIMEOUT_SECONDS" not in os.environ:
            legacy_ms = os.getenv("HTTP_TIMEOUT_MS")
            if legacy_ms:
                try:
                    timeout_ms = float(legacy_ms)
                except ValueError:
                    timeout_ms = 0.0
                if timeout_ms > 0:
                    object.__setattr__(self, "http_timeout_seconds", timeout_ms / 1000)
                else:
                    logger.warning(
                        f"Ignoring HTTP_TIMEOUT_MS={legacy_ms!r}, keeping {self.http_timeout_seconds}s timeout"
                    )

    @field_validator("koi_user_token_ttl_sec")
    @classmethod
    def clamp_token_ttl(cls, value: int) -> int:
        return max(MIN_TOKEN_TTL_SECONDS, value)

    log_level: str = Field(default="INFO", description="Logging level")

    # Koi backend
    koi_api_url: str = Field(
        default="",
        description="Base URL of the Koi trading/wallet backend",
    )
    koi_auth_token_path: str = Field(
        default="/api/auth/token",
        description="Path of the per-user token issuance endpoint",
    )
    koi_user_token_ttl_sec: int = Field(
        default=900,
        description="How long issued user tokens are reused before re-issuing",
    )
    bot_id: str = Field(default="", description="Bot identifier sent as x-bot-id")
    koi_retry_base_delay_ms: int = Field(default=250, ge=0, description="Fixed part of the retry backoff")
    koi_retry_jitter_ms: int = Field(default=250, ge=0, description="Random part of the retry backoff")

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=8.0, gt=0, description="Timeout for every outbound request")

    # Token directory (Solana token list + market data fallback)
    token_list_url: str = Field(
        default="https://token.jup.ag/all",
        description="Public token list feed",
    )
    token_directory_ttl_seconds: int = Field(
        default=6 * 60 * 60,
        description="TTL of the symbol -> mint mapping",
    )
    token_directory_retry_seconds: int = Field(
        default=60,
        description="Minimum wait before retrying a failed token list fetch",
    )
    market_data_base_url: str = Field(
        default="https://api.dexscreener.com/latest/dex",
        description="Base URL of the public market-data API",
    )
    market_data_chain: str = Field(
        default="solana",
        description="Chain id used to filter market-data search results",
    )

    # Command throttling
    command_cooldown_ms: int = Field(default=1500, ge=0, description="Per-user-per-action cooldown")


# Global settings instance
settings = Settings()
