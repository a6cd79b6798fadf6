"""
Application settings for the Tessera backend.
Values come from environment variables, optionally loaded from a ``.env`` file.
"""

import re
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def ensure_http_url(url: Optional[str]) -> str:
    """
    Normalize a base URL: prefix ``https://`` when the scheme is missing and
    strip trailing slashes. Empty values stay empty.
    """
    if not url:
        return ""
    trimmed = url.strip()
    if not trimmed:
        return ""
    if not _SCHEME_RE.match(trimmed):
        trimmed = f"https://{trimmed}"
    return trimmed.rstrip("/")


class Settings(BaseSettings):
    """Runtime configuration."""

    # Service
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_VERSION: str = "2.0.0"

    # Database
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "tessera"

    # Content store (Pinata / IPFS)
    PINATA_JWT: Optional[str] = None
    PINATA_UPLOAD_URL: str = "https://uploads.pinata.cloud/v3"
    PINATA_GATEWAY_URL: str = "https://gateway.pinata.cloud"
    PUBLIC_IPFS_GATEWAY: Optional[str] = None
    UPLOAD_TIMEOUT: float = Field(default=60.0, gt=0)
    MAX_UPLOAD_SIZE: int = Field(default=20 * 1024 * 1024, gt=0)

    # Frontend used for verification links
    FRONTEND_URL: Optional[str] = None

    # Ledger minting service
    LEDGER_API_URL: str = "https://tessera-blockchain.blokislabs.com/api/certificates/mint"
    LEDGER_API_KEY: Optional[str] = None
    LEDGER_TIMEOUT: float = Field(default=120.0, gt=0)
    PREFLIGHT_TIMEOUT: float = Field(default=15.0, gt=0)
    BLOCKCHAIN_NAME: str = "avalanche"
    AVALANCHE_EXPLORER_URL: str = "https://testnet.snowtrace.io"
    ARBITRUM_EXPLORER_URL: str = "https://sepolia.arbiscan.io"

    # Anchoring payload defaults, used when the recipient or institution
    # record does not carry a value
    DEFAULT_STUDENT_ID: str = "550e8400-e29b-41d4-a716-446655440000"
    DEFAULT_STUDENT_EMAIL: str = "estudiante@email.com"
    DEFAULT_WALLET_ADDRESS: str = "0xEe1001B535826EDc4247E7f3a024dDc145A20bdb"
    DEFAULT_INSTITUTION_NAME: str = "Blokis Academy"
    DEFAULT_INSTITUTION_LEGAL_ID: str = "RUC-20123456789"
    DEFAULT_INSTITUTION_ADDRESS: str = "Ciudad de México, México"
    DEFAULT_INSTITUTION_WEBSITE: str = "https://blokis.com/"
    DEFAULT_GRADE: str = "A+"
    DEFAULT_CREDITS: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator(
        "PINATA_UPLOAD_URL",
        "PINATA_GATEWAY_URL",
        "AVALANCHE_EXPLORER_URL",
        "ARBITRUM_EXPLORER_URL",
        mode="after",
    )
    @classmethod
    def _normalize_required_url(cls, value: str) -> str:
        return ensure_http_url(value)

    @field_validator("PUBLIC_IPFS_GATEWAY", "FRONTEND_URL", mode="after")
    @classmethod
    def _normalize_optional_url(cls, value: Optional[str]) -> Optional[str]:
        return ensure_http_url(value) or None

    @property
    def gateway_url(self) -> str:
        return self.PINATA_GATEWAY_URL

    @property
    def public_gateway_url(self) -> str:
        """Gateway written into NFT metadata; falls back to the Pinata gateway."""
        return self.PUBLIC_IPFS_GATEWAY or self.PINATA_GATEWAY_URL

    @property
    def frontend_url(self) -> str:
        """Frontend base URL, empty string when not configured."""
        return self.FRONTEND_URL or ""


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
