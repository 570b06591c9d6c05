"""Configuration settings for the auction ledger service.

Values come from the environment (or a local ``.env`` file). The defaults
mirror a development setup: a local MongoDB, placeholder shared secrets and
an SMTP relay that has to be configured before winner emails go out.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Auction ledger settings from environment."""

    # Storage
    storage_backend: Literal["mongo", "memory"] = "mongo"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "auction"
    mongodb_transactions: bool = True  # needs a replica set

    # Shared static tokens
    auction_public_key: str = "PUBLIC_KEY_FROM_BACKEND"
    auction_admin_secret: str = "REPLACE_WITH_STRONG_SECRET"

    # Winner email
    auction_email_from: str = "no-reply@example.com"
    smtp_host: str = "smtp.example.com"
    smtp_port: int = 587
    smtp_user: str = "user"
    smtp_pass: str = "password"
    smtp_timeout_seconds: float = 30.0

    # HTTP
    host: str = "0.0.0.0"
    port: int = 4000
    cors_origins: list[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
