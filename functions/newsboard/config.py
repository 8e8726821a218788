"""
Configuration and settings for the newsboard service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_POLL_ROSTER = [
    "WTF (Team Tanisha)",
    "Team Tara",
    "Team Wei-Rong",
    "Sugar Gliders (Team Sara)",
    "Team Emily",
    "Team Nikki",
    "Ctrl+Alt+Elite (Team Michelle)",
    "Team Isabelle",
    "Team Josie",
    "Free Agents Team Lana",
    "Debby 2.0 (Team Debby)",
    "Team Dawn",
    "Team Aditi",
    "Team Devisha",
]


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )

    # Database (Postgres expected; the hosted backend exposes one)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible media bucket
    media_bucket: Optional[str] = Field(default=None)
    media_endpoint: Optional[str] = Field(default=None)
    media_region: Optional[str] = Field(default=None)
    media_public_base_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    max_upload_bytes: int = Field(default=50 * 1024 * 1024)

    # Identity provider: HS256 secret used to sign access tokens
    auth_jwt_secret: Optional[str] = Field(default=None)
    auth_jwt_audience: str = Field(default="authenticated")

    # Site-wide password gate; disabled when gate_password is unset
    gate_password: Optional[str] = Field(default=None)
    gate_secret: Optional[str] = Field(default=None)
    gate_token_ttl_minutes: int = Field(default=12 * 60)

    # The poll shown on the leaderboard
    poll_slug: str = Field(default="ns-cup-2025-07")
    poll_title: str = Field(default="Best Team Competition")
    poll_description: str = Field(default="Vote for your favorite team!")
    poll_roster: list[str] = Field(default_factory=lambda: list(DEFAULT_POLL_ROSTER))

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
