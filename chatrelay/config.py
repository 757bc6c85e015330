"""
Application configuration using Pydantic Settings.
"""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # "AI", "HUMAN", or anything else for a random pick per session
    session_mode: str = "mixed"
    system_prompt: Optional[str] = None

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    # Seconds; None leaves the upstream call unbounded
    gemini_timeout: Optional[float] = None

    basic_auth_user: Optional[str] = None
    basic_auth_pass: Optional[str] = None

    cors_origin: str = "*"
    log_level: str = "INFO"
    port: int = 3000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def auth_enabled(self) -> bool:
        return bool(self.basic_auth_user and self.basic_auth_pass)


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()
