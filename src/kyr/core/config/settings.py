"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Know Your Rights server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: the server carries encounter locations and contact
    # details and has no auth layer of its own.
    kyr_host: str = "127.0.0.1"
    kyr_port: int = 8001
    kyr_log_level: str = "info"
    kyr_allow_insecure_bind: bool = False

    # Text generation (encounter summaries, rights scripts)
    llm_provider: Literal["anthropic", "openai", "mock"] = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    openai_base_url: str = ""
    llm_timeout_s: float = 20.0

    # Storage
    db_path: str = "~/.kyr/rights.db"
    encryption_key: str = ""

    # Location
    geocoder: Literal["nominatim", "offline"] = "offline"
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    geocoder_user_agent: str = "kyr-rights/0.1"
    location_timeout_s: float = 10.0
    location_maximum_age_s: float = 60.0

    # Notification channels. Unset credentials fall back to log-only delivery.
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    sendgrid_api_key: str = ""
    alert_from_email: str = ""

    # Domain
    default_jurisdiction: str = "CA"


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
