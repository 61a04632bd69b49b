"""Application configuration and settings management."""

from datetime import time
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTETRACK_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Route Tracking API"
    api_prefix: str = "/api"

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    mapbox_access_token: Optional[str] = Field(
        default=None,
        description="Mapbox access token used for Directions requests.",
    )
    mapbox_base_url: str = Field(default="https://api.mapbox.com")
    mapbox_profile: Literal["driving", "driving-traffic", "walking", "cycling"] = Field(
        default="driving",
        description="Mapbox routing profile used when computing travel times.",
    )
    mapbox_max_retries: int = Field(default=3, ge=0)
    mapbox_backoff_seconds: float = Field(default=1.0, ge=0.0)
    mapbox_timeout_seconds: float = Field(default=30.0, gt=0.0)

    resend_api_key: Optional[str] = Field(default=None, description="API key for the Resend email service.")
    resend_base_url: str = Field(default="https://api.resend.com")
    default_from_email: str = Field(default="noreply@routenu.nl")
    webhook_timeout_seconds: float = Field(default=10.0, gt=0.0)

    default_departure_time: str = Field(
        default="08:00",
        description="Planned departure (HH:MM) used while a route has not been started.",
    )
    default_service_time_minutes: float = Field(
        default=5.0,
        ge=0.0,
        description="Dwell time at every stop when the owner has not configured one.",
    )
    display_timezone: Optional[str] = Field(
        default=None,
        description="IANA zone that stored timestamps are converted to before display (e.g. Europe/Amsterdam).",
    )
    live_poll_interval_seconds: int = Field(default=10, ge=1)
    public_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the web client, used to build live tracking links.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("default_departure_time")
    @classmethod
    def _validate_clock(cls, value: str) -> str:
        parse_clock(value)
        return value.strip()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


def parse_clock(value: str) -> time:
    """Parse an ``HH:MM`` string into a :class:`datetime.time`."""
    try:
        hours, minutes = (int(part) for part in value.strip().split(":"))
        return time(hours, minutes)
    except (ValueError, AttributeError) as exc:
        raise ValueError(f"Invalid clock time '{value}', expected HH:MM.") from exc


settings = Settings()
