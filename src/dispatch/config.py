"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Dispatch API"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Mapping provider
    maps_provider: Literal["google", "osrm"] = Field(
        default="google",
        description="Which routing backend answers origin/destination lookups.",
    )
    maps_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the routing backend. Defaults to the public Google Directions endpoint.",
    )
    maps_api_key: Optional[str] = Field(default=None, description="API key for Google Directions.")
    maps_profile: Literal["driving", "driving-hgv", "bike", "foot"] = Field(
        default="driving",
        description="OSRM profile used when the provider is 'osrm'.",
    )
    maps_timeout_seconds: float = Field(default=5.0, gt=0.0)
    maps_max_retries: int = Field(default=0, ge=0)
    maps_backoff_seconds: float = Field(default=0.5, ge=0.0)

    # Pricing
    drone_base_fare: float = Field(default=2.0, ge=0.0)
    drone_rate_per_km: float = Field(default=0.5, ge=0.0)
    robot_base_fare: float = Field(default=0.6, ge=0.0)
    robot_rate_per_km: float = Field(default=0.4, ge=0.0)
    peak_multiplier: float = Field(default=1.2, ge=1.0)
    peak_windows: tuple[str, ...] = Field(
        default=("08:00-10:00", "17:00-19:00"),
        description="Inclusive HH:MM-HH:MM windows with surcharged pricing.",
    )
    pricing_timezone: str = Field(
        default="UTC",
        description="IANA timezone used to classify request times as peak or off-peak.",
    )

    # Carrying envelopes
    drone_max_weight_kg: float = Field(default=5.0, gt=0.0)
    drone_max_dimension_cm: float = Field(default=40.0, gt=0.0)
    robot_max_weight_kg: float = Field(default=30.0, gt=0.0)
    robot_max_dimension_cm: float = Field(default=100.0, gt=0.0)

    # Quotes
    quote_ttl_seconds: int = Field(default=900, ge=1)

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    # Payment
    stripe_api_key: Optional[str] = Field(default=None, description="Secret key for Stripe payment intents.")
    stripe_base_url: str = "https://api.stripe.com"
    payment_currency: str = "usd"
    payment_timeout_seconds: float = Field(default=10.0, gt=0.0)

    @field_validator("frontend_allowed_origins", "peak_windows", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
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

    @field_validator("peak_windows")
    @classmethod
    def _check_peak_windows(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for window in value:
            start, sep, end = window.partition("-")
            if not sep:
                raise ValueError(f"Peak window '{window}' must look like HH:MM-HH:MM.")
            for part in (start, end):
                hours, _, minutes = part.strip().partition(":")
                if not (hours.isdigit() and minutes.isdigit()):
                    raise ValueError(f"Peak window '{window}' must look like HH:MM-HH:MM.")
                if int(hours) > 23 or int(minutes) > 59:
                    raise ValueError(f"Peak window '{window}' is outside the day.")
        return value


settings = Settings()
