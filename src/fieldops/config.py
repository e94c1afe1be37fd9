"""Application configuration and settings management."""

import json
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDOPS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Field Operations Engine"
    api_prefix: str = "/api"
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=("http://localhost:8081", "http://127.0.0.1:8081"),
        description="Permitted web origins for the presentation layer (CORS).",
    )
    api_base_url: str = Field(
        default="http://localhost:8000/api/",
        description="Base URL of the field-sales REST backend.",
    )
    auth_scheme: str = Field(default="token", description="Scheme used in the Authorization header.")
    request_timeout_seconds: float = Field(default=10.0, gt=0.0)

    store_file: Path = Field(default=Path(".fieldops/state.json"))
    credentials_file: Path = Field(default=Path(".fieldops/credentials.json"))

    unauthenticated_route: str = "Login"

    # Location
    geocode_provider: Literal["google", "nominatim", "none"] = "google"
    geocode_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    google_api_key: Optional[str] = None
    nominatim_url: str = "https://nominatim.openstreetmap.org/reverse"
    nominatim_user_agent: str = "fieldops/0.1.0 (reverse-geocode)"
    geocode_timeout_seconds: float = Field(default=5.0, gt=0.0)
    location_permission: Literal["granted", "denied", "undetermined"] = "undetermined"
    location_permission_grantable: bool = Field(
        default=True,
        description="Whether an undetermined permission is granted when requested.",
    )
    device_latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    device_longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    strict_location_on_startup: bool = False

    # Proximity
    proximity_timeout_seconds: float = Field(default=3.0, ge=2.0, le=4.0)

    # Visits
    remark_min_length: int = Field(default=5, ge=1)
    remark_max_length: int = Field(default=500, ge=1)

    # Onboarding
    farmer_create_timeout_seconds: Optional[float] = Field(default=10.0, gt=0.0)
    dealer_create_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Unbounded when unset.",
    )
    otp_timeout_seconds: float = Field(default=10.0, gt=0.0)
    max_open_onboarding: int = Field(default=32, ge=1)

    # Idempotent read retries
    read_retry_attempts: int = Field(default=2, ge=0, le=2)
    read_retry_backoff_seconds: float = Field(default=1.0, ge=0.0)
    read_retry_max_backoff_seconds: float = Field(default=30.0, ge=0.0)

    @field_validator("store_file", "credentials_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_origins(cls, value: Any) -> tuple[str, ...]:
        """Accept a tuple, a list, a JSON array or a comma-separated string."""
        if isinstance(value, (tuple, list)):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except json.JSONDecodeError:
                pass
            return tuple(item.strip() for item in value.split(",") if item.strip())
        return tuple()

    @field_validator("api_base_url", mode="after")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        # relative request paths are joined onto the base URL
        return value if value.endswith("/") else f"{value}/"

    def create_timeout(self, entity_type: str) -> Optional[float]:
        """Create-call timeout for an entity type; ``None`` means unbounded."""
        if entity_type == "dealer":
            return self.dealer_create_timeout_seconds
        return self.farmer_create_timeout_seconds


settings = Settings()
