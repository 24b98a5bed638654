from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Any, ClassVar
import json
from pathlib import Path
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", case_sensitive=True)

    API_V1_STR: str = "/api/v1"

    # Use an absolute path so running the app from different directories
    # (e.g., repo root or backend/) always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'wandernest.db'}"

    # Redis connection URL for match and metrics caching.
    # Empty, "none", "disabled" or "false" turns caching off.
    REDIS_URL: str = "redis://localhost:6379/0"

    # CORS origins
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    CORS_ALLOW_ALL: bool = False

    # Base frontend URL used in email links
    FRONTEND_URL: str = "http://localhost:3000"

    # SMTP email settings
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "no-reply@wandernest.local"

    # Email Dev Mode: log outgoing mail instead of delivering when no SMTP
    # credentials are configured.
    EMAIL_DEV_MODE: bool = True

    # Shared secret for admin-only routes; empty disables them.
    ADMIN_API_TOKEN: str = ""

    LOG_LEVEL: str = "INFO"

    # Matching
    MATCH_LIMIT: int = 4
    MATCH_CACHE_TTL: int = 300  # seconds
    MAX_SELECTED_GUIDES: int = 4

    # Tourist requests stay open for this many days before expiring
    REQUEST_EXPIRY_DAYS: int = 7

    # Reviews
    MAX_REVIEW_TEXT_LENGTH: int = 500
    STUDENT_METRICS_CACHE_TTL: int = 1800  # seconds

    @field_validator("CORS_ORIGINS", mode="before")
    def split_origins(cls, v: Any) -> list[str]:
        """Parse comma-separated or JSON list of origins from environment."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("ADMIN_API_TOKEN", "FRONTEND_URL", "REDIS_URL", mode="before")
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def allow_all_if_requested(cls, values: "Settings") -> "Settings":
        if values.CORS_ALLOW_ALL:
            values.CORS_ORIGINS = ["*"]
        return values


def load_settings() -> "Settings":
    return Settings(_env_file=os.getenv("ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")))


settings = load_settings()


def _dedupe(seq: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for item in seq:
        key = item.strip()
        if not key or key in seen:
            continue
        seen.add(key)
        ordered.append(key)
    return ordered


_DEV_FRONTEND_FALLBACKS = [
    "http://localhost:3000",
    "http://localhost:5173",
]


def _collect_frontend_origins() -> list[str]:
    origins: list[str] = []
    origins.extend(settings.CORS_ORIGINS or [])
    base = (settings.FRONTEND_URL or "").strip()
    if base:
        origins.append(base.rstrip("/"))
    origins.extend(_DEV_FRONTEND_FALLBACKS)
    return _dedupe(origins)


FRONTEND_ORIGINS = _collect_frontend_origins()


def _redis_url() -> str:
    env_url = os.getenv("REDIS_URL")
    if env_url:
        return env_url.strip()
    return settings.REDIS_URL


REDIS_URL = _redis_url()
