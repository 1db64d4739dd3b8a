from pathlib import Path
from typing import Optional, Set
from urllib.parse import urlparse
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import os


def normalize_origin(value: str) -> Optional[str]:
    """Reduce a configured URL to the ``scheme://host[:port]`` a browser sends as Origin."""
    parsed = urlparse(value.strip())
    if not parsed.scheme or not parsed.hostname:
        return None
    host = parsed.hostname if parsed.port is None else f"{parsed.hostname}:{parsed.port}"
    return f"{parsed.scheme}://{host}"


def _build_database_url() -> str:
    explicit = os.getenv("DATABASE_URL", "").strip()
    if explicit:
        return explicit
    # State lives only as long as the process unless a URL is provided.
    return "sqlite://"


DEFAULT_RESERVED_USERNAMES = (
    "admin;administrator;support;moderator;mod;system;bot;official;"
    "staff;help;root;owner;ochat;team;service;security"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = _build_database_url()

    # Presence
    ACTIVE_WINDOW_SECONDS: int = 60
    HEARTBEAT_INTERVAL_SECONDS: int = 20

    # Uploads
    UPLOAD_DIR: str = "./uploads"
    FILE_TTL_HOURS: int = 24
    FILE_SWEEP_INTERVAL_SECONDS: int = 300
    MAX_IMAGE_BYTES: int = 2 * 1024 * 1024
    MAX_FILE_BYTES: int = 5 * 1024 * 1024

    # Login rules
    USERNAME_MIN_LENGTH: int = 2
    USERNAME_MAX_LENGTH: int = 20
    # Semicolon-separated, matched case-insensitively
    # Example: RESERVED_USERNAMES=admin;root;system
    RESERVED_USERNAMES: str = DEFAULT_RESERVED_USERNAMES

    POLL_ALLOW_REVOTE: bool = False

    ADMIN_PASSWORD: str = "admin123"

    # Extra CORS origins, comma-separated
    ALLOWED_ORIGINS: str = ""

    @model_validator(mode="after")
    def _check_heartbeat(self) -> "Settings":
        if self.ACTIVE_WINDOW_SECONDS <= 0:
            raise ValueError("ACTIVE_WINDOW_SECONDS must be positive")
        if self.HEARTBEAT_INTERVAL_SECONDS * 2 >= self.ACTIVE_WINDOW_SECONDS:
            raise ValueError(
                "HEARTBEAT_INTERVAL_SECONDS must be under half of ACTIVE_WINDOW_SECONDS"
            )
        return self

    @property
    def reserved_usernames(self) -> Set[str]:
        return {
            name.strip().lower()
            for name in self.RESERVED_USERNAMES.split(";")
            if name.strip()
        }

    @property
    def upload_path(self) -> Path:
        return Path(self.UPLOAD_DIR)

    @property
    def extra_origins(self) -> list[str]:
        origins = (normalize_origin(o) for o in self.ALLOWED_ORIGINS.split(",") if o.strip())
        return [o for o in origins if o]


settings = Settings()
