from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./data/gatelink.db"
STORAGE_BACKENDS = ("sql", "memory")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    storage_backend: str = "sql"
    session_ttl_minutes: int = 30
    admin_password: str = ""
    admin_token_ttl_minutes: int = 720
    seed_demo: bool = True
    log_level: str = "INFO"

    def __post_init__(self):
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown storage backend '{self.storage_backend}', expected one of {STORAGE_BACKENDS}"
            )
        if self.session_ttl_minutes <= 0:
            raise ValueError("session_ttl_minutes must be positive")
        if self.admin_token_ttl_minutes <= 0:
            raise ValueError("admin_token_ttl_minutes must be positive")

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(minutes=self.session_ttl_minutes)

    @property
    def admin_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.admin_token_ttl_minutes)

    @classmethod
    def from_env(cls) -> "Settings":
        password = os.getenv("GATELINK_ADMIN_PASSWORD")
        if not password:
            password = secrets.token_urlsafe(16)
            logger.warning("GATELINK_ADMIN_PASSWORD is not set; generated admin password: %s", password)

        return cls(
            database_url=os.getenv("GATELINK_DATABASE_URL", DEFAULT_DATABASE_URL),
            storage_backend=os.getenv("GATELINK_STORAGE", "sql").strip().lower(),
            session_ttl_minutes=int(os.getenv("GATELINK_SESSION_TTL_MINUTES", "30")),
            admin_password=password,
            admin_token_ttl_minutes=int(os.getenv("GATELINK_ADMIN_TOKEN_TTL_MINUTES", "720")),
            seed_demo=_env_bool("GATELINK_SEED_DEMO", "true"),
            log_level=os.getenv("GATELINK_LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
