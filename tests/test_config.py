import logging
from datetime import timedelta

import pytest

from gatelink.config import DEFAULT_DATABASE_URL, Settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "GATELINK_DATABASE_URL",
        "GATELINK_STORAGE",
        "GATELINK_SESSION_TTL_MINUTES",
        "GATELINK_ADMIN_PASSWORD",
        "GATELINK_ADMIN_TOKEN_TTL_MINUTES",
        "GATELINK_SEED_DEMO",
        "GATELINK_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings.from_env()

    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.storage_backend == "sql"
    assert settings.session_ttl == timedelta(minutes=30)
    assert settings.admin_token_ttl == timedelta(hours=12)
    assert settings.seed_demo is True
    assert settings.log_level == "INFO"
    # generated when not configured
    assert len(settings.admin_password) >= 16


def test_reads_environment(clean_env):
    clean_env.setenv("GATELINK_DATABASE_URL", "sqlite://")
    clean_env.setenv("GATELINK_STORAGE", "Memory")
    clean_env.setenv("GATELINK_SESSION_TTL_MINUTES", "15")
    clean_env.setenv("GATELINK_ADMIN_PASSWORD", "hunter2")
    clean_env.setenv("GATELINK_SEED_DEMO", "false")
    clean_env.setenv("GATELINK_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.database_url == "sqlite://"
    assert settings.storage_backend == "memory"
    assert settings.session_ttl == timedelta(minutes=15)
    assert settings.admin_password == "hunter2"
    assert settings.seed_demo is False
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"storage_backend": "redis"},
        {"session_ttl_minutes": 0},
        {"admin_token_ttl_minutes": -5},
    ],
)
def test_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_generated_password_is_logged(clean_env):
    handler = ListHandler()
    logger = logging.getLogger("gatelink.config")
    logger.addHandler(handler)
    try:
        settings = Settings.from_env()
    finally:
        logger.removeHandler(handler)

    messages = [record.getMessage() for record in handler.records]
    assert any(settings.admin_password in message for message in messages)
    assert not any(hasattr(record, "admin_password") for record in handler.records)


def test_configured_password_is_not_logged(clean_env):
    clean_env.setenv("GATELINK_ADMIN_PASSWORD", "hunter2")
    handler = ListHandler()
    logger = logging.getLogger("gatelink.config")
    logger.addHandler(handler)
    try:
        Settings.from_env()
    finally:
        logger.removeHandler(handler)

    assert handler.records == []
