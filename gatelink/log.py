import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# extra= keys copied onto the JSON line when present
CONTEXT_FIELDS = ("link_id", "session_id", "step", "ad_id", "backend", "path")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Подключает JSON-вывод в stdout к логгеру `gatelink`."""
    logger = logging.getLogger("gatelink")
    logger.setLevel(level.upper())
    if logger.handlers:
        return logger  # create_app runs once per test

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
