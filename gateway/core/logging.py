import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

security_logger = logging.getLogger("gateway.security")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def configure_logging(level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    logging.basicConfig(
        level=_LEVELS.get(level.lower(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # httpx logs every upstream request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def log_security_event(level: str, event: str, **details: Any) -> None:
    """Emit one ``[SECURITY]`` line with the event details serialized as JSON."""
    payload = {"timestamp": datetime.now(timezone.utc).isoformat(), **details}
    security_logger.log(
        _LEVELS.get(level.lower(), logging.INFO),
        "[SECURITY] %s: %s",
        event,
        json.dumps(payload, default=str),
    )
