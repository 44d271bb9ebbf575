"""
Logging setup: JSON lines when deployed, plain text for local runs and tests

Loggers come from ``get_logger`` and carry static context (``domain="d1"``)
into every record, where the JSON formatter emits it as top-level keys.
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple

from pythonjsonlogger import jsonlogger

from core.config import Settings, get_settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Client libraries log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "google.auth")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Adds app, environment and level metadata to each JSON record"""

    def __init__(self, *args, settings: Optional[Settings] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.settings = settings or get_settings()

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record["app"] = self.settings.app_name
        log_record["environment"] = self.settings.environment
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Replace root handlers with a single stdout handler in the configured format"""
    settings = settings or get_settings()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper()))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(CustomJsonFormatter("%(level)s %(name)s %(message)s", settings=settings))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.database_echo else logging.WARNING)


class LoggerAdapter(logging.LoggerAdapter):
    """Merges the bound context into each call's ``extra``; call-site keys win"""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Get a logger bound to static context

    Example:
        logger = get_logger(__name__, domain="d1")
        logger.warning("Unknown currency", extra={"currency": "XYZ"})
    """
    return LoggerAdapter(logging.getLogger(name), context)


setup_logging()
