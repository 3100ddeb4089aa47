"""
Logging setup for the client and its scripts.
Supports both human-readable and JSON formats; records can carry client
context (session uid, channel, connection state, reconnect attempt).
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple
from transmit_client.config import Settings, settings as default_settings

ROOT_LOGGER_NAME = "transmit-client"

# Record attributes promoted to structured fields when present
CONTEXT_FIELDS = ("uid", "channel", "state", "attempt")


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Client context attached to ``record`` through ``extra`` or a bound logger."""
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs records that can be parsed by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_data.update(record_context(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Colored formatter for terminal logging.
    Client context is appended as ``key=value`` pairs after the message.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        # Work on a copy so other handlers keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{self.RESET}"

        context = record_context(record)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            record.msg, record.args = f"{record.getMessage()} [{pairs}]", None
        return super().format(record)


def setup_logging(config: Optional[Settings] = None) -> logging.Logger:
    """
    Configure logging for a process embedding the client.
    Returns the client's root logger.
    """
    config = config or default_settings
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    if config.LOG_JSON:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = ColoredFormatter(config.LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class ClientLogger(logging.LoggerAdapter):
    """
    Logger bound to a client session.

    Bound context is merged with the ``extra`` of each call; per-call values
    win, so ``extra={"channel": ...}`` can be added on top of the bound uid.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "ClientLogger":
        return ClientLogger(self.logger, {**self.extra, **context})


def bind_logger(logger: logging.Logger, **context: Any) -> ClientLogger:
    """Wrap ``logger`` so every record carries ``context``."""
    return ClientLogger(logger, context)
