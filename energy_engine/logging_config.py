"""
Logging Configuration
Console and rotating-file logging for the energy engine, in JSON or text
"""
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List

# Client libraries that log every HTTP request at INFO/DEBUG
NOISY_LOGGERS = ("influxdb_client", "urllib3")

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "extra_fields", None) or {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; query context fields are merged in"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload.update(_context(record))
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """
    Human-readable line format; context fields follow the message as key=value

    Example:
        2024-03-15 01:15:02 | INFO     | energy_engine.engine | Energy query ... | room=201 readings=96
    """

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if context:
            line += " | " + " ".join(f"{key}={value}" for key, value in context.items())
        return line


def _build_handlers(log_config: Dict[str, Any]) -> List[logging.Handler]:
    # stderr keeps stdout free for report output
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    log_file = log_config.get("file")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_path,
                maxBytes=log_config.get("max_bytes", DEFAULT_MAX_BYTES),
                backupCount=log_config.get("backup_count", 5),
            )
        )
    return handlers


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Configure the root logger from the 'logging' section of the config

    Keys: level (default INFO), format ('json' or 'text', default text),
    file (optional rotating log file), max_bytes, backup_count.
    """
    log_config = config.get("logging", {}) or {}
    level_name = str(log_config.get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    log_format = str(log_config.get("format", "text")).lower()
    formatter = JSONFormatter() if log_format == "json" else TextFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []
    for handler in _build_handlers(log_config):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    root_logger.debug(
        f"Logging configured: level={level_name}, format={log_format}, "
        f"handlers={len(root_logger.handlers)}"
    )


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log message with structured context fields attached to the record"""
    logger.log(level, message, extra={"extra_fields": context})
