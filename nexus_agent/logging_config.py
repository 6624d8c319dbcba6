"""
Logging configuration for the agent: size-capped log file plus console echo
when running interactively. Credentials are masked in every record.
"""

import logging
import logging.config
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Set

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_SECRETS: Set[str] = set()


def mask_secrets(*values: Optional[str]) -> None:
    """Register values that must never appear in log output."""
    for value in values:
        if value and len(value) >= 4:
            _SECRETS.add(value)


class SecretMaskingFilter(logging.Filter):
    """Filter that replaces registered secrets with asterisks."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not _SECRETS:
            return True
        message = record.getMessage()
        masked = message
        for secret in _SECRETS:
            masked = masked.replace(secret, "***")
        if masked != message:
            record.msg = masked
            record.args = ()
        return True  # Never drop records


class SizeCappedFileHandler(logging.FileHandler):
    """
    Append-only file handler that truncates the file once it grows past
    ``max_bytes``. No backups are kept.
    """

    def __init__(self, filename: str, max_bytes: int = 10 * 1024 * 1024, encoding: str = "utf-8"):
        Path(filename).parent.mkdir(parents=True, exist_ok=True)
        super().__init__(filename, mode="a", encoding=encoding, delay=True)
        self.max_bytes = max_bytes

    def _over_limit(self) -> bool:
        if self.max_bytes <= 0:
            return False
        if self.stream is not None:
            self.stream.flush()
        try:
            return os.path.getsize(self.baseFilename) > self.max_bytes
        except OSError:
            return False

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self._over_limit():
                if self.stream is not None:
                    self.stream.close()
                    self.stream = None
                with open(self.baseFilename, "w", encoding=self.encoding):
                    pass
        except OSError:
            self.handleError(record)
            return
        super().emit(record)


def get_logging_config(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    console: bool = True,
) -> Dict[str, Any]:
    """Get logging configuration for the agent process."""
    handlers: Dict[str, Any] = {}
    if console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stdout",
            "filters": ["mask_secrets"],
        }
    if log_file:
        handlers["file"] = {
            "()": SizeCappedFileHandler,
            "filename": log_file,
            "max_bytes": max_bytes,
            "formatter": "default",
            "filters": ["mask_secrets"],
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "mask_secrets": {
                "()": SecretMaskingFilter
            }
        },
        "formatters": {
            "default": {
                "format": DEFAULT_FORMAT
            }
        },
        "handlers": handlers,
        "loggers": {
            "nexus_agent": {
                "level": level.upper(),
            },
            # httpx logs every request at INFO
            "httpx": {
                "level": "WARNING",
            },
            "httpcore": {
                "level": "WARNING",
            },
        },
        "root": {
            "level": "WARNING",
            "handlers": list(handlers),
        },
    }


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    console: Optional[bool] = None,
) -> None:
    """
    Apply the agent logging configuration.

    Console echo defaults to on when stdout is a terminal. If the log file
    cannot be opened the agent keeps running with console logging only.
    """
    if console is None:
        console = sys.stdout.isatty()

    # A broken sink must never take the agent down
    logging.raiseExceptions = False

    try:
        logging.config.dictConfig(get_logging_config(level, log_file, max_bytes, console))
    except (ValueError, OSError) as e:
        logging.config.dictConfig(get_logging_config(level, None, max_bytes, console=True))
        logging.getLogger(__name__).warning(f"File logging disabled ({log_file}): {e}")
