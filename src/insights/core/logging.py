"""Logging setup for hosts embedding the insights pipeline."""
from __future__ import annotations

from logging.config import dictConfig
from typing import Any, Dict

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Per-request lines from the HTTP stack would drown the pipeline's own warnings.
QUIET_LOGGERS = ("httpx", "httpcore")


def build_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Return a dictConfig mapping with the ``insights`` loggers at ``level``."""

    level = level.upper()
    loggers: Dict[str, Any] = {"insights": {"level": level}}
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING"}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"pipeline": {"format": LOG_FORMAT}},
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "pipeline",
            }
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["stderr"]},
    }


def setup_logging(level: str = "INFO") -> None:
    dictConfig(build_logging_config(level))
