"""Central logging configuration for the assessment engine.

Installs a root stdout handler through `dictConfig` so every module logger
(`logging.getLogger(__name__)`) emits without per-module setup. Uvicorn loggers
stay visible and repeated calls never stack handlers.
"""
from __future__ import annotations

import logging
import os
from logging.config import dictConfig

_LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


def _dict_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": _LOG_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "assessment_engine": {"level": level, "propagate": True},
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "httpx": {"level": "WARNING", "propagate": True},
        },
    }


def configure_logging(level: str | None = None) -> bool:
    """Configure application-wide logging once.

    Returns False without changes when the root logger already has handlers
    (reloaders, test runners); True when the configuration was applied.
    """
    root = logging.getLogger()
    if root.handlers:
        return False
    dictConfig(_dict_config((level or os.getenv("LOG_LEVEL") or "INFO").upper()))
    return True


__all__ = ["configure_logging"]
