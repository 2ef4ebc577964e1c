"""Structured logging configuration using dictConfig."""
import logging
import logging.config
import sys
from typing import Dict, Any, Optional

from .settings import get_settings

# Chatty third-party loggers that only report warnings and up
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")


def get_logging_config(service_name: Optional[str] = None, level: Optional[str] = None) -> Dict[str, Any]:
    """Build the dictConfig for the given service.

    JSON lines in production, a readable console format everywhere else.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    formatter = "json" if settings.environment == "production" else "console"
    prefix = f"{service_name} " if service_name else ""

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "format": f"%(asctime)s %(levelname)s {prefix}%(name)s %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter"
            },
            "console": {
                "format": f"%(asctime)s [{service_name or 'trendwire'}] [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": formatter,
                "stream": sys.stdout
            }
        },
        "loggers": {
            "trendwire": {
                "level": level,
                "handlers": ["console"],
                "propagate": False
            },
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"]
        }
    }

    for name in QUIET_LOGGERS:
        config["loggers"][name] = {"level": "WARNING", "handlers": ["console"], "propagate": False}

    return config


def setup_logging(service_name: Optional[str] = None, level: Optional[str] = None) -> None:
    """Configure structured logging using dictConfig."""
    logging.config.dictConfig(get_logging_config(service_name, level))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
