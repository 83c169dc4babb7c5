"""Logging configuration shared by the CLI and the HTTP API."""
from __future__ import annotations
from logging.config import dictConfig

from rich.console import Console

STDERR_CONSOLE = Console(stderr=True)


def setup_logging(level: str = "WARNING") -> None:
    """Route ``tabnotes`` logs through Rich on stderr.

    Call once at startup. SQL echo stays at WARNING unless the level asks for
    DEBUG.
    """
    level = level.upper()
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "rich": {"format": "%(name)s: %(message)s", "datefmt": "[%X]"},
            },
            "handlers": {
                "console": {
                    "class": "rich.logging.RichHandler",
                    "formatter": "rich",
                    "console": "ext://tabnotes.logging_setup.STDERR_CONSOLE",
                    "show_path": False,
                    "rich_tracebacks": True,
                },
            },
            "loggers": {
                "tabnotes": {
                    "level": level,
                    "handlers": ["console"],
                    "propagate": False,
                },
                "sqlalchemy.engine": {
                    "level": "DEBUG" if level == "DEBUG" else "WARNING",
                    "handlers": ["console"],
                    "propagate": False,
                },
            },
        }
    )
