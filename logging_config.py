from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Iterable, Sequence

from settings import get_settings

CONTEXT_KEYS = (
    "sink",
    "target",
    "record_count",
    "batch_size",
    "status_code",
    "attempt",
    "line_number",
    "reason",
)

# Libraries that log every request at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")

_configured = False


class ContextualFormatter(logging.Formatter):
    """Appends ``key=value`` pairs for whitelisted ``extra=`` attributes.

    Timestamps are rendered in UTC. Values containing whitespace are quoted so
    the context stays machine-splittable.
    """

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        context_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self.context_keys: Sequence[str] = tuple(context_keys or CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        pairs = [
            f"{key}={_render(value)}"
            for key, value in ((key, getattr(record, key, None)) for key in self.context_keys)
            if value is not None
        ]
        return f"{message} | {' '.join(pairs)}" if pairs else message


def _render(value: object) -> str:
    text = str(value)
    if any(char.isspace() for char in text):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def configure_logging(level: str | int | None = None) -> None:
    """Install the contextual stderr handler on the root logger once per process.

    stdout is left untouched because the console sink writes records there.
    """
    global _configured
    if _configured:
        return

    log_level = level if level is not None else get_settings().log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "context_keys": list(CONTEXT_KEYS),
                }
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "contextual",
                }
            },
            "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
            "root": {"handlers": ["stderr"], "level": log_level},
        }
    )

    _configured = True
