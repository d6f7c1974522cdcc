"""Logging setup for the bridge: JSON lines or plain text.

A bridge normally runs headless under systemd or in a container, so
the default output is one JSON object per line on stderr.  Every line
names the ``service`` and its ``version``; lines logged with
``extra={"bridge_id": ...}`` also carry the bridge's short id, so logs
from several emulated bridges on one collector stay apart.

Third-party chatter is kept down: the ``zeroconf`` and
``aiohttp.access`` loggers are held at ``settings.library_level``
unless the root level is DEBUG.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import Any

from huebridge._settings import LoggingSettings

_BYTES_PER_MB = 1024 * 1024

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Record attributes copied into JSON output when present.
_CONTEXT_FIELDS = ("bridge_id",)

LIBRARY_LOGGERS = ("zeroconf", "aiohttp.access")


class JsonFormatter(logging.Formatter):
    """Render a :class:`logging.LogRecord` as one JSON line.

    Keys, in order: ``timestamp`` (UTC, ISO 8601), ``level``,
    ``logger``, ``message``, ``service``, then ``version`` when set,
    any context field from ``extra`` (``bridge_id``), and finally
    ``exception`` / ``stack_info`` when the record has them.
    """

    def __init__(self, *, service: str = "", version: str = "") -> None:
        super().__init__()
        self._service = service
        self._version = version

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC)
        entry: dict[str, Any] = {
            "timestamp": timestamp.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
        }
        if self._version:
            entry["version"] = self._version
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)
        # json.dumps escapes newlines in tracebacks: one record, one line.
        return json.dumps(entry, default=str)


def _build_formatter(settings: LoggingSettings, service: str, version: str) -> logging.Formatter:
    if settings.format == "json":
        return JsonFormatter(service=service, version=version)
    return logging.Formatter(_TEXT_FORMAT)


def configure_logging(
    settings: LoggingSettings,
    *,
    service: str,
    version: str = "",
) -> None:
    """Replace the root logger's handlers according to *settings*.

    Always logs to stderr; with ``settings.file`` set, also to a
    size-rotated file.  Library loggers are capped at
    ``settings.library_level`` unless *settings* asks for DEBUG.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = _build_formatter(settings, service, version)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file is not None:
        handlers.append(
            RotatingFileHandler(
                settings.file,
                maxBytes=settings.max_file_size_mb * _BYTES_PER_MB,
                backupCount=settings.backup_count,
            ),
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(settings.level)

    library_level = logging.NOTSET if settings.level == "DEBUG" else settings.library_level
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
