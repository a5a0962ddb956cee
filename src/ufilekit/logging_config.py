"""Logging setup for ufilekit.

Library code only creates module loggers. Applications (or ``UFileClient``
with ``setup_observability=True``) call :func:`configure_logging` to attach
a single stderr handler in either text or JSON form.
"""

import json
import logging
import sys
from datetime import datetime, timezone

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Attributes a transfer attaches through ``extra=`` that are worth keeping
# in structured output.
TRANSFER_FIELDS = (
    "operation",
    "bucket",
    "key",
    "upload_id",
    "part_number",
    "status",
    "duration_ms",
)

# Third-party loggers that are noisy below DEBUG.
_CHATTY_LOGGERS = ("httpx", "httpcore")


def _transfer_context(record: logging.LogRecord) -> dict:
    context = {}
    for name in TRANSFER_FIELDS:
        value = record.__dict__.get(name)
        if value is not None:
            context[name] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with transfer context flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_transfer_context(record))
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Route all logging to stderr at ``level``.

    Existing root handlers are replaced. ``fmt`` is ``"json"`` for
    :class:`JSONFormatter` output; anything else gives plain text. Unknown
    level names fall back to INFO.
    """
    numeric = _resolve_level(level)
    formatter = JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(stream_handler)
    root.setLevel(numeric)

    library_level = logging.DEBUG if numeric <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
