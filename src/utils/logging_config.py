"""Logging setup for the power position service.

The service authenticates to an HTTP trade source with an ``X-API-KEY`` header
whose value comes from the ``api_key`` entry of the ``trade_source`` config.
Both forms can reach a log line (request headers, config dumps, exception
text), so every handler redacts them unless sanitizing is switched off.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"
REDACTED = "[REDACTED]"
QUIET_LOGGERS = ("aiohttp", "asyncio")

# Matches ``X-API-KEY: abc``, ``api_key=abc`` and dict reprs such as
# ``{'X-API-KEY': 'abc'}``; the key and separator are kept.
_SECRET_PATTERN = re.compile(
    r"(?P<key>x-api-key|api_key)(?P<sep>['\"]?\s*[:=]\s*['\"]?)"
    r"(?P<value>[^'\"\s,;&}]+)",
    re.IGNORECASE,
)

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
}


def redact_secrets(text: str) -> str:
    return _SECRET_PATTERN.sub(rf"\g<key>\g<sep>{REDACTED}", text)


class SanitizingFormatter(logging.Formatter):
    """Plain text formatter that redacts API keys from the rendered line.

    Redaction runs on the full output, so tracebacks are covered as well.
    """

    def __init__(
        self,
        fmt: str = TEXT_FORMAT,
        datefmt: str = TEXT_DATEFMT,
        *,
        sanitize: bool = True,
    ) -> None:
        super().__init__(fmt, datefmt=datefmt)
        self.sanitize = sanitize

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        return redact_secrets(text) if self.sanitize else text


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    Always present: ``timestamp`` (ISO 8601, local time), ``level``, ``logger``
    and ``message``. ``exception`` is added when the record carries exc_info,
    and fields passed through ``extra=`` (e.g. ``report_file``) are copied
    as-is.
    """

    def __init__(self, *, sanitize: bool = True) -> None:
        super().__init__()
        self.sanitize = sanitize

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": self._clean(record.getMessage()),
        }
        if record.exc_info:
            payload["exception"] = self._clean(self.formatException(record.exc_info))
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES:
                continue
            payload[key] = self._clean(value) if isinstance(value, str) else value
        return json.dumps(payload, default=str)

    def _clean(self, text: str) -> str:
        return redact_secrets(text) if self.sanitize else text


def build_formatter(*, structured: bool, sanitize: bool) -> logging.Formatter:
    if structured:
        return StructuredFormatter(sanitize=sanitize)
    return SanitizingFormatter(sanitize=sanitize)


def setup_logging(
    level: str = "INFO",
    *,
    structured: bool = False,
    sanitize: bool = True,
    log_file: str | None = None,
) -> None:
    """Replace the root handlers with a stdout handler and an optional file.

    A log file that cannot be opened is reported on the console and the
    service carries on without it.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)
    formatter = build_formatter(structured=structured, sanitize=sanitize)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    failure: OSError | None = None
    if log_file:
        log_path = Path(log_file).expanduser()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
        except OSError as exc:
            failure = exc

    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    if failure is not None:
        root_logger.warning(
            "Failed to set up file logging to %s: %s", log_file, failure
        )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
