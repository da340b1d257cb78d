"""Tests for log formatting and API key redaction."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime

import pytest

from utils.logging_config import (
    REDACTED,
    SanitizingFormatter,
    StructuredFormatter,
    redact_secrets,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(msg, *args, exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "power_position.power_client", logging.INFO, __file__, 1, msg, args, exc_info
    )
    record.__dict__.update(extra)
    return record


def raised(exc: Exception):
    try:
        raise exc
    except Exception:
        return sys.exc_info()


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("X-API-KEY: abc123", f"X-API-KEY: {REDACTED}"),
        ("x-api-key=abc123", f"x-api-key={REDACTED}"),
        (
            "headers={'Accept': 'application/json', 'X-API-KEY': 'abc123'}",
            f"headers={{'Accept': 'application/json', 'X-API-KEY': '{REDACTED}'}}",
        ),
        ("api_key=s3cr3t-value mode=http", f"api_key={REDACTED} mode=http"),
        (
            "{'mode': 'http', 'api_key': 's3cr3t'}",
            f"{{'mode': 'http', 'api_key': '{REDACTED}'}}",
        ),
        ('{"api_key": "s3cr3t"}', f'{{"api_key": "{REDACTED}"}}'),
    ],
)
def test_redact_secrets_hides_api_key_values(text, expected):
    assert redact_secrets(text) == expected


def test_redact_secrets_leaves_ordinary_lines_alone():
    line = "Fetched 3 trades for 2024-01-16 from https://power.example/api/trades"

    assert redact_secrets(line) == line


def test_sanitizing_formatter_redacts_interpolated_arguments():
    formatter = SanitizingFormatter()
    record = make_record("Request headers %s", {"X-API-KEY": "abc123"})

    output = formatter.format(record)

    assert "abc123" not in output
    assert REDACTED in output
    assert "[INFO] power_position.power_client:" in output


def test_sanitizing_formatter_redacts_tracebacks():
    formatter = SanitizingFormatter()
    record = make_record(
        "Request failed", exc_info=raised(RuntimeError("rejected api_key=abc123"))
    )

    output = formatter.format(record)

    assert "Traceback" in output
    assert "abc123" not in output


def test_sanitizing_can_be_disabled():
    formatter = SanitizingFormatter(sanitize=False)

    output = formatter.format(make_record("api_key=abc123"))

    assert output.endswith("api_key=abc123")


def test_structured_formatter_emits_json_fields():
    formatter = StructuredFormatter()
    record = make_record(
        "Report complete",
        report_file="/reports/PowerPosition_20240115_2330.csv",
        day_ahead="2024-01-16",
    )

    payload = json.loads(formatter.format(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "power_position.power_client"
    assert payload["message"] == "Report complete"
    assert payload["report_file"] == "/reports/PowerPosition_20240115_2330.csv"
    assert payload["day_ahead"] == "2024-01-16"
    assert isinstance(datetime.fromisoformat(payload["timestamp"]), datetime)
    assert "exception" not in payload
    assert "msg" not in payload
    assert "levelno" not in payload


def test_structured_formatter_redacts_message_exception_and_extras():
    formatter = StructuredFormatter()
    record = make_record(
        "Calling service with X-API-KEY: abc123",
        exc_info=raised(ValueError("bad api_key=abc123")),
        request="api_key=abc123",
    )

    output = formatter.format(record)
    payload = json.loads(output)

    assert "abc123" not in output
    assert payload["message"] == f"Calling service with X-API-KEY: {REDACTED}"
    assert "ValueError" in payload["exception"]
    assert payload["request"] == f"api_key={REDACTED}"


def test_setup_logging_writes_redacted_lines_to_file(tmp_path):
    log_file = tmp_path / "logs" / "service.log"
    setup_logging("DEBUG", log_file=str(log_file))

    logging.getLogger("power_position.test").debug(
        "Trade source config %s", {"mode": "http", "api_key": "abc123"}
    )

    content = log_file.read_text(encoding="utf-8")
    assert "Trade source config" in content
    assert "abc123" not in content
    assert logging.getLogger("aiohttp").level == logging.WARNING


def test_setup_logging_structured_file_lines_are_json(tmp_path):
    log_file = tmp_path / "service.log"
    setup_logging("INFO", structured=True, log_file=str(log_file))

    logging.getLogger("power_position.test").info(
        "Report complete", extra={"report_file": "PowerPosition_20240115_2330.csv"}
    )

    lines = log_file.read_text(encoding="utf-8").splitlines()
    payload = json.loads(lines[-1])
    assert payload["report_file"] == "PowerPosition_20240115_2330.csv"
    assert payload["logger"] == "power_position.test"


def test_setup_logging_reports_unusable_log_file(tmp_path, capsys):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("", encoding="utf-8")

    setup_logging("INFO", log_file=str(blocker / "service.log"))

    assert len(logging.getLogger().handlers) == 1
    assert "Failed to set up file logging" in capsys.readouterr().out
