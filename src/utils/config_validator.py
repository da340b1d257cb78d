"""Configuration validation utilities for the power position service."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
LOG_KEYS = ("log_file", "log_level")
REPORTING_KEYS = ("reporting_location", "reporting_interval", "max_retries")
UNLIMITED_RETRIES = -1


class ConfigValidationError(ValueError):
    """Raised when configuration validation fails."""


def require_keys(config: dict[str, Any], keys: tuple[str, ...]) -> None:
    for key in keys:
        if key not in config or config[key] is None:
            raise ConfigValidationError(f"Missing required field: {key}")


def validate_non_empty_string(config: dict[str, Any], field: str) -> None:
    value = config.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ConfigValidationError(f"{field} must be a non-empty string")


def validate_integer(
    config: dict[str, Any], field: str, *, required: bool = True, minimum: int = 1
) -> None:
    """Validate that a field is an integer no smaller than ``minimum``."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigValidationError(
            f"{field} must be an integer, got: {type(value).__name__}"
        )

    if value < minimum:
        raise ConfigValidationError(f"{field} must be >= {minimum}, got: {value}")


def validate_positive_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a positive decimal value."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigValidationError(
            f"{field} must be a valid number, got: {value}"
        ) from exc

    if decimal_value <= 0:
        raise ConfigValidationError(f"{field} must be positive, got: {decimal_value}")


def validate_fraction(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a number between 0 and 1."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigValidationError(
            f"{field} must be a valid number, got: {value}"
        ) from exc

    if not (Decimal("0") <= decimal_value <= Decimal("1")):
        raise ConfigValidationError(
            f"{field} must be between 0 and 1, got: {decimal_value}"
        )


def validate_choice(
    config: dict[str, Any], field: str, choices: set[str], *, required: bool = True
) -> None:
    """Validate that a field is one of the allowed choices."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, str):
        raise ConfigValidationError(
            f"{field} must be a string, got: {type(value).__name__}"
        )

    if value not in choices:
        choices_str = ", ".join(sorted(choices))
        raise ConfigValidationError(
            f"{field} must be one of [{choices_str}], got: {value}"
        )


def validate_url(config: dict[str, Any], field: str = "base_url") -> None:
    """Validate that a URL field is properly formatted."""
    url = config.get(field)
    if not isinstance(url, str) or not url.strip():
        raise ConfigValidationError(f"{field} must be a non-empty string")

    if not re.match(r"^https?://", url, re.IGNORECASE):
        raise ConfigValidationError(
            f"{field} must start with http:// or https://, got: {url}"
        )


def validate_log_config(config: dict[str, Any]) -> None:
    """Validate the settings needed to create the logger."""
    require_keys(config, LOG_KEYS)
    validate_non_empty_string(config, "log_file")
    if not isinstance(config["log_level"], str):
        raise ConfigValidationError("log_level must be a string")
    if config["log_level"].upper() not in LOG_LEVELS:
        choices_str = ", ".join(sorted(LOG_LEVELS))
        raise ConfigValidationError(
            f"log_level must be one of [{choices_str}], got: {config['log_level']}"
        )


def validate_reporting_config(config: dict[str, Any]) -> None:
    """Validate the reporting location, interval and retry settings."""
    require_keys(config, REPORTING_KEYS)
    validate_non_empty_string(config, "reporting_location")
    location = Path(config["reporting_location"]).expanduser()
    if not location.is_dir():
        raise ConfigValidationError(
            f"Reporting location '{config['reporting_location']}' does not exist"
        )
    validate_integer(config, "reporting_interval", minimum=1)
    validate_integer(config, "max_retries", minimum=UNLIMITED_RETRIES)
    if "tick_interval_sec" in config:
        validate_positive_decimal(config, "tick_interval_sec")
        tick = Decimal(str(config["tick_interval_sec"]))
        if Decimal("60") % tick != 0:
            raise ConfigValidationError(
                f"tick_interval_sec must divide 60 seconds evenly, got: {tick}"
            )
    if "structured_logs" in config and not isinstance(
        config["structured_logs"], bool
    ):
        raise ConfigValidationError("structured_logs must be a boolean")


def validate_trade_source_config(config: dict[str, Any]) -> None:
    """Validate the optional ``trade_source`` mapping."""
    source = config.get("trade_source")
    if source is None:
        return
    if not isinstance(source, dict):
        raise ConfigValidationError("trade_source must be a mapping")

    validate_choice(source, "mode", {"simulated", "http"}, required=False)
    if source.get("mode", "simulated") == "http":
        validate_url(source)
        if "api_key" in source:
            validate_non_empty_string(source, "api_key")
        validate_positive_decimal(source, "timeout_sec", required=False)
        validate_integer(source, "retries", required=False, minimum=0)
        validate_positive_decimal(source, "backoff_factor", required=False)
    else:
        validate_integer(source, "max_trades", required=False, minimum=1)
        validate_fraction(source, "failure_rate", required=False)
        validate_integer(source, "seed", required=False, minimum=0)


def validate_service_config(config: dict[str, Any]) -> None:
    """
    Validate the full service configuration.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration must be a dictionary")

    if not config:
        raise ConfigValidationError("Configuration cannot be empty")

    validate_log_config(config)
    validate_reporting_config(config)
    validate_trade_source_config(config)
