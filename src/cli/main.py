"""CLI entry point for the power position reporting service."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import tomllib
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from engine.errors import PowerPositionError
from engine.reporter import PowerPositionReporter
from engine.scheduler import DEFAULT_TICK_INTERVAL_SEC, RetryScheduler
from engine.source_factory import build_trade_source
from utils.config_validator import (
    ConfigValidationError,
    validate_log_config,
    validate_reporting_config,
    validate_trade_source_config,
)
from utils.logging_config import setup_logging

LOGGER = logging.getLogger("power_position.cli")

SUPPORTED_FORMATS = (".json", ".toml", ".yaml", ".yml")
STARTUP_ERROR_MESSAGE = "An error occurred during service start"
REPORT_TIME_FORMAT = "%Y-%m-%d %H:%M"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Power position reporting service")
    parser.add_argument(
        "--version", action="version", version="power-position 0.1.0"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", help="Run the reporting service until interrupted."
    )
    run_parser.add_argument(
        "--config", required=True, help="Path to JSON/TOML/YAML config file."
    )
    run_parser.add_argument(
        "--log-level",
        help="Override the configured logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    run_parser.set_defaults(handler=run_service)

    report_parser = subparsers.add_parser(
        "report", help="Generate a single report and exit."
    )
    report_parser.add_argument(
        "--config", required=True, help="Path to JSON/TOML/YAML config file."
    )
    report_parser.add_argument(
        "--at",
        help="Report time as 'YYYY-MM-DD HH:MM' (defaults to now).",
    )
    report_parser.add_argument(
        "--log-level",
        help="Override the configured logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    report_parser.set_defaults(handler=run_report)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if hasattr(args, "handler"):
        return args.handler(args)
    parser.print_help()
    return 1


def run_service(args: argparse.Namespace) -> int:
    logger_ready = False
    try:
        config = configure_logging(Path(args.config).expanduser(), args.log_level)
        logger_ready = True
        validate_service_settings(config)
        asyncio.run(serve(config))
    except (ConfigValidationError, FileNotFoundError, ValueError) as exc:
        report_startup_error(exc, logger_ready)
        return 2
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        report_startup_error(exc, logger_ready, unexpected=True)
        return 3
    return 0


def run_report(args: argparse.Namespace) -> int:
    logger_ready = False
    try:
        config = configure_logging(Path(args.config).expanduser(), args.log_level)
        logger_ready = True
        validate_service_settings(config)
        report_time = parse_report_time(args.at)
        path = asyncio.run(generate_once(config, report_time))
    except PowerPositionError as exc:
        LOGGER.error("Report failed: %s", exc)
        return 1
    except (ConfigValidationError, FileNotFoundError, ValueError) as exc:
        report_startup_error(exc, logger_ready)
        return 2
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        report_startup_error(exc, logger_ready, unexpected=True)
        return 3
    LOGGER.info("Report written to %s", path)
    return 0


def report_startup_error(
    exc: BaseException, logger_ready: bool, *, unexpected: bool = False
) -> None:
    """Log a startup failure, or print it when logging is not configured yet."""
    if not logger_ready:
        print(f"{STARTUP_ERROR_MESSAGE}: {exc}", file=sys.stderr)
    elif unexpected:
        LOGGER.exception("%s: %s", STARTUP_ERROR_MESSAGE, exc)
    else:
        LOGGER.error("%s: %s", STARTUP_ERROR_MESSAGE, exc)


def configure_logging(
    config_path: Path, log_level_override: str | None = None
) -> dict[str, Any]:
    """Load the config and set up logging from its log settings.

    Only the log settings are validated here; once this returns, startup
    failures go to the configured logger.
    """
    config = load_config(config_path)
    if log_level_override:
        config["log_level"] = log_level_override
    validate_log_config(config)
    setup_logging(
        level=config["log_level"],
        structured=bool(config.get("structured_logs", False)),
        sanitize=True,
        log_file=config["log_file"],
    )
    LOGGER.info("LogFile=%s", config["log_file"])
    LOGGER.info("LogLevel=%s", config["log_level"])
    return config


def validate_service_settings(config: dict[str, Any]) -> None:
    validate_reporting_config(config)
    validate_trade_source_config(config)
    LOGGER.debug("ReportingLocation=%s", config["reporting_location"])
    LOGGER.debug("ReportingInterval=%s", config["reporting_interval"])
    LOGGER.debug("MaxRetries=%s", config["max_retries"])


def parse_report_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.strptime(value.strip(), REPORT_TIME_FORMAT)
    except ValueError as exc:
        raise ValueError(
            f"Invalid report time '{value}'. Expected format YYYY-MM-DD HH:MM."
        ) from exc


def build_reporter(config: dict[str, Any]) -> PowerPositionReporter:
    source = build_trade_source(config)
    return PowerPositionReporter(
        source, Path(config["reporting_location"]).expanduser()
    )


def build_scheduler(
    config: dict[str, Any], reporter: PowerPositionReporter
) -> RetryScheduler:
    return RetryScheduler(
        reporter,
        reporting_interval=int(config["reporting_interval"]),
        max_retries=int(config["max_retries"]),
        tick_interval=float(config.get("tick_interval_sec", DEFAULT_TICK_INTERVAL_SEC)),
    )


async def generate_once(
    config: dict[str, Any], report_time: datetime | None = None
) -> Path:
    reporter = build_reporter(config)
    try:
        return await reporter.generate_report(report_time)
    finally:
        await reporter.trade_source.close()


async def serve(config: dict[str, Any]) -> None:
    """Run the scheduler until SIGINT/SIGTERM."""
    reporter = build_reporter(config)
    scheduler = build_scheduler(config, reporter)
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)

    try:
        await scheduler.start()
        LOGGER.info("Service running. Press Ctrl+C to stop.")
        await stop_event.wait()
    finally:
        await scheduler.stop()
        await scheduler.wait_idle()
        await reporter.trade_source.close()
        LOGGER.info("Service stopped")


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except NotImplementedError:
            # Windows event loops; Ctrl+C still raises KeyboardInterrupt.
            LOGGER.debug("Signal handler for %s not supported", signum)


def load_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. "
            "Ensure the path is correct and readable."
        )
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        supported = ", ".join(SUPPORTED_FORMATS)
        raise ConfigValidationError(
            f"Unsupported config format '{suffix}'. Supported formats: {supported}."
        )
    text = config_path.read_text(encoding="utf-8")
    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix == ".toml":
            data = tomllib.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigValidationError(
            f"Failed to parse config file {config_path}: {exc}"
        ) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"Config file {config_path} must contain a JSON/TOML/YAML object mapping."
        )
    return data


if __name__ == "__main__":
    raise SystemExit(main())
