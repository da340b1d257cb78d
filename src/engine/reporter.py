"""Power position report generation.

Fetches the day-ahead trades from a trade source, aggregates their volumes per
settlement period and writes an hourly CSV report.
"""

from __future__ import annotations

import asyncio
import csv
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import MAX_EMAX, MAX_PREC, MIN_EMIN, Decimal, localcontext
from pathlib import Path
from typing import Sequence

from engine.errors import ReportWriteError, SourceUnavailableError
from power_client.async_rest import PowerServiceError
from power_client.models import Trade, TradeSource

LOGGER = logging.getLogger("power_position.reporter")

REPORT_HEADER = ("Local Time", "Volume")
FILENAME_TIME_FORMAT = "%Y%m%d_%H%M"
PERIOD_TIME_FORMAT = "%H:%M"


@dataclass(frozen=True)
class ReportRow:
    local_time: datetime
    volume: Decimal

    def to_csv_row(self) -> tuple[str, str]:
        return self.local_time.strftime(PERIOD_TIME_FORMAT), str(self.volume)


def day_ahead_date(report_time: datetime) -> datetime:
    """Return midnight of the trading day a report at ``report_time`` covers.

    The trading day starts at 23:00 the day before, so times from 23:00 onwards
    belong to the next calendar date.
    """
    shifted = report_time + timedelta(hours=1)
    return datetime(shifted.year, shifted.month, shifted.day)


def period_start_time(day_ahead: datetime, index: int) -> datetime:
    """Local start time of the settlement period at 0-based ``index``."""
    return day_ahead + timedelta(hours=index - 1)


def aggregate_volumes(trades: Sequence[Trade]) -> list[Decimal]:
    """Sum volumes per period index across trades.

    Trades shorter than the longest trade do not contribute at the indices they
    lack.
    """
    max_periods = max((len(trade.periods) for trade in trades), default=0)
    totals = [Decimal("0")] * max_periods
    # Sums stay exact at any magnitude; volumes are never rounded.
    with localcontext() as ctx:
        ctx.prec = MAX_PREC
        ctx.Emax = MAX_EMAX
        ctx.Emin = MIN_EMIN
        for trade in trades:
            for index, period in enumerate(trade.periods):
                totals[index] += period.volume
    return totals


def build_report_rows(day_ahead: datetime, trades: Sequence[Trade]) -> list[ReportRow]:
    return [
        ReportRow(local_time=period_start_time(day_ahead, index), volume=volume)
        for index, volume in enumerate(aggregate_volumes(trades))
    ]


def build_report_filename(reporting_path: str | Path, report_time: datetime) -> Path:
    return Path(reporting_path) / (
        f"PowerPosition_{report_time.strftime(FILENAME_TIME_FORMAT)}.csv"
    )


def write_report(filename: Path, rows: Sequence[ReportRow]) -> None:
    """Write rows to ``filename`` through a temporary file in the same directory."""
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{filename.stem}.", suffix=".tmp", dir=filename.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, lineterminator="\n")
            writer.writerow(REPORT_HEADER)
            writer.writerows(row.to_csv_row() for row in rows)
        os.replace(temp_name, filename)
    except OSError:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise


class PowerPositionReporter:
    """Generates aggregated hourly power position reports."""

    def __init__(self, trade_source: TradeSource, reporting_path: str | Path) -> None:
        if trade_source is None:
            LOGGER.error("Missing trade source")
            raise ValueError("trade_source is required")
        if reporting_path is None or not str(reporting_path).strip():
            LOGGER.error("Missing reporting path")
            raise ValueError("reporting_path is required")
        self.trade_source = trade_source
        self.reporting_path = Path(reporting_path)
        LOGGER.debug("Reporting path is %s", self.reporting_path)

    async def generate_report(self, report_time: datetime | None = None) -> Path:
        """Generate the report for ``report_time`` (default: now); return its path."""
        if report_time is None:
            report_time = datetime.now()
        LOGGER.info("Report started for %s", report_time.strftime("%Y-%m-%d %H:%M"))

        day_ahead = day_ahead_date(report_time)
        try:
            trades = await self.trade_source.get_trades(day_ahead)
        except (PowerServiceError, OSError) as exc:
            message = "Report failed whilst retrieving power trades"
            LOGGER.error("%s: %s", message, exc, exc_info=exc)
            raise SourceUnavailableError(message, cause=exc) from exc
        LOGGER.debug("%d trades retrieved for %s", len(trades), day_ahead.date())

        rows = build_report_rows(day_ahead, trades)
        LOGGER.debug("Maximum period count was %d", len(rows))

        filename = build_report_filename(self.reporting_path, report_time)
        LOGGER.info("Report filename is %s", filename)
        try:
            await asyncio.to_thread(write_report, filename, rows)
        except OSError as exc:
            message = "Report failed whilst writing report"
            LOGGER.error("%s: %s", message, exc, exc_info=exc)
            raise ReportWriteError(message, cause=exc) from exc

        LOGGER.info(
            "Report complete",
            extra={
                "report_file": str(filename),
                "day_ahead": day_ahead.date().isoformat(),
            },
        )
        return filename
