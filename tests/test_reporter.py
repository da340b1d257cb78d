"""Tests for power position report generation."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

from engine.errors import ReportWriteError, SourceUnavailableError
from engine.reporter import (
    PowerPositionReporter,
    aggregate_volumes,
    build_report_filename,
    build_report_rows,
    day_ahead_date,
    period_start_time,
)
from power_client.async_rest import PowerServiceError
from power_client.models import Trade


class FakeTradeSource:
    def __init__(self, volumes: list[list[object]] | None = None, error=None) -> None:
        self.volumes = volumes or []
        self.error = error
        self.requested: list[datetime] = []
        self.closed = False

    async def get_trades(self, date: datetime) -> list[Trade]:
        self.requested.append(date)
        if self.error is not None:
            raise self.error
        return [Trade.from_volumes(date, volumes) for volumes in self.volumes]

    async def close(self) -> None:
        self.closed = True


def _trades(*volumes: list[object]) -> list[Trade]:
    date = datetime(2024, 1, 16)
    return [Trade.from_volumes(date, values) for values in volumes]


@pytest.mark.parametrize(
    ("report_time", "expected"),
    [
        (datetime(2024, 1, 15, 10, 0), datetime(2024, 1, 15)),
        (datetime(2024, 1, 15, 22, 59), datetime(2024, 1, 15)),
        (datetime(2024, 1, 15, 23, 0), datetime(2024, 1, 16)),
        (datetime(2024, 1, 15, 23, 30), datetime(2024, 1, 16)),
        (datetime(2024, 12, 31, 23, 15), datetime(2025, 1, 1)),
        (datetime(2024, 1, 16, 0, 0), datetime(2024, 1, 16)),
    ],
)
def test_day_ahead_date_shifts_last_hour_to_next_day(report_time, expected):
    assert day_ahead_date(report_time) == expected


def test_period_start_time_starts_at_2300_previous_day():
    day_ahead = datetime(2024, 1, 16)

    assert period_start_time(day_ahead, 0) == datetime(2024, 1, 15, 23, 0)
    assert period_start_time(day_ahead, 1) == datetime(2024, 1, 16, 0, 0)
    assert period_start_time(day_ahead, 2) == datetime(2024, 1, 16, 1, 0)
    assert period_start_time(day_ahead, 23) == datetime(2024, 1, 16, 22, 0)


def test_aggregate_volumes_sums_each_period_index():
    trades = _trades([1, 2, 3], [10, 20, 30], ["-0.5", "0.25", "0"])

    assert aggregate_volumes(trades) == [
        Decimal("10.5"),
        Decimal("22.25"),
        Decimal("33"),
    ]


def test_aggregate_volumes_shorter_trades_do_not_contribute_past_their_length():
    trades = _trades([1] * 23, [2] * 25, [4] * 24)

    totals = aggregate_volumes(trades)

    assert len(totals) == 25
    assert totals[0] == Decimal("7")
    assert totals[22] == Decimal("7")
    assert totals[23] == Decimal("6")
    assert totals[24] == Decimal("2")


def test_aggregate_volumes_does_not_round_large_sums():
    trades = _trades(["12345678901234567890.123456789"], ["1"])

    totals = aggregate_volumes(trades)

    assert totals == [Decimal("12345678901234567891.123456789")]
    assert str(totals[0]) == "12345678901234567891.123456789"


def test_aggregate_volumes_without_trades_is_empty():
    assert aggregate_volumes([]) == []


def test_build_report_rows_labels_each_index():
    rows = build_report_rows(datetime(2024, 1, 16), _trades([10, 20], [5]))

    assert [row.to_csv_row() for row in rows] == [("23:00", "15"), ("00:00", "20")]


def test_report_filename_uses_original_time_to_the_minute(tmp_path):
    first = build_report_filename(tmp_path, datetime(2024, 1, 15, 23, 30, 5))
    same_minute = build_report_filename(tmp_path, datetime(2024, 1, 15, 23, 30, 59))
    next_minute = build_report_filename(tmp_path, datetime(2024, 1, 15, 23, 31))

    assert first == tmp_path / "PowerPosition_20240115_2330.csv"
    assert first == same_minute
    assert first != next_minute


def test_reporter_requires_source_and_path(tmp_path):
    with pytest.raises(ValueError):
        PowerPositionReporter(None, tmp_path)
    with pytest.raises(ValueError):
        PowerPositionReporter(FakeTradeSource(), None)


@pytest.mark.asyncio
async def test_generate_report_writes_aggregated_csv(tmp_path):
    source = FakeTradeSource([[10, 20], [5]])
    reporter = PowerPositionReporter(source, tmp_path)

    path = await reporter.generate_report(datetime(2024, 1, 15, 10, 0))

    assert path == tmp_path / "PowerPosition_20240115_1000.csv"
    assert source.requested == [datetime(2024, 1, 15)]
    assert path.read_text(encoding="utf-8") == (
        "Local Time,Volume\n23:00,15\n00:00,20\n"
    )
    assert [p.name for p in tmp_path.iterdir()] == [path.name]


@pytest.mark.asyncio
async def test_generate_report_keeps_source_precision(tmp_path):
    source = FakeTradeSource([[100.25, -50], ["0.125", "50.5"]])
    reporter = PowerPositionReporter(source, tmp_path)

    path = await reporter.generate_report(datetime(2024, 3, 1, 23, 45))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines == ["Local Time,Volume", "23:00,100.375", "00:00,0.5"]
    assert path.name == "PowerPosition_20240301_2345.csv"


@pytest.mark.asyncio
async def test_generate_report_overwrites_same_minute(tmp_path):
    reporter = PowerPositionReporter(FakeTradeSource([[1]]), tmp_path)
    report_time = datetime(2024, 1, 15, 12, 0)

    first = await reporter.generate_report(report_time)
    reporter.trade_source = FakeTradeSource([[2]])
    second = await reporter.generate_report(report_time)

    assert first == second
    assert second.read_text(encoding="utf-8").splitlines()[1] == "23:00,2"


@pytest.mark.asyncio
async def test_generate_report_without_trades_writes_header_only(tmp_path):
    reporter = PowerPositionReporter(FakeTradeSource([]), tmp_path)

    path = await reporter.generate_report(datetime(2024, 1, 15, 12, 0))

    assert path.read_text(encoding="utf-8") == "Local Time,Volume\n"


@pytest.mark.asyncio
async def test_source_failure_raises_source_unavailable(tmp_path):
    cause = PowerServiceError("service down")
    reporter = PowerPositionReporter(FakeTradeSource(error=cause), tmp_path)

    with pytest.raises(SourceUnavailableError) as excinfo:
        await reporter.generate_report(datetime(2024, 1, 15, 12, 0))

    assert excinfo.value.cause is cause
    assert excinfo.value.__cause__ is cause
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_write_failure_raises_report_write_error(tmp_path):
    missing_dir = Path(tmp_path) / "missing"
    reporter = PowerPositionReporter(FakeTradeSource([[1, 2]]), missing_dir)

    with pytest.raises(ReportWriteError) as excinfo:
        await reporter.generate_report(datetime(2024, 1, 15, 12, 0))

    assert isinstance(excinfo.value.cause, OSError)
    assert not missing_dir.exists()
