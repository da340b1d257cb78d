"""In-process simulated power trade source for dry runs and local testing."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from power_client.async_rest import PowerServiceError
from power_client.models import Trade

LOGGER = logging.getLogger("power_position.simulated_source")


@dataclass(frozen=True)
class SimulatedSourceConfig:
    max_trades: int = 3
    min_volume: float = -1000.0
    max_volume: float = 1000.0
    failure_rate: float = 0.0
    min_latency_sec: float = 0.0
    max_latency_sec: float = 0.0
    seed: int | None = None


def periods_in_trading_day(date: datetime) -> int:
    """Return the number of hourly settlement periods in the local trading day.

    The trading day for ``date`` runs from 23:00 on the previous day to 23:00
    on ``date``. Daylight-saving transitions give 23 or 25 periods.
    """
    start = (date - timedelta(hours=1)).astimezone()
    end = (date + timedelta(hours=23)).astimezone()
    return round((end - start).total_seconds() / 3600)


class SimulatedPowerService:
    """Generates random trades for a trading day, optionally failing at random."""

    def __init__(self, config: SimulatedSourceConfig | None = None) -> None:
        self.config = config or SimulatedSourceConfig()
        self._random = random.Random(self.config.seed)

    async def get_trades(self, date: datetime) -> list[Trade]:
        await self._simulate_latency()
        if self._random.random() < self.config.failure_rate:
            LOGGER.debug("Injecting simulated failure for %s", date.date())
            raise PowerServiceError("Simulated power service failure")

        period_count = periods_in_trading_day(date)
        trade_count = self._random.randint(1, max(1, self.config.max_trades))
        trades = [
            Trade.from_volumes(
                date,
                [self._random_volume() for _ in range(period_count)],
            )
            for _ in range(trade_count)
        ]
        LOGGER.debug(
            "Generated %d simulated trades with %d periods for %s",
            trade_count,
            period_count,
            date.date(),
        )
        return trades

    async def close(self) -> None:
        return None

    def _random_volume(self) -> Decimal:
        value = self._random.uniform(self.config.min_volume, self.config.max_volume)
        return Decimal(str(round(value, 2)))

    async def _simulate_latency(self) -> None:
        if self.config.max_latency_sec <= 0:
            return
        delay = self._random.uniform(
            self.config.min_latency_sec, self.config.max_latency_sec
        )
        await asyncio.sleep(delay)
