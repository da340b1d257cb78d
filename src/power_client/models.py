"""Trade data models for power trade sources.

Pydantic-based models with validation of the values a trade source returns.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, field_validator


class Period(BaseModel):
    """Traded volume for one settlement period of a trade."""

    model_config = ConfigDict(frozen=True)

    period: int
    volume: Decimal

    @field_validator("volume", mode="before")
    @classmethod
    def validate_volume(cls, v: Any) -> Decimal:
        """Keep the source's numeric representation without float noise."""
        if isinstance(v, bool) or v is None:
            raise ValueError(f"Invalid volume: {v}")
        try:
            return Decimal(str(v))
        except (InvalidOperation, ValueError, TypeError) as e:
            raise ValueError(f"Invalid volume: {v}") from e


class Trade(BaseModel):
    """A power trade for one trading day with its ordered settlement periods."""

    model_config = ConfigDict(frozen=True)

    date: datetime
    periods: tuple[Period, ...] = ()

    @classmethod
    def from_volumes(cls, date: datetime, volumes: Sequence[Any]) -> "Trade":
        """Build a trade whose periods are numbered 1..n in order."""
        return cls(
            date=date,
            periods=tuple(
                Period(period=index + 1, volume=volume)
                for index, volume in enumerate(volumes)
            ),
        )

    @classmethod
    def from_payload(cls, date: datetime, payload: Mapping[str, Any]) -> "Trade":
        raw_periods = payload.get("periods")
        if not isinstance(raw_periods, (list, tuple)):
            raise ValueError("Trade payload is missing a periods list")
        periods = []
        for index, item in enumerate(raw_periods):
            if isinstance(item, Mapping):
                periods.append(
                    Period(
                        period=int(item.get("period", index + 1)),
                        volume=item.get("volume"),
                    )
                )
            else:
                periods.append(Period(period=index + 1, volume=item))
        return cls(date=date, periods=tuple(periods))


class TradeSource(Protocol):
    """Anything that can return the trades for a trading date."""

    async def get_trades(self, date: datetime) -> list[Trade]: ...

    async def close(self) -> None: ...
