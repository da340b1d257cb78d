"""Async REST client for an HTTP power trade service."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from datetime import datetime
from typing import Any, Mapping

import aiohttp

from power_client.models import Trade

LOGGER = logging.getLogger("power_position.power_client")


class PowerServiceError(Exception):
    """Base exception for trade source errors."""


class PowerServiceRateLimitError(PowerServiceError):
    """Raised when the service indicates that the rate limit has been exceeded."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class PowerServiceTransientError(PowerServiceError):
    """Raised for transient errors that may succeed on retry."""


class AsyncPowerServiceClient:
    """Async trade source client with retry and rate-limit handling."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._session = session
        self._owns_session = session is None

    def build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def get_trades(self, date: datetime) -> list[Trade]:
        """Return the trades for the trading day starting at ``date``."""
        response = await self.send(
            "/trades", params={"date": date.strftime("%Y-%m-%d")}
        )
        payload = self._extract_payload(response)
        if not isinstance(payload, list):
            raise PowerServiceError(
                f"Unexpected trades payload type: {type(payload).__name__}"
            )
        trades: list[Trade] = []
        for item in payload:
            if not isinstance(item, Mapping):
                raise PowerServiceError("Trade entries must be JSON objects")
            try:
                trades.append(Trade.from_payload(date, item))
            except (ValueError, TypeError) as exc:
                raise PowerServiceError(f"Malformed trade payload: {exc}") from exc
        LOGGER.debug("Fetched %d trades for %s", len(trades), date.date())
        return trades

    async def send(
        self, path: str, params: Mapping[str, Any] | None = None
    ) -> Any:
        attempts = 0
        while True:
            try:
                return await self._send_once(path, params)
            except PowerServiceRateLimitError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = exc.retry_after or self._compute_backoff(attempts)
                LOGGER.warning("Rate limited, retrying in %.2fs", delay)
                await asyncio.sleep(delay)
            except PowerServiceTransientError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = self._compute_backoff(attempts)
                LOGGER.warning("%s, retrying in %.2fs", exc, delay)
                await asyncio.sleep(delay)

    async def _send_once(
        self, path: str, params: Mapping[str, Any] | None = None
    ) -> Any:
        url = self.build_url(path)
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-KEY"] = self.api_key

        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with session.request(
                "GET",
                url,
                params=dict(params or {}),
                headers=headers,
                timeout=timeout,
            ) as response:
                payload = await response.text()
                if response.status == 429:
                    retry_after = self._parse_retry_after(
                        response.headers.get("Retry-After")
                    )
                    raise PowerServiceRateLimitError(
                        "Rate limit exceeded", retry_after=retry_after
                    )
                if response.status in {500, 502, 503, 504}:
                    raise PowerServiceTransientError(
                        f"Transient HTTP error {response.status}"
                    )
                if response.status >= 400:
                    raise PowerServiceError(
                        self._build_http_error_message(response.status, payload)
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise PowerServiceTransientError(
                "Network error while contacting power service"
            ) from exc

        if not payload:
            return {}
        try:
            return json.loads(payload)
        except json.JSONDecodeError as exc:
            raise PowerServiceError("Power service returned invalid JSON") from exc

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    def _compute_backoff(self, attempt: int) -> float:
        base = self.backoff_factor * (2 ** (attempt - 1))
        return base + random.uniform(0, base)

    def _parse_retry_after(self, header_value: str | None) -> float | None:
        if header_value is None:
            return None
        try:
            return float(header_value)
        except ValueError:
            return None

    def _build_http_error_message(self, status_code: int, payload: str) -> str:
        if payload:
            return f"HTTP error {status_code}: {payload}"
        return f"HTTP error {status_code}"

    def _extract_payload(self, response: Any) -> Any:
        if isinstance(response, dict):
            return response.get("data", response.get("trades", response))
        return response
