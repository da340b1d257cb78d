"""Trade source factory: builds the configured trade source from config."""

from __future__ import annotations

from typing import Any

from power_client.async_rest import AsyncPowerServiceClient
from power_client.simulated import SimulatedPowerService, SimulatedSourceConfig

DEFAULT_SOURCE_MODE = "simulated"
SOURCE_MODES = {"simulated", "http"}


def build_power_service_client(config: dict[str, Any]) -> AsyncPowerServiceClient:
    """
    Build the HTTP trade source client.

    Args:
        config: ``trade_source`` mapping containing:
            - base_url: str (required) - Power service endpoint
            - api_key: str (optional) - Sent as X-API-KEY
            - timeout_sec: float (default: 10.0) - Request timeout
            - retries: int (default: 3) - Max retries per fetch
            - backoff_factor: float (default: 0.5) - Backoff multiplier
    """
    return AsyncPowerServiceClient(
        base_url=config["base_url"],
        api_key=config.get("api_key"),
        timeout=float(config.get("timeout_sec", 10.0)),
        max_retries=int(config.get("retries", 3)),
        backoff_factor=float(config.get("backoff_factor", 0.5)),
    )


def build_simulated_service(config: dict[str, Any]) -> SimulatedPowerService:
    seed = config.get("seed")
    return SimulatedPowerService(
        SimulatedSourceConfig(
            max_trades=int(config.get("max_trades", 3)),
            failure_rate=float(config.get("failure_rate", 0.0)),
            min_latency_sec=float(config.get("min_latency_sec", 0.0)),
            max_latency_sec=float(config.get("max_latency_sec", 0.0)),
            seed=int(seed) if seed is not None else None,
        )
    )


def build_trade_source(
    config: dict[str, Any],
) -> AsyncPowerServiceClient | SimulatedPowerService:
    """Build the trade source named by ``config["trade_source"]["mode"]``."""
    source_config = dict(config.get("trade_source") or {})
    mode = source_config.get("mode", DEFAULT_SOURCE_MODE)
    if mode == "http":
        return build_power_service_client(source_config)
    if mode == "simulated":
        return build_simulated_service(source_config)
    raise ValueError(
        f"Unknown trade source mode '{mode}'. Available modes: "
        f"{', '.join(sorted(SOURCE_MODES))}."
    )
