"""Tuning knobs for classification and repair runs."""

from __future__ import annotations

from dataclasses import dataclass

from provisync.domain.reconciliation.calls import DEFAULT_STORE_TIMEOUT_SECONDS
from provisync.domain.reconciliation.engine import DEFAULT_MAX_CONCURRENCY
from provisync.domain.reconciliation.snapshot import DEFAULT_LOCATION_CACHE_TTL_SECONDS

from .env import env_float, env_int


@dataclass(frozen=True, slots=True)
class ReconciliationConfig:
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    store_timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS
    location_cache_ttl_seconds: float = DEFAULT_LOCATION_CACHE_TTL_SECONDS


def get_reconciliation_config() -> ReconciliationConfig:
    store_timeout = env_float(
        "PROVISYNC_STORE_TIMEOUT_SECONDS", DEFAULT_STORE_TIMEOUT_SECONDS, minimum=0.001
    )
    return ReconciliationConfig(
        max_concurrency=env_int("PROVISYNC_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY, minimum=1),
        store_timeout_seconds=store_timeout,
        location_cache_ttl_seconds=env_float(
            "PROVISYNC_LOCATION_CACHE_TTL_SECONDS",
            DEFAULT_LOCATION_CACHE_TTL_SECONDS,
            minimum=0.0,
        ),
    )
