"""Supabase (PostgREST) configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

SUPABASE_REST_PATH = "/rest/v1/"
SUPABASE_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class SupabaseConfig:
    """Holds the PostgREST endpoint and service credentials."""

    url: str
    service_key: str
    resilience: ResilienceConfig

    @property
    def rest_url(self) -> str:
        return self.url.rstrip("/") + SUPABASE_REST_PATH


def get_supabase_config(*, resilience: ResilienceConfig | None = None) -> SupabaseConfig:
    values = require_env_vars(("SUPABASE_URL", "SUPABASE_SERVICE_KEY"))
    url = values["SUPABASE_URL"]
    if not url.startswith(("http://", "https://")):
        raise ConfigurationError(f"SUPABASE_URL must be an http(s) URL, got {url!r}")

    service_key = values["SUPABASE_SERVICE_KEY"]
    rest_url = url.rstrip("/") + SUPABASE_REST_PATH
    return SupabaseConfig(
        url=url,
        service_key=service_key,
        resilience=resilience
        or ResilienceConfig(
            name="supabase",
            base_url=rest_url,
            timeout_seconds=SUPABASE_TIMEOUT_SECONDS,
            retry=RetryPolicy(total=3),
            ratelimit=RateLimit(max_calls=20, per_seconds=1.0),
            default_headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
            },
        ),
    )
