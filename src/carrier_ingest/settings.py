from __future__ import annotations

import os
from dataclasses import dataclass, replace
from functools import lru_cache


DEFAULT_REGISTRY_URL = "https://safer.fmcsa.dot.gov/query.asp"


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return max(minimum, int(str(raw).strip()))
    except ValueError:
        return default


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return max(minimum, float(str(raw).strip()))
    except ValueError:
        return default


@dataclass(frozen=True)
class SyncSettings:
    """Runtime knobs for fetching and bulk sync jobs.

    All values come from CI_* env vars; `with_overrides` is used by the CLI
    and tests to tweak a copy without touching the environment.
    """

    concurrency: int = 3
    request_delay_ms: int = 2000
    fetch_timeout: float = 15.0
    max_attempts: int = 3
    backoff_base: float = 0.5
    backoff_factor: float = 2.0
    backoff_jitter: float = 0.1
    stale_after_days: int = 7
    max_bytes: int = 500_000
    registry_url: str = DEFAULT_REGISTRY_URL
    db_path: str = "./carriers.sqlite"

    @classmethod
    def from_env(cls) -> "SyncSettings":
        return cls(
            concurrency=_env_int("CI_CONCURRENCY", 3, minimum=1),
            request_delay_ms=_env_int("CI_REQUEST_DELAY_MS", 2000),
            fetch_timeout=_env_float("CI_FETCH_TIMEOUT", 15.0, minimum=0.1),
            max_attempts=_env_int("CI_MAX_ATTEMPTS", 3, minimum=1),
            backoff_base=_env_float("CI_BACKOFF_BASE", 0.5),
            backoff_factor=_env_float("CI_BACKOFF_FACTOR", 2.0, minimum=1.0),
            backoff_jitter=_env_float("CI_BACKOFF_JITTER", 0.1),
            stale_after_days=_env_int("CI_STALE_AFTER_DAYS", 7),
            max_bytes=_env_int("CI_MAX_BYTES", 500_000, minimum=1024),
            registry_url=(os.getenv("CI_REGISTRY_URL") or "").strip()
            or DEFAULT_REGISTRY_URL,
            db_path=(os.getenv("CI_DB") or "").strip() or "./carriers.sqlite",
        )

    @property
    def request_delay(self) -> float:
        return self.request_delay_ms / 1000.0

    def with_overrides(self, **changes) -> "SyncSettings":
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes)


@lru_cache(maxsize=1)
def get_settings() -> SyncSettings:
    return SyncSettings.from_env()


def reset_settings_cache() -> None:
    """Test helper to force env re-read."""

    get_settings.cache_clear()
