from __future__ import annotations

import os
from dataclasses import dataclass, fields
from functools import lru_cache
from typing import Dict, Optional

from carrier_ingest.errors import ValidationError


_TRUTHY = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY = frozenset({"0", "false", "f", "no", "n", "off"})

# flag field -> (env var, default)
_FLAG_ENV: Dict[str, tuple] = {
    "discovery": ("CI_FEATURE_DISCOVERY", True),
    "skip_non_carriers": ("CI_FEATURE_SKIP_NON_CARRIERS", True),
    "strict_ids": ("CI_FEATURE_STRICT_IDS", False),
}


def parse_flag(raw: Optional[str], fallback: bool) -> bool:
    """Read a boolean env value; unrecognized text keeps the fallback."""

    if raw is None:
        return fallback
    token = raw.strip().lower()
    if token in _TRUTHY:
        return True
    if token in _FALSY:
        return False
    return fallback


@dataclass(frozen=True)
class FeatureFlags:
    """Switches for optional ingestion behavior.

    Defaults: discovery on, non-carriers dropped before persisting,
    malformed ids in explicit lists skipped rather than rejected.
    """

    discovery: bool = True
    skip_non_carriers: bool = True
    strict_ids: bool = False

    @classmethod
    def from_env(cls) -> "FeatureFlags":
        values = {}
        for f in fields(cls):
            env_name, default = _FLAG_ENV[f.name]
            values[f.name] = parse_flag(os.environ.get(env_name), default)
        return cls(**values)


@lru_cache(maxsize=1)
def get_flags() -> FeatureFlags:
    return FeatureFlags.from_env()


def reset_flags_cache() -> None:
    get_flags.cache_clear()


def require_enabled(flag: bool, *, message: Optional[str] = None) -> None:
    if not flag:
        raise ValidationError(message or "Feature is disabled")
