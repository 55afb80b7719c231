from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from carrier_ingest.errors import ValidationError
from carrier_ingest.feature_flags import get_flags, require_enabled
from carrier_ingest.identity import partition_dot_numbers, validate_dot_number
from carrier_ingest.settings import SyncSettings
from carrier_ingest.storage import EntityStore


logger = logging.getLogger("carrier_ingest.sync")

DEFAULT_DISCOVERY_START = 3_000_000
DISCOVERY_STEP_PAST_KNOWN = 1000
DISCOVERY_ATTEMPTS_PER_TARGET = 10
RANDOM_DOT_RANGES = (
    (1_000_000, 4_000_000),
    (2_500_000, 3_500_000),
)
MAX_LIMIT = 1000


def clamp_limit(limit, default: int = 50) -> int:
    try:
        value = int(limit if limit is not None else default)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid limit: {limit!r}") from exc
    if value < 1:
        raise ValidationError("limit must be at least 1")
    return min(value, MAX_LIMIT)


class TargetPolicy(ABC):
    """Selects the identifiers a job of `job_type` will process."""

    job_type: str

    @abstractmethod
    def select(
        self,
        *,
        store: EntityStore,
        settings: SyncSettings,
        limit: int,
        now,
        targets: Optional[Sequence] = None,
        params: Optional[dict] = None,
    ) -> List[str]:
        raise NotImplementedError

    def dispatch_limit(self, limit: int) -> Optional[int]:
        """Stop dispatching once this many entities were stored; None = no cap."""
        return None


_POLICIES: Dict[str, type[TargetPolicy]] = {}


def register_policy(cls: type[TargetPolicy]) -> type[TargetPolicy]:
    key = (getattr(cls, "job_type", "") or "").strip().lower()
    if not key:
        raise ValueError("job_type is required")
    _POLICIES[key] = cls
    return cls


def get_policy(job_type: str) -> TargetPolicy:
    key = (job_type or "").strip().lower()
    cls = _POLICIES.get(key)
    if cls is None:
        raise ValidationError(f"Unknown job type: {job_type}")
    return cls()


def list_policies() -> List[str]:
    return sorted(_POLICIES.keys())


@register_policy
class DailyPolicy(TargetPolicy):
    job_type = "daily"
    multiplier = 1

    def select(self, *, store, settings, limit, now, targets=None, params=None):
        threshold = timedelta(days=settings.stale_after_days)
        return store.list_stale_entities(threshold, limit * self.multiplier, now)


@register_policy
class WeeklyPolicy(DailyPolicy):
    job_type = "weekly"
    multiplier = 2


@register_policy
class NewCarriersPolicy(TargetPolicy):
    job_type = "new-carriers"

    def select(self, *, store, settings, limit, now, targets=None, params=None):
        return store.list_unsynced_entities(limit)


@register_policy
class ExplicitPolicy(TargetPolicy):
    job_type = "explicit"

    def select(self, *, store, settings, limit, now, targets=None, params=None):
        valid, rejected = partition_dot_numbers(targets or [])
        if rejected:
            if get_flags().strict_ids:
                raise ValidationError(f"Malformed DOT numbers: {', '.join(rejected)}")
            logger.warning("dropping malformed DOT numbers: %s", ", ".join(rejected))
        if not valid:
            raise ValidationError("explicit jobs need at least one valid DOT number")
        return valid[:limit] if limit else valid


def sequential_candidates(start: int, count: int, known) -> List[str]:
    candidates = []
    current = start
    while len(candidates) < count:
        dot = str(current)
        if dot not in known:
            candidates.append(dot)
        current += 1
    return candidates


def random_candidates(count: int, known, rng: random.Random) -> List[str]:
    candidates: List[str] = []
    seen = set(known)
    while len(candidates) < count:
        low, high = rng.choice(RANDOM_DOT_RANGES)
        dot = str(rng.randint(low, high))
        if dot in seen:
            continue
        seen.add(dot)
        candidates.append(dot)
    return candidates


@register_policy
class DiscoveryPolicy(TargetPolicy):
    """Probe unknown DOT numbers until `limit` new entities are stored."""

    job_type = "discovery"

    def select(self, *, store, settings, limit, now, targets=None, params=None):
        require_enabled(get_flags().discovery, message="discovery jobs are disabled")
        params = params or {}
        strategy = (params.get("strategy") or "sequential").strip().lower()
        count = limit * DISCOVERY_ATTEMPTS_PER_TARGET
        known = store.known_ids()
        if strategy == "sequential":
            start_dot = params.get("start_dot")
            if start_dot is not None:
                start = int(validate_dot_number(start_dot))
            else:
                highest = store.max_external_id()
                start = (
                    highest + DISCOVERY_STEP_PAST_KNOWN
                    if highest
                    else DEFAULT_DISCOVERY_START
                )
            return sequential_candidates(start, count, known)
        if strategy == "random":
            rng = random.Random(params.get("seed"))
            return random_candidates(count, known, rng)
        raise ValidationError(f"Invalid discovery strategy: {strategy}")

    def dispatch_limit(self, limit):
        return limit
