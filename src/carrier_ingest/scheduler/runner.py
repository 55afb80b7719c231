from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

from carrier_ingest.backend.native.http_client import DispatchPacer, RegistryFetcher, RetryConfig
from carrier_ingest.errors import (
    IngestError,
    RegistryUnavailableError,
    TransientFetchError,
    ValidationError,
)
from carrier_ingest.normalize import utc_now
from carrier_ingest.pipeline import ingest_markup
from carrier_ingest.scheduler.models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RUNNING,
    SyncJob,
)
from carrier_ingest.scheduler.targets import clamp_limit, get_policy
from carrier_ingest.settings import SyncSettings, get_settings
from carrier_ingest.storage import EntityStore


logger = logging.getLogger("carrier_ingest.sync")


def _iso(value) -> str:
    return value.replace(microsecond=0).isoformat()


class SyncOrchestrator:
    """Runs bulk refresh and discovery jobs against one store and one fetcher.

    Jobs live in memory for the life of the orchestrator. All workers share a
    single event loop, so job counters are updated without locks.
    """

    def __init__(
        self,
        store: EntityStore,
        fetcher: RegistryFetcher,
        settings: Optional[SyncSettings] = None,
        *,
        log_fn: Optional[Callable[[dict], None]] = None,
        sleep_fn=asyncio.sleep,
        clock=time.monotonic,
        now_fn=utc_now,
        rand_fn=None,
        skip_non_carriers: Optional[bool] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.settings = settings or get_settings()
        self.log_fn = log_fn
        self.sleep_fn = sleep_fn
        self.clock = clock
        self.now_fn = now_fn
        self.rand_fn = rand_fn
        self.skip_non_carriers = skip_non_carriers
        self.jobs: Dict[str, SyncJob] = {}
        self._cancel_requested: set = set()
        self._tasks: set = set()

    def _emit(self, payload: dict) -> None:
        if self.log_fn:
            self.log_fn(payload)

    def start_job(
        self,
        job_type: str,
        limit: Optional[int] = None,
        targets: Optional[Sequence] = None,
        **params: Any,
    ) -> str:
        """Validate the request, select targets and register a pending job.

        Raises ValidationError before anything is fetched.
        """
        policy = get_policy(job_type)
        if policy.job_type == "explicit" and limit is None:
            job_limit = None
        else:
            job_limit = clamp_limit(limit)
        params = {k: v for k, v in params.items() if v is not None}
        selected = policy.select(
            store=self.store,
            settings=self.settings,
            limit=job_limit,
            now=self.now_fn(),
            targets=targets,
            params=params,
        )
        job = SyncJob(
            id=uuid.uuid4().hex,
            job_type=policy.job_type,
            created_at=_iso(self.now_fn()),
            targets=list(selected),
            limit=job_limit,
            params=params,
        )
        self.jobs[job.id] = job
        logger.info(
            "sync job %s created: type=%s targets=%d", job.id, job.job_type, len(job.targets)
        )
        return job.id

    def get_job_status(self, job_id: str) -> SyncJob:
        job = self.jobs.get(job_id)
        if job is None:
            raise KeyError(f"Unknown job: {job_id}")
        return job

    def list_jobs(self) -> List[SyncJob]:
        return sorted(self.jobs.values(), key=lambda j: (j.created_at, j.id))

    def cancel_job(self, job_id: str) -> SyncJob:
        """Request cooperative cancellation; no-op on terminal jobs."""
        job = self.get_job_status(job_id)
        if job.is_terminal:
            return job
        if job.status == STATUS_PENDING:
            job.cancelled = True
            job.status = STATUS_COMPLETED
            job.completed_at = _iso(self.now_fn())
            logger.info("sync job %s cancelled before start", job_id)
            return job
        self._cancel_requested.add(job_id)
        logger.info("sync job %s cancellation requested", job_id)
        return job

    def launch_job(self, job_id: str) -> "asyncio.Task":
        """Schedule run_job on the running loop and keep a reference to it."""
        task = asyncio.get_running_loop().create_task(self.run_job(job_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(
        self,
        job_type: str,
        limit: Optional[int] = None,
        targets: Optional[Sequence] = None,
        **params: Any,
    ) -> SyncJob:
        job_id = self.start_job(job_type, limit, targets, **params)
        return await self.run_job(job_id)

    async def run_job(self, job_id: str) -> SyncJob:
        job = self.get_job_status(job_id)
        if job.status != STATUS_PENDING:
            if job.is_terminal:
                return job
            raise ValidationError(f"Job {job_id} is already {job.status}")

        # Must be running before the first await; cancel_job completes pending jobs outright.
        job.status = STATUS_RUNNING
        job.started_at = _iso(self.now_fn())
        try:
            await self.fetcher.check_available()
        except RegistryUnavailableError as exc:
            self._fail(job, exc)
            return job

        logger.info("sync job %s running: %d targets", job.id, len(job.targets))
        policy = get_policy(job.job_type)
        stop_after = policy.dispatch_limit(job.limit) if job.limit else None
        pacer = DispatchPacer(
            self.settings.request_delay, clock=self.clock, sleep_fn=self.sleep_fn
        )
        pending = iter(job.targets)
        systemic: List[Exception] = []

        async def worker():
            while True:
                if job.id in self._cancel_requested or systemic:
                    return
                if stop_after is not None and job.updated >= stop_after:
                    return
                external_id = next(pending, None)
                if external_id is None:
                    return
                try:
                    await self._process(job, external_id, pacer)
                except RegistryUnavailableError as exc:
                    systemic.append(exc)
                    return

        workers = max(1, min(self.settings.concurrency, len(job.targets) or 1))
        await asyncio.gather(*[worker() for _ in range(workers)])

        if systemic:
            self._fail(job, systemic[0])
            return job
        job.cancelled = job.id in self._cancel_requested
        self._cancel_requested.discard(job.id)
        job.status = STATUS_COMPLETED
        job.completed_at = _iso(self.now_fn())
        logger.info(
            "sync job %s completed: processed=%d updated=%d failed=%d skipped=%d",
            job.id,
            job.processed,
            job.updated,
            job.failed,
            job.skipped,
        )
        self._emit(
            {
                "job_id": job.id,
                "job_type": job.job_type,
                "processed": job.processed,
                "updated": job.updated,
                "failed": job.failed,
                "skipped": job.skipped,
                "success_rate": job.success_rate,
                "cancelled": job.cancelled,
                "status": job.status,
            }
        )
        return job

    def _fail(self, job: SyncJob, exc: Exception) -> None:
        if job.is_terminal:
            return
        job.record_error("", exc)
        job.status = STATUS_FAILED
        job.completed_at = _iso(self.now_fn())
        self._cancel_requested.discard(job.id)
        logger.error("sync job %s failed: %s", job.id, exc)
        self._emit({"job_id": job.id, "error": str(exc), "status": STATUS_FAILED})

    async def fetch_with_retry(self, external_id: str, pacer: DispatchPacer) -> str:
        """Fetch one page; TransientFetchError is retried with backoff."""
        delays = RetryConfig.from_settings(self.settings).delays(self.rand_fn)
        attempt = 0
        while True:
            await pacer.wait()
            try:
                return await self.fetcher.fetch(external_id)
            except TransientFetchError as exc:
                if attempt >= len(delays):
                    raise
                logger.info(
                    "retrying DOT %s after %.2fs (attempt %d): %s",
                    external_id,
                    delays[attempt],
                    attempt + 1,
                    exc,
                )
                await self.sleep_fn(delays[attempt])
                attempt += 1

    async def _process(self, job: SyncJob, external_id: str, pacer: DispatchPacer) -> None:
        try:
            html = await self.fetch_with_retry(external_id, pacer)
            outcome = ingest_markup(
                self.store,
                html,
                external_id,
                now=self.now_fn(),
                skip_non_carriers=self.skip_non_carriers,
            )
        except RegistryUnavailableError:
            raise
        except Exception as exc:
            # Per-item failures never abort the batch.
            job.processed += 1
            job.failed += 1
            job.record_error(external_id, exc)
            level = logging.WARNING if isinstance(exc, IngestError) else logging.ERROR
            logger.log(level, "DOT %s failed: %s", external_id, exc)
            self._emit(
                {
                    "job_id": job.id,
                    "external_id": external_id,
                    "error": str(exc),
                    "kind": type(exc).__name__,
                    "status": "failed",
                }
            )
            return
        job.processed += 1
        if outcome.stored:
            job.updated += 1
        else:
            job.skipped += 1
        self._emit(
            {
                "job_id": job.id,
                "external_id": external_id,
                "legal_name": outcome.record.legal_name,
                "stored": outcome.stored,
                "rating_changed": outcome.rating_event is not None,
                "status": "success" if outcome.stored else "skipped",
            }
        )


def dumps(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, indent=2, default=str) + "\n"
