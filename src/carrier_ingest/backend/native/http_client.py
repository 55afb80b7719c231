import asyncio
import os
import random
import time
from abc import ABC, abstractmethod
from pathlib import Path

import httpx

from carrier_ingest.errors import (
    FetchError,
    RecordNotFoundError,
    RegistryUnavailableError,
    TransientFetchError,
)
from carrier_ingest.identity import validate_dot_number
from carrier_ingest.settings import get_settings


RETRY_STATUS = {429, 500, 502, 503, 504}

USER_AGENT = "carrier-ingest-native"


class RetryConfig:
    def __init__(self, max_attempts=3, base_delay=0.5, factor=2.0, jitter=0.1):
        self.max_attempts = max(1, int(max_attempts))
        self.base_delay = base_delay
        self.factor = factor
        self.jitter = jitter

    @classmethod
    def from_settings(cls, settings):
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.backoff_base,
            factor=settings.backoff_factor,
            jitter=settings.backoff_jitter,
        )

    def delays(self, rand_fn=None):
        # One delay between each pair of attempts.
        return compute_backoff_delays(
            self.max_attempts - 1,
            self.base_delay,
            self.factor,
            self.jitter,
            rand_fn=rand_fn,
        )


def compute_backoff_delays(
    retries, base_delay=0.5, factor=2.0, jitter=0.1, rand_fn=None
):
    delays = []
    current = base_delay
    rand_fn = rand_fn or random.random
    for _ in range(retries):
        noise = (rand_fn() * 2 - 1) * jitter
        delays.append(max(0.0, current + noise))
        current *= factor
    return delays


class DispatchPacer:
    """Spaces dispatches at least `interval` seconds apart across all workers.

    Each caller reserves the next free slot before sleeping, so concurrent
    workers queue up behind each other instead of firing together.
    """

    def __init__(self, interval, clock=time.monotonic, sleep_fn=asyncio.sleep):
        self.interval = max(0.0, float(interval or 0.0))
        self.clock = clock
        self.sleep_fn = sleep_fn
        self._next_slot = None

    async def wait(self):
        now = self.clock()
        slot = now if self._next_slot is None else max(now, self._next_slot)
        self._next_slot = slot + self.interval
        delay = slot - now
        if delay > 0:
            await self.sleep_fn(delay)
        return delay


class RegistryFetcher(ABC):
    """Fetch interface the orchestrator depends on."""

    @abstractmethod
    async def fetch(self, external_id):
        raise NotImplementedError

    async def check_available(self):
        return None

    async def aclose(self):
        return None


class SaferRegistryClient(RegistryFetcher):
    def __init__(self, settings=None, transport=None):
        self.settings = settings or get_settings()
        self.max_bytes = self.settings.max_bytes
        self._transport = transport
        self._client = None

    async def _ensure_client(self):
        if self._client is not None:
            return self._client
        use_no_proxy = (
            os.environ.get("NO_PROXY_LOOKUP") == "1"
            or os.environ.get("CI") == "1"
        )
        self._client = httpx.AsyncClient(
            timeout=self.settings.fetch_timeout,
            follow_redirects=True,
            trust_env=not use_no_proxy,
            transport=self._transport,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/xhtml+xml",
            },
        )
        return self._client

    def build_form(self, external_id):
        return {
            "searchtype": "ANY",
            "query_type": "queryCarrierSnapshot",
            "query_param": "USDOT",
            "query_string": validate_dot_number(external_id),
        }

    def _decode(self, response):
        content = response.content
        if len(content) > self.max_bytes:
            content = content[: self.max_bytes]
        return content.decode(response.encoding or "utf-8", errors="replace")

    async def fetch(self, external_id):
        client = await self._ensure_client()
        form = self.build_form(external_id)
        try:
            response = await client.post(self.settings.registry_url, data=form)
        except httpx.TimeoutException as exc:
            raise TransientFetchError(f"DOT {external_id}: timed out") from exc
        except httpx.TransportError as exc:
            raise TransientFetchError(f"DOT {external_id}: {exc}") from exc
        status = response.status_code
        if status in RETRY_STATUS:
            raise TransientFetchError(f"DOT {external_id}: HTTP {status}", status=status)
        if status >= 400:
            raise FetchError(f"DOT {external_id}: HTTP {status}", status=status)
        return self._decode(response)

    async def check_available(self):
        client = await self._ensure_client()
        try:
            response = await client.get(self.settings.registry_url)
        except httpx.HTTPError as exc:
            raise RegistryUnavailableError(f"registry unreachable: {exc}") from exc
        if response.status_code >= 500:
            raise RegistryUnavailableError(
                f"registry unavailable: HTTP {response.status_code}"
            )

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class FixtureFetcher(RegistryFetcher):
    """Serves snapshot pages from a dict and/or a directory of `<dot>.html` files.

    A dict value that is an exception instance is raised instead of returned.
    """

    def __init__(self, pages=None, directory=None, available=True):
        self.pages = dict(pages or {})
        self.directory = Path(directory) if directory else None
        self.available = available
        self.requested = []

    async def fetch(self, external_id):
        self.requested.append(external_id)
        if external_id in self.pages:
            page = self.pages[external_id]
            if isinstance(page, Exception):
                raise page
            return page
        if self.directory is not None:
            path = self.directory / f"{external_id}.html"
            if path.exists():
                return path.read_text(encoding="utf-8", errors="replace")
        raise RecordNotFoundError(f"DOT {external_id}: no fixture")

    async def check_available(self):
        if not self.available:
            raise RegistryUnavailableError("fixture registry marked unavailable")
