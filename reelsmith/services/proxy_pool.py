"""
Proxy Pool Service
Process-wide list of relay candidates used to reach the speech provider.

The candidate list and the current selection are shared by every job on
purpose: a proxy that fails for one job is evicted for all of them.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol

import aiohttp

from ..config import get_settings
from ..utils.cancellation import CancellationToken
from ..utils.exceptions import PoolExhaustedError, ProxyListUnavailableError
from ..utils.logger import LogSink, get_logger

logger = get_logger()


class Liveness(str, Enum):
    """Validation state of a proxy candidate"""
    UNKNOWN = "unknown"
    ALIVE = "alive"
    DEAD = "dead"


@dataclass
class ProxyRecord:
    """One relay candidate"""
    host: str
    port: int
    liveness: Liveness = Liveness.UNKNOWN

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def url(self, scheme: str = "http") -> str:
        return f"{scheme}://{self.host}:{self.port}"


def parse_proxy_list(text: str) -> List[ProxyRecord]:
    """Parse `host:port[:extra]` lines, skipping blanks and malformed entries."""
    records: List[ProxyRecord] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(":")
        if len(parts) < 2:
            continue
        try:
            port = int(parts[1])
        except ValueError:
            continue
        records.append(ProxyRecord(host=parts[0].strip(), port=port))
    return records


class ProxySource(Protocol):
    """Network side of the pool: list download and probe"""

    list_url: str

    async def fetch_list(self) -> str:
        ...

    async def probe(self, record: ProxyRecord) -> Optional[str]:
        """Return the external address seen through the proxy."""
        ...


class HttpProxySource:
    """Fetches candidates from a text list and probes them against an IP echo endpoint"""

    def __init__(
        self,
        list_url: str,
        probe_url: str,
        probe_timeout: float = 10.0,
        scheme: str = "http",
        verify_ssl: bool = False
    ):
        self.list_url = list_url
        self.probe_url = probe_url
        self.probe_timeout = probe_timeout
        self.scheme = scheme
        self.verify_ssl = verify_ssl

    async def fetch_list(self) -> str:
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30)) as session:
                async with session.get(self.list_url) as response:
                    response.raise_for_status()
                    return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ProxyListUnavailableError(self.list_url, str(exc) or type(exc).__name__) from exc

    async def probe(self, record: ProxyRecord) -> Optional[str]:
        timeout = aiohttp.ClientTimeout(total=self.probe_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(
                self.probe_url,
                proxy=record.url(self.scheme),
                ssl=self.verify_ssl
            ) as response:
                response.raise_for_status()
                data = await response.json(content_type=None)
        return (data or {}).get("origin")


class ProxyPool:
    """
    Supplies one validated relay at a time.

    A single instance is created per process and shared by reference with
    every SpeechSynthesizer. The lock serialises list mutation; it does not
    give jobs private proxies.
    """

    def __init__(self, source: ProxySource):
        self._source = source
        self._candidates: List[ProxyRecord] = []
        self._current: Optional[ProxyRecord] = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> Optional[ProxyRecord]:
        return self._current

    @property
    def candidates(self) -> List[ProxyRecord]:
        return list(self._candidates)

    async def refill(self, token: Optional[CancellationToken] = None, log: Optional[LogSink] = None):
        """Replace the candidate list with a fresh download; an empty list is an error."""
        log = log or LogSink()
        if token is not None:
            token.raise_if_cancelled()
        log.info("Fetching proxy list...")
        text = await self._source.fetch_list()
        candidates = parse_proxy_list(text)
        if not candidates:
            raise ProxyListUnavailableError(self._source.list_url, "empty list")
        self._candidates = candidates
        self._current = None
        log.info(f"Fetched proxy list. Total proxies: {len(self._candidates)}")

    async def validate(self, candidate: ProxyRecord, log: Optional[LogSink] = None) -> bool:
        """Accept a candidate only if traffic through it appears to come from its host."""
        log = log or LogSink()
        log.debug(f"Testing proxy: {candidate.address}")
        try:
            origin = await self._source.probe(candidate)
        except Exception as exc:
            log.debug(f"Proxy {candidate.address} failed: {exc}")
            candidate.liveness = Liveness.DEAD
            return False

        if origin is None or origin.split(",")[0].strip() != candidate.host:
            candidate.liveness = Liveness.DEAD
            return False

        candidate.liveness = Liveness.ALIVE
        return True

    async def acquire(
        self,
        token: Optional[CancellationToken] = None,
        log: Optional[LogSink] = None
    ) -> ProxyRecord:
        """
        Return the current proxy, validating a new one when none is selected.

        The token is checked before every probe, so a cancelled job stops
        walking the list right away.
        """
        log = log or LogSink()
        async with self._lock:
            if self._current is not None:
                return self._current

            if not self._candidates:
                log.info("Proxy list is empty. Fetching new proxies...")
                await self.refill(token, log)

            checked = 0
            while self._candidates:
                if token is not None:
                    token.raise_if_cancelled()
                candidate = self._candidates[0]
                checked += 1
                if await self.validate(candidate, log):
                    self._current = candidate
                    log.info(f"Selected working proxy: {candidate.address}")
                    return candidate

                self._candidates.pop(0)
                log.debug(f"Removed failed proxy: {candidate.address}")

            raise PoolExhaustedError(checked)

    def mark_current_failed(
        self,
        record: Optional[ProxyRecord] = None,
        log: Optional[LogSink] = None
    ):
        """Evict a failed proxy for every job and clear the selection if it was current."""
        log = log or LogSink()
        failed = record or self._current
        if failed is None:
            return

        failed.liveness = Liveness.DEAD
        if failed in self._candidates:
            self._candidates.remove(failed)
            log.info(f"Removed failed proxy: {failed.address}")
        if self._current is failed:
            self._current = None


_proxy_pool: Optional[ProxyPool] = None


def get_proxy_pool() -> ProxyPool:
    """Return singleton proxy pool."""
    global _proxy_pool
    if _proxy_pool is None:
        settings = get_settings()
        _proxy_pool = ProxyPool(
            HttpProxySource(
                list_url=settings.proxy_list_url,
                probe_url=settings.proxy_probe_url,
                probe_timeout=settings.proxy_probe_timeout,
                scheme=settings.proxy_scheme,
                verify_ssl=settings.proxy_verify_ssl,
            )
        )
    return _proxy_pool
