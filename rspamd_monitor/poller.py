"""
Rspamd Monitor - Stat Poller.

============================================================
POLLING LOOP
============================================================

Fetches the statistics endpoint at a fixed cadence and
applies each decoded snapshot to the shared MonitorState.

- Fetch + JSON decode run without holding the state lock
- Update + listeners (chart, exporter) run under the lock
- Listeners are called from the second applied snapshot on
- Each failed cycle doubles the retry delay
- More than max_consecutive_errors failures in a row is fatal
- Any success resets the failure count and the delay

============================================================
"""

import asyncio
import json
import logging
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from .aggregator import StatAggregator
from .config import MonitorConfig
from .exceptions import AggregationError, FetchError, MonitorError, PollerFatalError
from .state import MonitorState


logger = logging.getLogger(__name__)


CycleListener = Callable[[StatAggregator], None]


class StatPoller:
    """
    Polls the statistics endpoint and feeds the monitor state.

    Owns its aiohttp session unless one is passed in.
    """

    def __init__(
        self,
        config: MonitorConfig,
        state: MonitorState,
        listeners: Optional[List[CycleListener]] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize poller.

        Args:
            config: Monitor configuration
            state: Shared state receiving the snapshots
            listeners: Called under the state lock after each applied snapshot
            session: Existing HTTP session (not closed by the poller)
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait between cycles
        """
        self._config = config
        self._state = state
        self._listeners: List[CycleListener] = list(listeners or [])
        self._session = session
        self._owns_session = session is None
        self._clock = clock
        self._sleep = sleep

        self._last_snapshot_at: Optional[float] = None
        self._consecutive_failures = 0
        self._applied = 0
        self._stopped = False

    # =========================================================
    # ACCESSORS
    # =========================================================

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def applied_snapshots(self) -> int:
        return self._applied

    @property
    def current_delay(self) -> float:
        """Seconds to wait before the next cycle."""
        return self._config.poll_interval_seconds * (2 ** self._consecutive_failures)

    def add_listener(self, listener: CycleListener) -> None:
        self._listeners.append(listener)

    # =========================================================
    # HTTP
    # =========================================================

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.effective_timeout),
                headers={
                    "Accept": "application/json",
                    "User-Agent": self._config.user_agent,
                },
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if the poller created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "StatPoller":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def fetch_snapshot(self) -> Dict[str, Any]:
        """
        Fetch and decode one snapshot.

        Raises:
            FetchError: Transport error, timeout, HTTP error status or malformed JSON
        """
        url = self._config.url
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.get(url) as response:
                if response.status >= 400:
                    raise FetchError(
                        message=f"HTTP {response.status} from {url}",
                        url=url,
                        status_code=response.status,
                    )
                body = await response.read()
        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"cannot send request to {url}: {e}",
                url=url,
                original_exception=e,
            ) from e
        except asyncio.TimeoutError as e:
            raise FetchError(
                message=f"timed out after {self._config.effective_timeout}s polling {url}",
                url=url,
                original_exception=e,
            ) from e

        latency_ms = (time.time() - start_time) * 1000
        logger.debug(f"Fetched {len(body)} bytes from {url} in {latency_ms:.1f}ms")

        try:
            data = json.loads(body)
        except ValueError as e:
            raise FetchError(
                message=f"malformed json from {url}: {e}",
                url=url,
                original_exception=e,
            ) from e

        if not isinstance(data, dict):
            raise FetchError(message=f"unexpected JSON document from {url}", url=url)

        return data

    # =========================================================
    # CYCLE
    # =========================================================

    def _elapsed_since_last(self, now: float) -> timedelta:
        if self._last_snapshot_at is None:
            return timedelta(seconds=self._config.poll_interval_seconds)
        return timedelta(seconds=now - self._last_snapshot_at)

    def _apply(self, snapshot: Dict[str, Any]) -> None:
        now = self._clock()
        elapsed = self._elapsed_since_last(now)

        with self._state.locked() as aggregator:
            try:
                aggregator.update_from_snapshot(snapshot, elapsed)
            except AggregationError:
                # Counters ahead of the failing one already hold this snapshot
                self._last_snapshot_at = now
                raise
            self._last_snapshot_at = now
            self._applied += 1
            if self._applied > 1:
                for listener in self._listeners:
                    listener(aggregator)

    async def poll_once(self) -> bool:
        """
        Run one polling cycle.

        Returns:
            True if the snapshot was applied, False if the cycle failed

        Raises:
            PollerFatalError: Failure budget exhausted
        """
        try:
            snapshot = await self.fetch_snapshot()
            self._apply(snapshot)
        except MonitorError as e:
            self._consecutive_failures += 1
            logger.warning(
                f"Polling cycle failed ({self._consecutive_failures}/"
                f"{self._config.max_consecutive_errors}): {e}"
            )
            if self._consecutive_failures > self._config.max_consecutive_errors:
                raise PollerFatalError(self._consecutive_failures, e) from e
            return False

        if self._consecutive_failures:
            logger.info(f"Recovered after {self._consecutive_failures} failed cycles")
        self._consecutive_failures = 0
        return True

    async def run(self, max_cycles: Optional[int] = None) -> None:
        """
        Poll until stopped, cancelled, or the failure budget runs out.

        Args:
            max_cycles: Stop after this many cycles (None = forever)
        """
        self._stopped = False
        cycles = 0
        logger.info(
            f"Polling {self._config.url} every {self._config.poll_interval_seconds}s"
        )
        try:
            while not self._stopped and (max_cycles is None or cycles < max_cycles):
                await self.poll_once()
                cycles += 1
                await self._sleep(self.current_delay)
        finally:
            await self.close()

    def stop(self) -> None:
        """Ask the loop to exit after the current cycle."""
        self._stopped = True
