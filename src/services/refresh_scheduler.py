"""
Refresh scheduler - one independent timer task per host
Queries each unit at a fixed cadence and commits results to the cache and host table
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Set

from protocol.client import QueryClient
from protocol.models import QueryResult, QueryStatus
from registry.cache import MetricCache
from registry.host_table import HostTable
from registry.models import HostRecord

logger = logging.getLogger(__name__)

class RefreshScheduler:
    """
    Per-host refresh timers.

    Ticks for one host are strictly sequential: a tick that overruns the interval
    causes the missed ticks to be skipped rather than run back to back. Cadence is
    fixed; failures never back off.
    """

    def __init__(self, config: Dict, host_table: HostTable, cache: MetricCache,
                 query_client: QueryClient, clock: Callable[[], float] = time.time):
        self.host_table = host_table
        self.cache = cache
        self.query_client = query_client
        self.refresh_interval = config.get('refresh_interval', 7500) / 1000
        self.refresh_timeout = config.get('refresh_timeout', 250) / 1000
        self._clock = clock

        self.running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timers: Dict[str, asyncio.Task] = {}
        self._in_flight: Set[str] = set()
        self._subscribed = False

        self.stats = {
            'ticks': 0,
            'successes': 0,
            'failures': 0,
            'skipped_ticks': 0,
            'overlaps_refused': 0
        }

    async def start(self):
        """Start a timer for every known host and follow the table for new ones"""
        self.running = True
        self._loop = asyncio.get_running_loop()

        if not self._subscribed:
            self.host_table.subscribe(self._on_host_added)
            self._subscribed = True

        for key in self.host_table.keys():
            self._start_timer(key)

        logger.info(f"Refresh scheduler started for {len(self._timers)} hosts "
                    f"(every {self.refresh_interval:.1f}s, timeout {self.refresh_timeout * 1000:.0f}ms)")

    async def stop(self):
        """Cancel every timer and in-flight query"""
        self.running = False
        timers = list(self._timers.values())
        self._timers.clear()

        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        logger.info(f"Refresh scheduler stopped ({self.stats['successes']} successful, "
                    f"{self.stats['failures']} failed refreshes)")

    def is_watching(self, key: str) -> bool:
        return key in self._timers

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    # ================== TIMERS ==================

    def _on_host_added(self, record: HostRecord):
        """Host table listener: new hosts get a timer straight away"""
        if not self.running or self._loop is None:
            return
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is self._loop:
            self._start_timer(record.key)
        else:
            self._loop.call_soon_threadsafe(self._start_timer, record.key)

    def _start_timer(self, key: str):
        if key in self._timers or not self.running:
            return
        logger.info(f"[REFRESH] Watching {key}")
        self._timers[key] = asyncio.create_task(self._refresh_loop(key), name=f"refresh-{key}")

    async def _refresh_loop(self, key: str):
        """Tick immediately, then every refresh_interval on a fixed grid"""
        loop = asyncio.get_running_loop()
        next_tick = loop.time()

        while self.running:
            try:
                await self.refresh_host(key)
            except Exception as e:
                logger.error(f"Refresh of {key} failed unexpectedly: {e}")

            next_tick += self.refresh_interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // self.refresh_interval) + 1
                next_tick += missed * self.refresh_interval
                self.stats['skipped_ticks'] += missed
                logger.debug(f"Refresh of {key} overran, skipping {missed} tick(s)")

            await asyncio.sleep(next_tick - now)

    # ================== SINGLE REFRESH ==================

    async def refresh_host(self, key: str) -> Optional[QueryResult]:
        """
        Run one refresh for a host and commit the outcome.
        Returns None when the host is unknown or already has a query in flight.
        """
        if key in self._in_flight:
            self.stats['overlaps_refused'] += 1
            logger.debug(f"Refresh of {key} already in flight, not starting another")
            return None

        record = self.host_table.get(key)
        if record is None:
            return None

        self._in_flight.add(key)
        try:
            self.stats['ticks'] += 1
            self.host_table.note_attempt(key, self._clock())
            result = await self.query_client.query(record.address, self.refresh_timeout, port=record.port)
            if result.peer and result.peer != record.address:
                self.host_table.note_resolved(key, result.peer)
            self._commit(record, result)
            return result
        finally:
            self._in_flight.discard(key)

    def _commit(self, record: HostRecord, result: QueryResult):
        """Success replaces the snapshot; failure leaves it and marks the host unreachable"""
        if result.status is QueryStatus.SUCCESS:
            fields = result.reply.fields
            now = self._clock()
            self.cache.put(record.key, fields, captured_at=now)
            self.host_table.record_success(record.key, now, unit_id=fields.get('mac'), name=fields.get('name'))
            self.stats['successes'] += 1

            if record.consecutive_failures:
                logger.info(f"[REFRESH] {record.display_name} ({record.address}) responding again "
                            f"after {record.consecutive_failures} failed refreshes")
            return

        updated = self.host_table.record_failure(record.key)
        self.stats['failures'] += 1
        failures = updated.consecutive_failures if updated else 0

        if failures == 1:
            logger.warning(f"[REFRESH] {record.display_name} ({record.address}) unreachable: "
                           f"{result.status.value} {result.error or ''}".rstrip())
        else:
            logger.debug(f"Refresh of {record.display_name} failed ({result.status.value}), "
                         f"{failures} consecutive failures")
