"""
Discovery engine for Daikin adaptors
Periodic UDP broadcast bursts, continuous listening, host table upserts
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from udp_helper import create_udp_endpoint, parse_bind_address
from telemetry import DISCOVER_REQUESTS, DISCOVER_RESPONSES
from protocol.codec import DEFAULT_PORT, MalformedPacket, decode_discovery_reply, encode_discovery_request
from registry.host_table import HostTable
from .models import BurstResult

logger = logging.getLogger(__name__)

class _DiscoveryProtocol(asyncio.DatagramProtocol):
    """Forwards every datagram on the discovery socket to the engine"""

    def __init__(self, engine: "DiscoveryEngine"):
        self.engine = engine

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.engine.handle_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        self.engine.handle_send_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc:
            logger.warning(f"Discovery socket lost: {exc}")


class DiscoveryEngine:
    """
    Finds adaptors on the local broadcast domains.

    Each cycle is a burst of two broadcasts discover_minor_interval apart, then an
    idle wait until discover_major_interval has elapsed since the burst began.
    The first burst runs as soon as the engine starts.
    """

    def __init__(self, config: Dict, host_table: HostTable):
        self.host_table = host_table
        self.major_interval = config.get('discover_major_interval', 300000) / 1000
        self.minor_interval = config.get('discover_minor_interval', 200) / 1000
        self.bind_address = parse_bind_address(config.get('discover_bind_address', '0.0.0.0:0'))
        self.broadcast_addresses: List[str] = list(config.get('discover_broadcast_addresses', ['255.255.255.255']))
        self.port = config.get('discover_port', DEFAULT_PORT)

        self.transport: Optional[asyncio.DatagramTransport] = None
        self.running = False
        self.last_result: Optional[BurstResult] = None
        self._task: Optional[asyncio.Task] = None
        self._request = encode_discovery_request()

        # Cumulative counters, burst results report deltas
        self.stats = {
            'bursts': 0,
            'skipped_bursts': 0,
            'requests_sent': 0,
            'replies': 0,
            'malformed': 0,
            'send_errors': 0
        }
        self._new_hosts: List[str] = []

    async def start(self):
        """Open the discovery socket and start the burst loop"""
        self.running = True
        await self._ensure_endpoint()
        self._task = asyncio.create_task(self._discovery_loop())
        logger.info(f"Discovery started (burst every {self.major_interval:.0f}s, "
                    f"probes {self.minor_interval * 1000:.0f}ms apart, targets {self.broadcast_addresses})")

    async def stop(self):
        """Cancel the loop and close the socket"""
        self.running = False
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        if self.transport:
            self.transport.close()
            self.transport = None
        logger.info("Discovery stopped")

    async def _discovery_loop(self):
        """Burst, then idle until the major interval has elapsed since the burst began"""
        loop = asyncio.get_running_loop()

        while self.running:
            burst_start = loop.time()
            try:
                await self.run_burst()
            except Exception as e:
                logger.error(f"Discovery burst error: {e}")

            remaining = self.major_interval - (loop.time() - burst_start)
            await asyncio.sleep(max(0.0, remaining))

    async def run_burst(self) -> BurstResult:
        """
        Broadcast twice, minor interval apart, listening for one more minor interval.
        A failed send skips the rest of the burst; the next wake retries.
        """
        start = time.monotonic()
        before = dict(self.stats)
        self._new_hosts = []
        error = None

        if not await self._ensure_endpoint():
            error = "discovery socket unavailable"
        else:
            for probe in range(2):
                if probe:
                    await asyncio.sleep(self.minor_interval)
                error = self._broadcast()
                if error:
                    break
            if not error:
                await asyncio.sleep(self.minor_interval)

        self.stats['bursts'] += 1
        if error:
            self.stats['skipped_bursts'] += 1
            logger.error(f"[DISCOVERY] Burst skipped, retrying in {self.major_interval:.0f}s: {error}")

        result = BurstResult(
            requests_sent=self.stats['requests_sent'] - before['requests_sent'],
            replies=self.stats['replies'] - before['replies'],
            malformed=self.stats['malformed'] - before['malformed'],
            new_hosts=list(self._new_hosts),
            duration_seconds=time.monotonic() - start,
            error=error
        )
        self.last_result = result

        if not error:
            logger.debug(f"[DISCOVERY] Burst done: {result.replies} replies, {len(result.new_hosts)} new, "
                         f"{result.malformed} malformed in {result.duration_seconds:.2f}s")
        return result

    def _broadcast(self) -> Optional[str]:
        """Send one discovery request to every broadcast address, returning an error message on failure"""
        errors_before = self.stats['send_errors']

        for address in self.broadcast_addresses:
            try:
                self.transport.sendto(self._request, (address, self.port))
            except (OSError, ValueError) as e:
                self.handle_send_error(e)
                return f"Unable to send discover request to {address}: {e}"
            if self.stats['send_errors'] != errors_before:
                return f"Unable to send discover request to {address}"

            self.stats['requests_sent'] += 1
            DISCOVER_REQUESTS.labels(address).inc()
            logger.debug(f"Sent discovery broadcast to {address}:{self.port}")

        return None

    async def _ensure_endpoint(self) -> bool:
        """(Re)open the discovery socket if needed"""
        if self.transport is not None and not self.transport.is_closing():
            return True

        try:
            self.transport, _ = await create_udp_endpoint(
                lambda: _DiscoveryProtocol(self),
                local_addr=self.bind_address,
                allow_broadcast=True
            )
        except OSError as e:
            logger.error(f"Unable to start discovery on {self.bind_address[0]}:{self.bind_address[1]}: {e}")
            self.transport = None
            return False

        sockname = self.transport.get_extra_info('sockname')
        logger.info(f"Listening for units on {sockname[0]}:{sockname[1]}")
        return True

    # ================== INBOUND ==================

    def handle_datagram(self, data: bytes, addr: tuple):
        """Decode a reply and upsert the host table. Malformed packets are dropped"""
        if data == self._request:
            return  # our own broadcast looped back

        DISCOVER_RESPONSES.labels(addr[0]).inc()
        self.stats['replies'] += 1

        try:
            reply = decode_discovery_reply(data, addr)
        except MalformedPacket as e:
            self.stats['malformed'] += 1
            logger.debug(f"Dropping malformed discovery reply from {addr[0]}: {e}")
            return

        record, created = self.host_table.upsert_discovered(reply)
        if created:
            self._new_hosts.append(record.key)

    def handle_send_error(self, exc: Exception):
        self.stats['send_errors'] += 1
        logger.warning(f"Discovery socket error: {exc}")
