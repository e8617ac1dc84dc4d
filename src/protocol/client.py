"""
Unicast query client for Daikin adaptors
One attempt per call: no retries here, the refresh scheduler owns the cadence
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence

from udp_helper import create_udp_endpoint, resolve_ipv4
from telemetry import UDP_REQUESTS, UDP_ERRORS, UDP_DURATIONS
from .codec import DEFAULT_PORT, QUERY_GROUPS, MalformedPacket, decode_query_reply, encode_query_request
from .models import QueryReply, QueryResult, QueryStatus

logger = logging.getLogger(__name__)

DEFAULT_GROUPS = ("basic", "control", "sensor")

class _ReplyProtocol(asyncio.DatagramProtocol):
    """Hands the next datagram from the expected peer to a waiting future"""

    def __init__(self, peer_ip: str):
        self.peer_ip = peer_ip
        self.waiter: Optional[asyncio.Future] = None

    def expect(self) -> asyncio.Future:
        self.waiter = asyncio.get_running_loop().create_future()
        return self.waiter

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        if addr[0] != self.peer_ip:
            logger.debug(f"Ignoring {len(data)} bytes from unexpected peer {addr[0]}")
            return
        if self.waiter and not self.waiter.done():
            self.waiter.set_result(data)

    def error_received(self, exc: Exception) -> None:
        if self.waiter and not self.waiter.done():
            self.waiter.set_exception(exc)


class QueryClient:
    """Sends one query per group to a unit and waits for exactly one reply each"""

    def __init__(self, config: Dict):
        self.timeout = config.get('refresh_timeout', 250) / 1000
        self.port = config.get('discover_port', DEFAULT_PORT)
        self.groups: List[str] = list(config.get('query_groups', DEFAULT_GROUPS))

    async def query(self, address: str, timeout: Optional[float] = None,
                    groups: Optional[Sequence[str]] = None, port: Optional[int] = None) -> QueryResult:
        """
        Query a unit for the requested groups.
        Returns SUCCESS with the merged reply, or the outcome of the first group that failed.
        """
        timeout = self.timeout if timeout is None else timeout
        groups = list(groups or self.groups)
        port = port or self.port
        start = time.monotonic()

        for group in groups:
            if group not in QUERY_GROUPS:
                raise ValueError(f"Unknown query group: {group}")

        peer_ip = await resolve_ipv4(address)
        if peer_ip is None:
            UDP_ERRORS.labels(address, groups[0], "resolve").inc()
            return QueryResult(QueryStatus.SOCKET_ERROR, error=f"Cannot resolve {address}",
                               group=groups[0], duration_seconds=time.monotonic() - start)

        try:
            transport, protocol = await create_udp_endpoint(lambda: _ReplyProtocol(peer_ip))
        except OSError as e:
            logger.warning(f"Unable to open query socket for {address}: {e}")
            UDP_ERRORS.labels(address, groups[0], "socket").inc()
            return QueryResult(QueryStatus.SOCKET_ERROR, error=str(e), group=groups[0],
                               duration_seconds=time.monotonic() - start, peer=peer_ip)

        merged = QueryReply(fields={})
        try:
            for group in groups:
                result = await self._query_group(transport, protocol, address, peer_ip, port, group, timeout)
                if not result.ok:
                    result.duration_seconds = time.monotonic() - start
                    result.peer = peer_ip
                    return result
                merged = merged.merge(result.reply)
        finally:
            transport.close()

        return QueryResult(QueryStatus.SUCCESS, reply=merged, duration_seconds=time.monotonic() - start,
                           peer=peer_ip)

    async def _query_group(self, transport, protocol: _ReplyProtocol, address: str, peer_ip: str,
                           port: int, group: str, timeout: float) -> QueryResult:
        """Send one request and wait for its reply"""
        UDP_REQUESTS.labels(address, group).inc()
        waiter = protocol.expect()
        started = time.monotonic()

        try:
            transport.sendto(encode_query_request(group), (peer_ip, port))
            payload = await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Query {group} to {address} timed out after {timeout * 1000:.0f}ms")
            UDP_ERRORS.labels(address, group, "timeout").inc()
            return QueryResult(QueryStatus.TIMED_OUT, error="timed out", group=group)
        except OSError as e:
            logger.debug(f"Query {group} to {address} failed: {e}")
            UDP_ERRORS.labels(address, group, "socket").inc()
            return QueryResult(QueryStatus.SOCKET_ERROR, error=str(e), group=group)
        finally:
            UDP_DURATIONS.labels(address, group).observe(time.monotonic() - started)

        try:
            reply = decode_query_reply(payload, group)
        except MalformedPacket as e:
            logger.debug(f"Malformed {group} reply from {address}: {e}")
            UDP_ERRORS.labels(address, group, "malformed").inc()
            return QueryResult(QueryStatus.MALFORMED, error=str(e), group=group)

        return QueryResult(QueryStatus.SUCCESS, reply=reply, group=group)
