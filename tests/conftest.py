"""Shared pytest fixtures and fakes for exporter tests."""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from protocol.models import QueryReply, QueryResult, QueryStatus
from registry.cache import MetricCache
from registry.host_table import HostTable

BASIC_INFO = (
    b"ret=OK,type=aircon,reg=eu,dst=1,ver=1_2_51,rev=D3A0C9F,pow=1,err=0,location=0,"
    b"name=%4c%69%76%69%6e%67,icon=0,method=home only,port=30050,id=,pw=,lpw_flag=0,"
    b"adp_kind=3,pv=2,cpv=2,cpv_minor=00,led=1,en_setzone=1,mac=A4CBC0123456,adp_mode=run"
)
SENSOR_INFO = b"ret=OK,htemp=21.5,hhum=-,otemp=9.0,err=0,cmpfreq=12"
CONTROL_INFO = b"ret=OK,pow=1,mode=4,adv=,stemp=22.0,shum=0,f_rate=A,f_dir=3"


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeQueryClient:
    """Test double for QueryClient: scripted outcomes, records calls and concurrency."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.replies: Dict[str, Optional[Dict[str, str]]] = {}
        self.calls: List[Tuple[str, float]] = []
        self.in_flight: Dict[str, int] = {}
        self.max_in_flight: Dict[str, int] = {}
        self.resolved: Dict[str, str] = {}

    def respond(self, address: str, fields: Optional[Dict[str, str]]) -> None:
        """Reply with *fields*, or time out when None."""
        self.replies[address] = fields

    def resolve(self, address: str, ip: str) -> None:
        """Report *ip* as the resolved peer for queries to *address*."""
        self.resolved[address] = ip

    async def query(self, address, timeout=None, groups=None, port=None) -> QueryResult:
        self.calls.append((address, timeout))
        self.in_flight[address] = self.in_flight.get(address, 0) + 1
        self.max_in_flight[address] = max(self.max_in_flight.get(address, 0), self.in_flight[address])
        try:
            fields = self.replies.get(address)
            if fields is None:
                await asyncio.sleep(timeout or 0)
                return QueryResult(QueryStatus.TIMED_OUT, error="timed out", peer=self.resolved.get(address))
            if self.delay:
                await asyncio.sleep(self.delay)
            return QueryResult(QueryStatus.SUCCESS, reply=QueryReply(fields=dict(fields)),
                               peer=self.resolved.get(address))
        finally:
            self.in_flight[address] -= 1


class UnitResponder(asyncio.DatagramProtocol):
    """Fake adaptor on localhost answering requests by path."""

    def __init__(self, handler: Callable[[bytes], Optional[bytes]]):
        self.handler = handler
        self.requests: List[bytes] = []
        self.transport = None

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.requests.append(data)
        reply = self.handler(data)
        if reply is not None:
            self.transport.sendto(reply, addr)


async def start_responder(handler: Callable[[bytes], Optional[bytes]]):
    """Bind a UnitResponder on 127.0.0.1; returns (transport, protocol, port)."""
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        lambda: UnitResponder(handler), local_addr=("127.0.0.1", 0)
    )
    return transport, protocol, transport.get_extra_info("sockname")[1]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def host_table(clock) -> HostTable:
    return HostTable(clock=clock)


@pytest.fixture
def cache(host_table, clock) -> MetricCache:
    return MetricCache(host_table, refresh_interval=7.5, clock=clock)
