"""
Wire-level data structures for the Daikin UDP protocol
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union

MetricValue = Union[float, str]

@dataclass(frozen=True)
class DiscoveryReply:
    """A unit answering a discovery broadcast"""
    unit_id: str          # adaptor MAC, stable across DHCP renewals
    address: str          # IP the reply came from
    port: int
    name: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)

@dataclass(frozen=True)
class QueryReply:
    """Decoded key/value fields from one or more query groups"""
    fields: Dict[str, str]
    groups: tuple = ()

    def merge(self, other: "QueryReply") -> "QueryReply":
        """Combine two replies, later groups overriding earlier keys"""
        merged = dict(self.fields)
        merged.update(other.fields)
        return QueryReply(fields=merged, groups=self.groups + other.groups)

class QueryStatus(Enum):
    """Closed set of query outcomes surfaced to the scheduler"""
    SUCCESS = "success"
    TIMED_OUT = "timed_out"
    MALFORMED = "malformed"
    SOCKET_ERROR = "socket_error"

@dataclass
class QueryResult:
    """Result of a single QueryClient.query call"""
    status: QueryStatus
    reply: Optional[QueryReply] = None
    error: Optional[str] = None
    group: Optional[str] = None  # group that failed, if any
    duration_seconds: float = 0.0
    peer: Optional[str] = None  # resolved IPv4 address that was queried

    @property
    def ok(self) -> bool:
        return self.status is QueryStatus.SUCCESS
