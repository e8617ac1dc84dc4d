"""
Host table and cache data structures
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from protocol.models import MetricValue

class HostOrigin(Enum):
    """How a host entered the table"""
    STATIC = "static"
    DISCOVERED = "discovered"

class Liveness(Enum):
    """Outcome of the most recent contact with a host"""
    RESPONDING = "responding"
    UNREACHABLE = "unreachable"

@dataclass
class HostRecord:
    """A known adaptor. Records are never deleted; address may change in place"""
    key: str                        # table key, immutable (MAC or configured host)
    address: str
    origin: HostOrigin
    unit_id: Optional[str] = None   # adaptor MAC once known
    port: int = 30050
    name: Optional[str] = None
    liveness: Liveness = Liveness.UNREACHABLE
    last_seen: Optional[float] = None
    last_attempt: Optional[float] = None
    consecutive_failures: int = 0
    created_at: float = 0.0

    @property
    def display_name(self) -> str:
        return self.name or self.address

@dataclass(frozen=True)
class MetricSnapshot:
    """Last-known values of one host, replaced wholesale on each successful refresh"""
    fields: Dict[str, MetricValue]
    captured_at: float
    stale: bool = False

    def age(self, now: float) -> float:
        return max(0.0, now - self.captured_at)

    def with_staleness(self, now: float, refresh_interval: float) -> "MetricSnapshot":
        """Copy with stale computed against the read time"""
        stale = self.age(now) > refresh_interval
        if stale == self.stale:
            return self
        return MetricSnapshot(fields=self.fields, captured_at=self.captured_at, stale=stale)
