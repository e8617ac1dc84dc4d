"""
Stale-serving metric cache
Holds the last successful snapshot per host for the process lifetime
"""

import threading
import time
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from protocol.codec import metric_value
from protocol.models import MetricValue
from .host_table import HostTable
from .models import HostRecord, MetricSnapshot

class MetricCache:
    """
    Last-known snapshot per host key.
    Entries are never evicted; staleness is computed when read, not by a sweep.
    """

    def __init__(self, host_table: HostTable, refresh_interval: float,
                 clock: Callable[[], float] = time.time):
        self.host_table = host_table
        self.refresh_interval = refresh_interval  # seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshots: Dict[str, MetricSnapshot] = {}

    def put(self, key: str, fields: Mapping[str, str], captured_at: Optional[float] = None) -> MetricSnapshot:
        """Replace the host's snapshot wholesale with freshly captured fields"""
        values: Dict[str, MetricValue] = {name: metric_value(raw) for name, raw in fields.items()}
        snapshot = MetricSnapshot(
            fields=values,
            captured_at=self._clock() if captured_at is None else captured_at,
            stale=False
        )
        with self._lock:
            self._snapshots[key] = snapshot
        return snapshot

    def get(self, key: str) -> Optional[MetricSnapshot]:
        """Snapshot for a host with staleness as of now, None if never refreshed"""
        with self._lock:
            snapshot = self._snapshots.get(key)
        if snapshot is None:
            return None
        return snapshot.with_staleness(self._clock(), self.refresh_interval)

    def snapshot_all(self) -> List[Tuple[HostRecord, MetricSnapshot]]:
        """Every host with a cached snapshot, paired with a copy of its record"""
        now = self._clock()
        with self._lock:
            snapshots = dict(self._snapshots)

        result = []
        for record in self.host_table.all():
            snapshot = snapshots.get(record.key)
            if snapshot is not None:
                result.append((record, snapshot.with_staleness(now, self.refresh_interval)))
        return result

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, key: str) -> bool:
        return key in self._snapshots
