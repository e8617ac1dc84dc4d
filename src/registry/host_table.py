"""
Host table: canonical registry of known adaptors
Keyed by an immutable key with the adaptor MAC as stable identity and address as a mutable attribute
"""

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

from protocol.codec import DEFAULT_PORT
from protocol.models import DiscoveryReply
from .models import HostRecord, HostOrigin, Liveness

logger = logging.getLogger(__name__)

HostListener = Callable[[HostRecord], None]

class HostTable:
    """
    Address-aware registry of static and discovered hosts.
    Records are never removed. Callers always receive copies, so a reader
    never observes a record half way through an update.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._records: Dict[str, HostRecord] = {}
        self._by_unit_id: Dict[str, str] = {}
        self._by_address: Dict[str, str] = {}
        self._listeners: List[HostListener] = []

    # ================== REGISTRATION ==================

    def subscribe(self, listener: HostListener):
        """Call listener with every record inserted from now on"""
        self._listeners.append(listener)

    def add_static(self, host: str, port: int = DEFAULT_PORT, resolved: Optional[str] = None) -> HostRecord:
        """
        Register a configured host. Adding the same host twice is a no-op.
        resolved is the IPv4 address a hostname currently maps to; discovery replies
        from it are matched to this record.
        """
        host = host.strip()
        with self._lock:
            existing = self._records.get(host)
            if existing:
                if resolved:
                    self._index_address(host, resolved)
                return replace(existing)

            record = HostRecord(
                key=host,
                address=host,
                origin=HostOrigin.STATIC,
                port=port,
                liveness=Liveness.UNREACHABLE,
                created_at=self._clock()
            )
            self._records[host] = record
            self._by_address[host] = host
            if resolved:
                self._index_address(host, resolved)
            copy = replace(record)

        logger.info(f"[HOSTS] Static host registered: {host}:{port}")
        self._notify(copy)
        return copy

    def upsert_discovered(self, reply: DiscoveryReply, now: Optional[float] = None) -> Tuple[HostRecord, bool]:
        """
        Insert or refresh a host from a discovery reply.
        Match by unit id first, then by address (for static hosts whose identity is not known yet).
        Returns (record, created).
        """
        now = self._clock() if now is None else now

        with self._lock:
            key = self._by_unit_id.get(reply.unit_id)
            if key is None:
                key = self._by_address.get(reply.address)
                if key is not None:
                    owner = self._records[key]
                    if owner.unit_id is not None and owner.unit_id != reply.unit_id:
                        # address was handed to a different unit
                        key = None

            created = key is None
            if created:
                key = reply.unit_id
                record = HostRecord(
                    key=key,
                    address=reply.address,
                    origin=HostOrigin.DISCOVERED,
                    unit_id=reply.unit_id,
                    port=reply.port,
                    name=reply.name,
                    created_at=now
                )
                self._records[key] = record
                self._by_unit_id[reply.unit_id] = key
            else:
                record = self._records[key]
                if record.address != reply.address:
                    logger.info(f"[HOSTS] {record.display_name} moved {record.address} -> {reply.address}")
                if record.unit_id is None:
                    record.unit_id = reply.unit_id
                    self._by_unit_id[reply.unit_id] = key
                record.port = reply.port
                if reply.name:
                    record.name = reply.name

            self._set_address(record, reply.address)
            record.liveness = Liveness.RESPONDING
            record.last_seen = now
            copy = replace(record)

        if created:
            logger.info(f"[HOSTS] Discovered {copy.display_name} ({copy.unit_id}) at {copy.address}")
            self._notify(copy)
        return copy, created

    # ================== REFRESH OUTCOMES ==================

    def note_resolved(self, key: str, address: str):
        """Index the IPv4 address a host name resolved to, unless another host owns it"""
        with self._lock:
            if key in self._records:
                self._index_address(key, address)

    def note_attempt(self, key: str, now: Optional[float] = None):
        """Record the start of a refresh attempt"""
        with self._lock:
            record = self._records.get(key)
            if record:
                record.last_attempt = self._clock() if now is None else now

    def record_success(self, key: str, now: Optional[float] = None,
                       unit_id: Optional[str] = None, name: Optional[str] = None) -> Optional[HostRecord]:
        """Mark a host responding, learning its identity from the reply when still unknown"""
        now = self._clock() if now is None else now
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None

            if unit_id:
                unit_id = unit_id.upper()
                if record.unit_id is None:
                    owner = self._by_unit_id.get(unit_id)
                    if owner is None:
                        record.unit_id = unit_id
                        self._by_unit_id[unit_id] = key
                    elif owner != key:
                        logger.warning(f"[HOSTS] {key} reports unit id {unit_id} already held by {owner}")
            if name:
                record.name = name

            record.liveness = Liveness.RESPONDING
            record.last_seen = now
            record.consecutive_failures = 0
            return replace(record)

    def record_failure(self, key: str) -> Optional[HostRecord]:
        """Mark a host unreachable. The record itself is kept"""
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            record.liveness = Liveness.UNREACHABLE
            record.consecutive_failures += 1
            return replace(record)

    # ================== LOOKUPS ==================

    def get(self, key: str) -> Optional[HostRecord]:
        with self._lock:
            record = self._records.get(key)
            return replace(record) if record else None

    def find_by_unit_id(self, unit_id: str) -> Optional[HostRecord]:
        with self._lock:
            key = self._by_unit_id.get(unit_id.upper())
            return replace(self._records[key]) if key else None

    def find_by_address(self, address: str) -> Optional[HostRecord]:
        with self._lock:
            key = self._by_address.get(address)
            return replace(self._records[key]) if key else None

    def all(self) -> List[HostRecord]:
        """Copies of every record in insertion order"""
        with self._lock:
            return [replace(record) for record in self._records.values()]

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    # ================== INTERNALS ==================

    def _set_address(self, record: HostRecord, address: str):
        """Move the reverse address index; caller holds the lock"""
        if self._by_address.get(record.address) == record.key and record.address != address:
            del self._by_address[record.address]
        record.address = address
        self._by_address[address] = record.key

    def _index_address(self, key: str, address: str):
        """Add an alias to the reverse address index; caller holds the lock"""
        owner = self._by_address.get(address)
        if owner is None:
            self._by_address[address] = key
        elif owner != key:
            logger.debug(f"[HOSTS] {address} for {key} already belongs to {owner}")

    def _notify(self, record: HostRecord):
        for listener in self._listeners:
            try:
                listener(record)
            except Exception as e:
                logger.error(f"Host listener failed for {record.key}: {e}")
