"""
Host status and system health API routes
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Dict, List, Optional, Union
from datetime import datetime, timezone
import logging

from registry.cache import MetricCache
from registry.host_table import HostTable
from registry.models import HostRecord, Liveness, MetricSnapshot

logger = logging.getLogger(__name__)

# Response models
class SnapshotResponse(BaseModel):
    fields: Dict[str, Union[float, str]]
    captured_at: datetime
    stale: bool

class HostResponse(BaseModel):
    key: str
    address: str
    port: int
    unit_id: Optional[str]
    name: Optional[str]
    origin: str
    liveness: str
    last_seen: Optional[datetime]
    last_attempt: Optional[datetime]
    consecutive_failures: int
    snapshot: Optional[SnapshotResponse] = None

class HealthResponse(BaseModel):
    status: str
    hosts: int
    responding: int
    unreachable: int
    cached: int
    stale: int
    discovery: Optional[Dict[str, int]] = None
    refresh: Optional[Dict[str, int]] = None

def _timestamp(value: Optional[float]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None

def _host_response(record: HostRecord, snapshot: Optional[MetricSnapshot]) -> HostResponse:
    return HostResponse(
        key=record.key,
        address=record.address,
        port=record.port,
        unit_id=record.unit_id,
        name=record.name,
        origin=record.origin.value,
        liveness=record.liveness.value,
        last_seen=_timestamp(record.last_seen),
        last_attempt=_timestamp(record.last_attempt),
        consecutive_failures=record.consecutive_failures,
        snapshot=SnapshotResponse(
            fields=dict(snapshot.fields),
            captured_at=_timestamp(snapshot.captured_at),
            stale=snapshot.stale
        ) if snapshot else None
    )

def create_system_routes(host_table: HostTable, cache: MetricCache, discovery=None, scheduler=None):
    """Create host status and health routes"""
    router = APIRouter(prefix="/api", tags=["system"])

    @router.get("/hosts", response_model=List[HostResponse])
    def list_hosts():
        """All known hosts with their cached values, if any"""
        return [_host_response(record, cache.get(record.key)) for record in host_table.all()]

    @router.get("/hosts/{key}", response_model=HostResponse)
    def get_host(key: str):
        """One host by table key"""
        record = host_table.get(key)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Unknown host: {key}")
        return _host_response(record, cache.get(key))

    @router.get("/system/health", response_model=HealthResponse)
    def system_health():
        """Counts of responding, unreachable and stale hosts"""
        records = host_table.all()
        snapshots = cache.snapshot_all()
        responding = sum(1 for r in records if r.liveness is Liveness.RESPONDING)
        stale = sum(1 for _, s in snapshots if s.stale)

        if not records:
            status = "idle"
        elif responding == len(records):
            status = "healthy"
        else:
            status = "degraded"

        return HealthResponse(
            status=status,
            hosts=len(records),
            responding=responding,
            unreachable=len(records) - responding,
            cached=len(snapshots),
            stale=stale,
            discovery=dict(discovery.stats) if discovery else None,
            refresh=dict(scheduler.stats) if scheduler else None
        )

    return router
