"""
Prometheus exposition of the cached unit state
"""

import logging
import time
from typing import Callable, Dict, Tuple

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily

from registry.cache import MetricCache
from registry.host_table import HostTable
from registry.models import Liveness

logger = logging.getLogger(__name__)

# Unit field -> (metric name, help)
FIELD_METRICS: Dict[str, Tuple[str, str]] = {
    'pow': ("daikin_power_on", "Unit power state (1 on, 0 off)"),
    'mode': ("daikin_mode", "Operating mode code"),
    'stemp': ("daikin_set_point_degrees", "Temperature set-point"),
    'shum': ("daikin_set_humidity_percent", "Humidity set-point"),
    'f_rate': ("daikin_fan_rate", "Fan rate setting (1 auto, 2 silent, 3-7 levels)"),
    'f_dir': ("daikin_fan_direction", "Fan swing direction code"),
    'htemp': ("daikin_unit_temperature_degrees", "Temperature measured at the indoor unit"),
    'hhum': ("daikin_unit_humidity_percent", "Humidity measured at the indoor unit"),
    'otemp': ("daikin_outdoor_temperature_degrees", "Temperature measured at the outdoor unit"),
    'cmpfreq': ("daikin_compressor_demand", "Compressor demand"),
    'today_runtime': ("daikin_daily_runtime_minutes", "Runtime today"),
    'fan': ("daikin_monitor_fan_speed", "Monitored fan speed"),
    'rawrtmp': ("daikin_monitor_raw_room_temperature", "Monitored raw room temperature"),
    'trtmp': ("daikin_monitor_room_temperature", "Monitored room temperature"),
    'fangl': ("daikin_monitor_fan_angle", "Monitored fan angle"),
    'hetmp': ("daikin_monitor_heat_exchanger_temperature", "Monitored heat exchanger temperature"),
    'ResetCount': ("daikin_monitor_resets", "Adaptor reset count"),
    'RouterDisconCnt': ("daikin_monitor_router_disconnects", "Adaptor router disconnect count"),
    'PollingErrCnt': ("daikin_monitor_polling_errors", "Adaptor polling error count"),
}

# Numeric fields that are identifiers, not measurements
IGNORED_FIELDS = {'port', 'mac', 'id', 'pw', 'ret'}


class UnitCollector:
    """Builds gauges from the cache at scrape time"""

    def __init__(self, host_table: HostTable, cache: MetricCache, clock: Callable[[], float] = time.time):
        self.host_table = host_table
        self.cache = cache
        self._clock = clock

    def collect(self):
        labels = ["device", "host"]
        families = {
            field: GaugeMetricFamily(name, doc, labels=labels)
            for field, (name, doc) in FIELD_METRICS.items()
        }
        generic = GaugeMetricFamily("daikin_unit_field", "Other numeric fields reported by the unit",
                                    labels=labels + ["field"])
        info = GaugeMetricFamily("daikin_unit_info", "Unit identity", labels=labels + ["mac", "origin"])
        stale = GaugeMetricFamily("daikin_snapshot_stale",
                                  "Cached values older than one refresh interval (1 stale, 0 fresh)", labels=labels)
        age = GaugeMetricFamily("daikin_snapshot_age_seconds", "Seconds since the cached values were captured",
                                labels=labels)
        up = GaugeMetricFamily("daikin_host_up", "Last refresh succeeded (1 responding, 0 unreachable)",
                               labels=["key", "host", "origin"])
        failures = GaugeMetricFamily("daikin_host_consecutive_failures", "Failed refreshes since the last success",
                                     labels=["key", "host", "origin"])

        now = self._clock()

        for record in self.host_table.all():
            host_labels = [record.key, record.address, record.origin.value]
            up.add_metric(host_labels, 1.0 if record.liveness is Liveness.RESPONDING else 0.0)
            failures.add_metric(host_labels, float(record.consecutive_failures))

        for record, snapshot in self.cache.snapshot_all():
            values = [record.display_name, record.address]
            info.add_metric(values + [record.unit_id or "", record.origin.value], 1.0)
            stale.add_metric(values, 1.0 if snapshot.stale else 0.0)
            age.add_metric(values, snapshot.age(now))

            for field, value in snapshot.fields.items():
                if not isinstance(value, float) or field in IGNORED_FIELDS:
                    continue
                if field in families:
                    families[field].add_metric(values, value)
                else:
                    generic.add_metric(values + [field], value)

        yield info
        yield from families.values()
        yield generic
        yield stale
        yield age
        yield up
        yield failures


def create_metrics_routes(host_table: HostTable, cache: MetricCache, include_process_metrics: bool = True):
    """Create the /metrics route over a registry holding the unit collector"""
    router = APIRouter(tags=["metrics"])

    registry = CollectorRegistry()
    registry.register(UnitCollector(host_table, cache))

    @router.get("/metrics")
    def metrics():
        """Prometheus text exposition"""
        body = generate_latest(registry)
        if include_process_metrics:
            body += generate_latest(REGISTRY)
        return Response(content=body, media_type=CONTENT_TYPE_LATEST)

    return router
