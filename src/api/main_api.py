"""
Main FastAPI application setup
Read-only HTTP surface: Prometheus metrics plus a small JSON status API
"""

from fastapi import FastAPI
import logging

from registry.cache import MetricCache
from registry.host_table import HostTable

from .metrics_routes import create_metrics_routes
from .system_routes import create_system_routes

logger = logging.getLogger(__name__)

class ExporterAPI:
    """HTTP renderer over the host table and metric cache"""

    def __init__(self, host_table: HostTable, cache: MetricCache, discovery=None, scheduler=None,
                 include_process_metrics: bool = True):
        self.host_table = host_table
        self.cache = cache
        self.discovery = discovery
        self.scheduler = scheduler
        self.app = FastAPI(
            title="Daikin Exporter",
            description="Prometheus exporter for Daikin adaptors discovered over UDP",
            version="0.1.0"
        )
        self._setup_routes(include_process_metrics)

    def _setup_routes(self, include_process_metrics: bool):
        """Setup FastAPI routes using modular approach"""
        metrics_router = create_metrics_routes(self.host_table, self.cache, include_process_metrics)
        system_router = create_system_routes(self.host_table, self.cache, self.discovery, self.scheduler)

        self.app.include_router(metrics_router)
        self.app.include_router(system_router)

        @self.app.get("/")
        def root():
            """Landing page pointing at the scrape endpoint"""
            return {"service": "daikin-exporter", "metrics": "/metrics", "hosts": "/api/hosts"}
