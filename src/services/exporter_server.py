"""
Exporter Server - Main orchestrator for all services
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional
import uvicorn

# Local imports
from config_loader import load_config, setup_logging
from udp_helper import parse_bind_address, resolve_ipv4
from registry.host_table import HostTable
from registry.cache import MetricCache
from registry.models import Liveness
from protocol.client import QueryClient
from discovery.manager import DiscoveryEngine
from services.refresh_scheduler import RefreshScheduler
from api.main_api import ExporterAPI

logger = logging.getLogger(__name__)

class ExporterServer:
    """Wires discovery, refresh scheduling, the cache and the HTTP renderer together"""

    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict] = None):
        self.config = config if config is not None else load_config(config_path)
        if config is None:
            setup_logging(self.config)

        self.host_table = HostTable()
        self.cache = MetricCache(self.host_table, self.config['refresh_interval'] / 1000)
        self.query_client = QueryClient(self.config)
        self.scheduler = RefreshScheduler(self.config, self.host_table, self.cache, self.query_client)

        self.discovery: Optional[DiscoveryEngine] = None
        if self.config.get('discover_enabled', True):
            self.discovery = DiscoveryEngine(self.config, self.host_table)

        self.api = ExporterAPI(self.host_table, self.cache, self.discovery, self.scheduler)

        self.running = False
        self.tasks: List[asyncio.Task] = []
        self._api_server: Optional[uvicorn.Server] = None

    async def start(self, serve_api: bool = True):
        """Start all services; with serve_api this blocks until the HTTP server exits"""
        logger.info("Starting Daikin exporter...")

        try:
            # Static hosts first so discovery replies can adopt them by address
            for host in self.config.get('hosts', []):
                resolved = await resolve_ipv4(host)
                if resolved is None:
                    logger.warning(f"Static host {host} does not resolve yet, will retry on each refresh")
                self.host_table.add_static(host, self.config['discover_port'], resolved=resolved)

            self.running = True
            await self.scheduler.start()

            if self.discovery:
                await self.discovery.start()
            else:
                logger.info("Discovery disabled - polling static hosts only")

            self.tasks = [
                asyncio.create_task(self._monitoring_service())
            ]

            logger.info(f"All services started ({len(self.host_table)} hosts known at startup)")

            if serve_api:
                await self._start_api_server()

        except Exception as e:
            logger.error(f"Exporter startup failed: {e}")
            await self.stop()
            raise

    async def stop(self):
        """Stop all services gracefully"""
        if not self.running and not self.tasks:
            return
        logger.info("Stopping exporter...")
        self.running = False

        if self._api_server:
            self._api_server.should_exit = True

        if self.discovery:
            await self.discovery.stop()
        await self.scheduler.stop()

        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

        logger.info("Exporter stopped")

    # ================== MONITORING ==================

    def health_summary(self) -> Dict[str, int]:
        """Counts used by the periodic health log"""
        records = self.host_table.all()
        snapshots = self.cache.snapshot_all()
        return {
            'hosts': len(records),
            'responding': sum(1 for r in records if r.liveness is Liveness.RESPONDING),
            'cached': len(snapshots),
            'stale': sum(1 for _, s in snapshots if s.stale)
        }

    async def _monitoring_service(self):
        """Background service logging host health"""
        check_interval = self.config['monitoring']['health_check_interval_minutes'] * 60

        logger.info(f"Monitoring service started (every {check_interval/60} minutes)")

        while self.running:
            try:
                await asyncio.sleep(check_interval)

                if not self.running:
                    break

                summary = self.health_summary()
                logger.info(f"Health check: {summary['hosts']} hosts, {summary['responding']} responding, "
                            f"{summary['cached']} cached ({summary['stale']} stale)")

                now = time.time()
                for record in self.host_table.all():
                    if record.liveness is Liveness.UNREACHABLE and record.consecutive_failures:
                        since = f"{now - record.last_seen:.0f}s ago" if record.last_seen else "never"
                        logger.warning(f"Host {record.display_name} ({record.address}) unreachable, "
                                       f"{record.consecutive_failures} failed refreshes, last seen {since}")

            except Exception as e:
                logger.error(f"Monitoring service error: {e}")

    async def _start_api_server(self):
        """Start the FastAPI server"""
        host, port = parse_bind_address(self.config['bind_address'], 9150)
        config = uvicorn.Config(
            self.api.app,
            host=host,
            port=port,
            log_level="info",
            access_log=False  # scrapes are too frequent to log
        )

        self._api_server = uvicorn.Server(config)
        # Signals are handled by main
        self._api_server.install_signal_handlers = lambda: None

        logger.info(f"Serving metrics on http://{host}:{port}/metrics")
        await self._api_server.serve()
