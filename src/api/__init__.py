"""
API module for metrics scraping and host status
"""

from .main_api import ExporterAPI
from .metrics_routes import create_metrics_routes, UnitCollector
from .system_routes import create_system_routes

__all__ = ['ExporterAPI', 'create_metrics_routes', 'UnitCollector', 'create_system_routes']
