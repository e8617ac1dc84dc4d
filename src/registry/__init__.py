"""
Registry module: shared host table and metric cache
"""

from .cache import MetricCache
from .host_table import HostTable
from .models import HostRecord, HostOrigin, Liveness, MetricSnapshot

__all__ = ['MetricCache', 'HostTable', 'HostRecord', 'HostOrigin', 'Liveness', 'MetricSnapshot']
