"""
Discovery module for Daikin adaptor discovery
"""

from .manager import DiscoveryEngine
from .models import BurstResult

__all__ = ['DiscoveryEngine', 'BurstResult']
