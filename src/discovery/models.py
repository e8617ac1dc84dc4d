"""
Discovery data structures and models
"""

from dataclasses import dataclass
from typing import List, Optional

@dataclass
class BurstResult:
    """Results from one discovery burst"""
    requests_sent: int
    replies: int
    malformed: int
    new_hosts: List[str]      # keys of records created during the burst
    duration_seconds: float
    error: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.error is not None
