"""
Adapters layer - Schedule stores (hospital REST API, in-memory/JSON file).
"""

from .api_store import ApiScheduleStore
from .memory_store import MemoryScheduleStore

__all__ = ["ApiScheduleStore", "MemoryScheduleStore"]
