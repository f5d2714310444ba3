"""
Verified-record stores.

``VerifiedRecordStore`` is the contract the pipeline depends on;
``MemoryRecordStore`` is the process-lifetime implementation.
"""

from .base import VerifiedRecordStore
from .memory_store import MemoryRecordStore

__all__ = ["VerifiedRecordStore", "MemoryRecordStore"]
