"""Services package."""
from services.cache_tracker import CacheFreshnessTracker, get_tracker
from services.storage import MemoryStorage, Storage, StorageError, get_storage
from services.sync_orchestrator import SyncOrchestrator, SyncReport, get_orchestrator

__all__ = [
    "CacheFreshnessTracker",
    "get_tracker",
    "MemoryStorage",
    "Storage",
    "StorageError",
    "get_storage",
    "SyncOrchestrator",
    "SyncReport",
    "get_orchestrator",
]
