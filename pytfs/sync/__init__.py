"""Clone engine for pytfs - mirrors remote TFVC folders onto local disk."""

from .engine import CloneStats, TreeSynchronizer
from .fs import ensure_directory, safe_child_name
from .operations import SyncOperations

__all__ = [
    "TreeSynchronizer",
    "CloneStats",
    "SyncOperations",
    "ensure_directory",
    "safe_child_name",
]
