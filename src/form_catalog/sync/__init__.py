from .catalog_synchronizer import CatalogSynchronizer
from .disk_reconciler import DiskReconciler
from .task_coordinator import (
    CompletionListener,
    ReconciliationTaskHandle,
    TaskCoordinator,
    TaskKind,
    TaskStatus,
)

__all__ = [
    "CatalogSynchronizer",
    "CompletionListener",
    "DiskReconciler",
    "ReconciliationTaskHandle",
    "TaskCoordinator",
    "TaskKind",
    "TaskStatus",
]
