# shipsync/services/sync/__init__.py
# Shipment synchronization: checkpointing, reconciliation and the crawl driver.

from .checkpoint_store import (
    CheckpointStore, InMemoryCheckpointStore, FileCheckpointStore, DatabaseCheckpointStore, build_checkpoint_store
)
from .shipment_reconciler import ShipmentReconciler
from .shipment_sync_service import (
    ShipmentSyncService, start_shipment_sync_scheduler, stop_shipment_sync_scheduler, is_scheduler_running
)

__all__ = [
    "CheckpointStore", "InMemoryCheckpointStore", "FileCheckpointStore", "DatabaseCheckpointStore",
    "build_checkpoint_store",
    "ShipmentReconciler",
    "ShipmentSyncService", "start_shipment_sync_scheduler", "stop_shipment_sync_scheduler", "is_scheduler_running",
]
