# shipsync/domain/__init__.py
# Makes 'domain' a package. Exports ORM models and sync dataclasses.

# --- ORM Models ---
from .buyer import Buyer, BuyerSaleRecord
from .shipment_mirror import ShipmentMirror
from .order import Customer, PackageDetail, Order
from .sync_checkpoint import SyncCheckpoint

# --- Dataclasses ---
from .sync import (
    SortType, CrawlState, SkipReason, OutcomeStatus,
    ShipmentPageRequest, ShipmentPage, RowOutcome, ReconcileBatchResult,
    SyncRunRequest, SyncRunSummary,
)

__all__ = [
    # ORM Models
    "Buyer", "BuyerSaleRecord",
    "ShipmentMirror",
    "Customer", "PackageDetail", "Order",
    "SyncCheckpoint",

    # Dataclasses
    "SortType", "CrawlState", "SkipReason", "OutcomeStatus",
    "ShipmentPageRequest", "ShipmentPage", "RowOutcome", "ReconcileBatchResult",
    "SyncRunRequest", "SyncRunSummary",
]
