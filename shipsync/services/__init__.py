# shipsync/services/__init__.py
# Makes 'services' a package. Exports service classes.

from .buyer_service import BuyerService
from .sale_record_service import SaleRecordService
from .order_service import OrderService
from .sync import ShipmentSyncService, ShipmentReconciler

__all__ = [
    "BuyerService",
    "SaleRecordService",
    "OrderService",
    "ShipmentSyncService",
    "ShipmentReconciler",
]
