# shipsync/kurasi_integration/__init__.py
# Makes 'kurasi_integration' a package. Exports Kurasi API service classes.

from .kurasi_auth_service import KurasiAuthService
from .kurasi_shipment_service import KurasiShipmentService, RetryStats, extract_rows

__all__ = [
    "KurasiAuthService",
    "KurasiShipmentService",
    "RetryStats",
    "extract_rows",
]
