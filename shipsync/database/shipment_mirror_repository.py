# shipsync/database/shipment_mirror_repository.py
# Handles database operations for the Kurasi shipment mirror.

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from sqlalchemy import select, func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from .base_repository import BaseRepository
from shipsync.domain.shipment_mirror import ShipmentMirror
from shipsync.utils.logger import logger
from shipsync.api.errors import DatabaseError

MIRROR_FIELDS = (
    'sale_record_number', 'flag_id',
    'buyer_full_name', 'buyer_country', 'buyer_city', 'buyer_state', 'buyer_zip', 'buyer_phone',
    'service_name', 'carrier', 'shipping_fee', 'shipping_fee_minor',
    'chargeable_weight', 'actual_weight',
    'tracking_number', 'awb', 'box_id',
    'shipment_received_at', 'label_created_at', 'shipped_at',
)


class ShipmentMirrorRepository(BaseRepository):
    """Repository for ShipmentMirror rows. Methods expect a Session object to be passed in."""

    def get(self, db: Session, kurasi_shipment_id: str) -> Optional[ShipmentMirror]:
        return db.get(ShipmentMirror, kurasi_shipment_id)

    def count(self, db: Session) -> int:
        return db.scalar(select(func.count()).select_from(ShipmentMirror)) or 0

    def upsert(self, db: Session, kurasi_shipment_id: str, fields: Dict[str, Any]) -> bool:
        """
        Replaces every mirrored field with the incoming values (None included).

        Returns:
            True when the row was created.
        """
        try:
            mirror = db.get(ShipmentMirror, kurasi_shipment_id)
            created = mirror is None
            if created:
                mirror = ShipmentMirror(kurasi_shipment_id=kurasi_shipment_id)
                db.add(mirror)
            for name in MIRROR_FIELDS:
                setattr(mirror, name, fields.get(name))
            mirror.last_synced_at = datetime.now(timezone.utc)
            db.flush()
            return created
        except SQLAlchemyError as e:
            logger.error(f"ORM: Database error upserting shipment mirror {kurasi_shipment_id}: {e}", exc_info=True)
            raise DatabaseError(f"Failed to upsert shipment {kurasi_shipment_id}: {e}") from e
