# shipsync/database/sale_record_repository.py
# Handles database operations for buyer sale records (SRNs).

from typing import Optional, Tuple
from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .base_repository import BaseRepository
from shipsync.domain.buyer import BuyerSaleRecord
from shipsync.domain.order import Order
from shipsync.utils.logger import logger
from shipsync.api.errors import DatabaseError, UniquenessConflictError


class SaleRecordRepository(BaseRepository):
    """Repository for BuyerSaleRecord. Methods expect a Session object to be passed in."""

    def get(self, db: Session, srn: int, with_buyer: bool = False) -> Optional[BuyerSaleRecord]:
        if with_buyer:
            stmt = (
                select(BuyerSaleRecord)
                .options(joinedload(BuyerSaleRecord.buyer))
                .where(BuyerSaleRecord.sale_record_number == srn)
            )
            return db.scalars(stmt).one_or_none()
        return db.get(BuyerSaleRecord, srn)

    def find_by_shipment_id(self, db: Session, kurasi_shipment_id: str, with_buyer: bool = False) -> Optional[BuyerSaleRecord]:
        stmt = select(BuyerSaleRecord).where(BuyerSaleRecord.kurasi_shipment_id == kurasi_shipment_id)
        if with_buyer:
            stmt = stmt.options(joinedload(BuyerSaleRecord.buyer))
        return db.scalars(stmt).one_or_none()

    def exists(self, db: Session, srn: int, exclude_buyer_id: Optional[int] = None) -> bool:
        stmt = select(BuyerSaleRecord.sale_record_number).where(BuyerSaleRecord.sale_record_number == srn)
        if exclude_buyer_id is not None:
            stmt = stmt.where(BuyerSaleRecord.buyer_id != exclude_buyer_id)
        return db.scalars(stmt).first() is not None

    def _release_shipment_id(self, db: Session, srn: int, kurasi_shipment_id: Optional[str]):
        """A shipment id belongs to one SRN; a newer row claiming it wins."""
        if not kurasi_shipment_id:
            return
        holder = self.find_by_shipment_id(db, kurasi_shipment_id)
        if holder is not None and holder.sale_record_number != srn:
            logger.warning(
                f"ORM: Shipment {kurasi_shipment_id} moves from SRN {holder.sale_record_number} to SRN {srn}."
            )
            holder.kurasi_shipment_id = None
            db.flush()

    def upsert(
        self,
        db: Session,
        srn: int,
        buyer_id: int,
        kurasi_shipment_id: Optional[str] = None,
        tracking_number: Optional[str] = None,
        tracking_slug: Optional[str] = None,
    ) -> Tuple[BuyerSaleRecord, bool]:
        """
        Creates or overwrites the SRN keyed by its number. Buyer linkage and
        shipment id always follow the incoming row; tracking fields only move
        forward (None never erases a known value).

        Returns:
            (record, created)
        """
        try:
            self._release_shipment_id(db, srn, kurasi_shipment_id)
            record = db.get(BuyerSaleRecord, srn)
            if record is None:
                record = BuyerSaleRecord(
                    sale_record_number=srn,
                    buyer_id=buyer_id,
                    kurasi_shipment_id=kurasi_shipment_id,
                    tracking_number=tracking_number,
                    tracking_slug=tracking_slug,
                )
                db.add(record)
                db.flush()
                return record, True

            if record.buyer_id != buyer_id:
                logger.info(f"ORM: SRN {srn} re-linked from buyer {record.buyer_id} to buyer {buyer_id}.")
                record.buyer_id = buyer_id
            if kurasi_shipment_id:
                record.kurasi_shipment_id = kurasi_shipment_id
            if tracking_number:
                record.tracking_number = tracking_number
            if tracking_slug:
                record.tracking_slug = tracking_slug
            db.flush()
            return record, False
        except IntegrityError as e:
            logger.warning(f"ORM: Integrity error upserting SRN {srn}: {e}")
            raise UniquenessConflictError(f"SRN {srn} conflicts with an existing record.", fields=['saleRecordNumber']) from e
        except SQLAlchemyError as e:
            logger.error(f"ORM: Database error upserting SRN {srn}: {e}", exc_info=True)
            raise DatabaseError(f"Failed to upsert SRN {srn}: {e}") from e

    def refresh_tracking(
        self,
        db: Session,
        record: BuyerSaleRecord,
        kurasi_shipment_id: Optional[str],
        tracking_number: Optional[str],
        tracking_slug: Optional[str],
    ) -> bool:
        """Updates only the tracking side of an SRN. Returns True when anything changed."""
        changed = False
        if kurasi_shipment_id and record.kurasi_shipment_id != kurasi_shipment_id:
            self._release_shipment_id(db, record.sale_record_number, kurasi_shipment_id)
            record.kurasi_shipment_id = kurasi_shipment_id
            changed = True
        if tracking_number and record.tracking_number != tracking_number:
            record.tracking_number = tracking_number
            changed = True
        if tracking_slug and record.tracking_slug != tracking_slug:
            record.tracking_slug = tracking_slug
            changed = True
        if changed:
            db.flush()
        return changed

    def create_for_buyer(self, db: Session, srn: int, buyer_id: int) -> BuyerSaleRecord:
        record = BuyerSaleRecord(sale_record_number=srn, buyer_id=buyer_id)
        db.add(record)
        try:
            db.flush()
        except IntegrityError as e:
            raise UniquenessConflictError(f"SRN {srn} already exists.", fields=['saleRecordNumber']) from e
        return record

    def delete(self, db: Session, record: BuyerSaleRecord):
        srn = record.sale_record_number
        self._bulk(db, update(Order).where(Order.srn_id == srn).values(srn_id=None))
        db.delete(record)
        db.flush()
        logger.info(f"ORM: SRN {srn} deleted. Commit pending.")
