# shipsync/database/buyer_repository.py
# Handles database operations for Buyers using SQLAlchemy ORM.

from typing import Optional, Dict, Any, Tuple, List
from sqlalchemy import select, func, delete, update, or_
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .base_repository import BaseRepository
from shipsync.domain.buyer import Buyer, BuyerSaleRecord
from shipsync.domain.order import Order, PackageDetail
from shipsync.utils.logger import logger
from shipsync.api.errors import DatabaseError, UniquenessConflictError

# Fields a sync row may overwrite on an existing buyer. The natural key is never touched.
MUTABLE_CONTACT_FIELDS = ('full_name', 'address1', 'address2', 'city', 'state', 'zip_code', 'email')


class BuyerRepository(BaseRepository):
    """
    Repository for Buyers. Methods expect a Session object to be passed in;
    the caller owns commit/rollback.
    """

    def find_by_id(self, db: Session, buyer_id: int, with_srns: bool = False) -> Optional[Buyer]:
        logger.debug(f"ORM: Finding buyer by ID {buyer_id}")
        try:
            if with_srns:
                stmt = select(Buyer).options(selectinload(Buyer.sale_records)).where(Buyer.id == buyer_id)
                return db.scalars(stmt).one_or_none()
            return db.get(Buyer, buyer_id)
        except SQLAlchemyError as e:
            logger.error(f"ORM: Database error finding buyer {buyer_id}: {e}", exc_info=True)
            raise DatabaseError(f"Failed to find buyer {buyer_id}: {e}") from e

    def find_by_natural_key(self, db: Session, country: str, phone: str) -> Optional[Buyer]:
        stmt = select(Buyer).where(Buyer.country == country, Buyer.phone == phone)
        return db.scalars(stmt).one_or_none()

    def upsert_by_natural_key(self, db: Session, country: str, phone: str, fields: Dict[str, Any]) -> Tuple[Buyer, bool]:
        """
        Creates the buyer keyed by (country, phone) or refreshes its mutable
        contact fields. Empty incoming values do not blank out stored ones,
        except for address2/state which legitimately come back empty.

        Returns:
            (buyer, created)
        """
        try:
            buyer = self.find_by_natural_key(db, country, phone)
            if buyer is None:
                buyer = Buyer(country=country, phone=phone)
                for name in MUTABLE_CONTACT_FIELDS:
                    setattr(buyer, name, fields.get(name) or '')
                buyer.full_name = buyer.full_name or ''
                db.add(buyer)
                db.flush()
                logger.debug(f"ORM: Buyer created (ID: {buyer.id}) for {country}/{phone}.")
                return buyer, True

            for name in MUTABLE_CONTACT_FIELDS:
                value = fields.get(name)
                if value is None:
                    continue
                if value == '' and name not in ('address2', 'state'):
                    continue
                if getattr(buyer, name) != value:
                    setattr(buyer, name, value)
            db.flush()
            return buyer, False
        except IntegrityError as e:
            logger.warning(f"ORM: Integrity error upserting buyer {country}/{phone}: {e}")
            raise UniquenessConflictError(
                "Another buyer already uses this country+phone.", fields=['buyerCountry', 'buyerPhone']
            ) from e

    def create(self, db: Session, fields: Dict[str, Any]) -> Buyer:
        buyer = Buyer(**fields)
        db.add(buyer)
        try:
            db.flush()
        except IntegrityError as e:
            raise UniquenessConflictError(
                "Another buyer already uses this country+phone.", fields=['buyerCountry', 'buyerPhone']
            ) from e
        logger.info(f"ORM: Buyer added to session (ID: {buyer.id}). Commit pending.")
        return buyer

    def key_taken_by_other(self, db: Session, country: str, phone: str, buyer_id: int) -> bool:
        stmt = select(Buyer.id).where(Buyer.country == country, Buyer.phone == phone, Buyer.id != buyer_id)
        return db.scalars(stmt).first() is not None

    def update_fields(self, db: Session, buyer: Buyer, fields: Dict[str, Any]) -> Buyer:
        for name, value in fields.items():
            setattr(buyer, name, value)
        try:
            db.flush()
        except IntegrityError as e:
            raise UniquenessConflictError(
                "Another buyer already uses this country+phone.", fields=['buyerCountry', 'buyerPhone']
            ) from e
        return buyer

    def count_orders(self, db: Session, buyer_id: int) -> int:
        return db.scalar(select(func.count()).select_from(Order).where(Order.buyer_id == buyer_id)) or 0

    def delete_with_dependents(self, db: Session, buyer_id: int, delete_orders: bool, cascade_packages: bool) -> Dict[str, int]:
        """
        Deletes the buyer's sale records, optionally its orders (and their
        packages), then the buyer. Runs inside the caller's transaction.
        """
        removed = {'srns': 0, 'orders': 0, 'packages': 0}
        try:
            srn_ids = select(BuyerSaleRecord.sale_record_number).where(BuyerSaleRecord.buyer_id == buyer_id)
            # Orders of other buyers can still point at these SRNs
            self._bulk(db, update(Order).where(Order.srn_id.in_(srn_ids)).values(srn_id=None))

            if delete_orders:
                package_ids = list(db.scalars(
                    select(Order.package_id).where(Order.buyer_id == buyer_id, Order.package_id.is_not(None))
                ))
                removed['orders'] = self._bulk(db, delete(Order).where(Order.buyer_id == buyer_id)).rowcount or 0
                if cascade_packages and package_ids:
                    removed['packages'] = self._bulk(
                        db, delete(PackageDetail).where(PackageDetail.id.in_(package_ids))
                    ).rowcount or 0

            removed['srns'] = self._bulk(
                db, delete(BuyerSaleRecord).where(BuyerSaleRecord.buyer_id == buyer_id)
            ).rowcount or 0
            self._bulk(db, delete(Buyer).where(Buyer.id == buyer_id))
            db.expire_all()
            logger.info(f"ORM: Buyer {buyer_id} deleted with dependents {removed}. Commit pending.")
            return removed
        except SQLAlchemyError as e:
            logger.error(f"ORM: Database error deleting buyer {buyer_id}: {e}", exc_info=True)
            raise DatabaseError(f"Failed to delete buyer {buyer_id}: {e}") from e

    def reassign_and_delete(self, db: Session, source_id: int, target_id: int) -> Dict[str, int]:
        """Moves orders and sale records from source to target, then deletes source."""
        try:
            orders = self._bulk(
                db, update(Order).where(Order.buyer_id == source_id).values(buyer_id=target_id)
            ).rowcount or 0
            srns = self._bulk(
                db, update(BuyerSaleRecord).where(BuyerSaleRecord.buyer_id == source_id).values(buyer_id=target_id)
            ).rowcount or 0
            self._bulk(db, delete(Buyer).where(Buyer.id == source_id))
            db.expire_all()
            logger.info(f"ORM: Buyer {source_id} merged into {target_id} ({orders} orders, {srns} SRNs moved). Commit pending.")
            return {'orders': orders, 'srns': srns}
        except SQLAlchemyError as e:
            logger.error(f"ORM: Database error merging buyer {source_id} into {target_id}: {e}", exc_info=True)
            raise DatabaseError(f"Failed to merge buyer {source_id} into {target_id}: {e}") from e

    def clear_unreferenced(self, db: Session) -> Dict[str, int]:
        """
        Deletes every sale record and every buyer that no order references.
        Buyers with orders keep their linked SRNs; order lifecycle belongs to
        order management.
        """
        try:
            linked_srns = select(Order.srn_id).where(Order.srn_id.is_not(None))
            srns = self._bulk(
                db, delete(BuyerSaleRecord).where(BuyerSaleRecord.sale_record_number.not_in(linked_srns))
            ).rowcount or 0
            buyers_with_orders = select(Order.buyer_id)
            buyers_with_srns = select(BuyerSaleRecord.buyer_id)
            buyers = self._bulk(
                db, delete(Buyer).where(Buyer.id.not_in(buyers_with_orders), Buyer.id.not_in(buyers_with_srns))
            ).rowcount or 0
            db.expire_all()
            logger.warning(f"ORM: Cleared {srns} sale records and {buyers} buyers without orders.")
            return {'srns': srns, 'buyers': buyers}
        except SQLAlchemyError as e:
            logger.error(f"ORM: Database error clearing buyers: {e}", exc_info=True)
            raise DatabaseError(f"Failed to clear buyers: {e}") from e

    def search(self, db: Session, query: Optional[str], offset: int, limit: int) -> Tuple[List[Buyer], int]:
        """
        Buyers matching `query` in name, city, country, phone or any of their
        SRNs (number, shipment id, tracking), ordered by name.

        Returns:
            (page of buyers with SRNs loaded, total matching count)
        """
        stmt = select(Buyer)
        if query:
            like = f"%{query}%"
            srn_conditions = [
                BuyerSaleRecord.kurasi_shipment_id.ilike(like),
                BuyerSaleRecord.tracking_number.ilike(like),
                BuyerSaleRecord.tracking_slug.ilike(like),
            ]
            if query.isdigit():
                srn_conditions.append(BuyerSaleRecord.sale_record_number == int(query))
            stmt = stmt.where(or_(
                Buyer.full_name.ilike(like),
                Buyer.city.ilike(like),
                Buyer.country.ilike(like),
                Buyer.phone.ilike(like),
                Buyer.sale_records.any(or_(*srn_conditions)),
            ))
        try:
            total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            page_stmt = (
                stmt.options(selectinload(Buyer.sale_records))
                .order_by(Buyer.full_name, Buyer.id)
                .offset(offset)
                .limit(limit)
            )
            return list(db.scalars(page_stmt)), total
        except SQLAlchemyError as e:
            logger.error(f"ORM: Database error searching buyers: {e}", exc_info=True)
            raise DatabaseError(f"Failed to search buyers: {e}") from e

    def count_all(self, db: Session) -> Dict[str, int]:
        return {
            'buyers': db.scalar(select(func.count()).select_from(Buyer)) or 0,
            'srns': db.scalar(select(func.count()).select_from(BuyerSaleRecord)) or 0,
        }
