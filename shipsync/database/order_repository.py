# shipsync/database/order_repository.py
# Handles the order-side linkage (SRN, tracking, deletion) used by the sync core.

from typing import Optional
from sqlalchemy import select, func, delete
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from .base_repository import BaseRepository
from shipsync.domain.order import Order, PackageDetail
from shipsync.utils.logger import logger
from shipsync.api.errors import DatabaseError

TRACKING_LINK_TEMPLATE = "https://track.aftership.com/{slug}/{number}"


def build_tracking_link(slug: Optional[str], number: Optional[str]) -> Optional[str]:
    if not slug or not number:
        return None
    return TRACKING_LINK_TEMPLATE.format(slug=slug, number=number)


class OrderRepository(BaseRepository):
    """Repository for Order linkage. Methods expect a Session object to be passed in."""

    def get(self, db: Session, order_id: int) -> Optional[Order]:
        return db.get(Order, order_id)

    def find_by_srn(self, db: Session, srn: int) -> Optional[Order]:
        return db.scalars(select(Order).where(Order.srn_id == srn)).one_or_none()

    def count_by_srn(self, db: Session, srn: int) -> int:
        return db.scalar(select(func.count()).select_from(Order).where(Order.srn_id == srn)) or 0

    def link_srn(self, db: Session, order: Order, srn: int) -> Order:
        order.srn_id = srn
        db.flush()
        logger.debug(f"ORM: Order {order.id} linked to SRN {srn}.")
        return order

    def apply_tracking(
        self,
        db: Session,
        order: Order,
        kurasi_shipment_id: Optional[str],
        tracking_number: Optional[str],
        tracking_slug: Optional[str],
    ) -> bool:
        """Copies newly discovered tracking data onto the order. Returns True when anything changed."""
        changed = False
        if kurasi_shipment_id and order.krs_tracking_number != kurasi_shipment_id:
            order.krs_tracking_number = kurasi_shipment_id
            changed = True
        link = build_tracking_link(tracking_slug, tracking_number)
        if link and order.tracking_link != link:
            order.tracking_link = link
            changed = True
        if changed:
            db.flush()
            logger.debug(f"ORM: Tracking applied to order {order.id} (krs={order.krs_tracking_number}).")
        return changed

    def delete(self, db: Session, order: Order, cascade_package: bool) -> bool:
        """
        Deletes the order and, when cascade_package is set, its package row.

        Returns:
            True when a package row was deleted too.
        """
        order_id, package_id = order.id, order.package_id
        try:
            self._bulk(db, delete(Order).where(Order.id == order_id))
            package_deleted = False
            if cascade_package and package_id is not None:
                package_deleted = bool(
                    self._bulk(db, delete(PackageDetail).where(PackageDetail.id == package_id)).rowcount
                )
            db.expire_all()
            logger.info(f"ORM: Order {order_id} deleted (package {package_id} deleted: {package_deleted}). Commit pending.")
            return package_deleted
        except SQLAlchemyError as e:
            logger.error(f"ORM: Database error deleting order {order_id}: {e}", exc_info=True)
            raise DatabaseError(f"Failed to delete order {order_id}: {e}") from e
