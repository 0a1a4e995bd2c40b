# shipsync/services/order_service.py
# Order-side operations on the SRN linkage: assigning an SRN and deleting an order.

from typing import Dict, Any, Optional

from shipsync.database import get_db_session
from shipsync.database.order_repository import OrderRepository
from shipsync.database.sale_record_repository import SaleRecordRepository
from shipsync.utils.data_conversion import parse_positive_int
from shipsync.utils.logger import logger
from shipsync.config import config
from shipsync.api.errors import ValidationError, NotFoundError, UniquenessConflictError


class OrderService:
    """
    Keeps orders and sale records consistent: an SRN links to at most one
    order, and only to an order of the buyer that owns the SRN.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        sale_record_repository: SaleRecordRepository,
        cascade_packages: Optional[bool] = None,
    ):
        self.order_repository = order_repository
        self.sale_record_repository = sale_record_repository
        self.cascade_packages = config.CASCADE_PACKAGE_ON_ORDER_DELETE if cascade_packages is None else cascade_packages
        logger.info("OrderService initialized.")

    def assign_srn_to_order(self, order_id: int, srn_raw: Any) -> Dict[str, Any]:
        """
        Links an order to an SRN, creating the SRN for the order's buyer when
        it is unknown. Known tracking data is copied onto the order.

        Raises:
            ValidationError: SRN is not a positive integer.
            NotFoundError: order does not exist.
            UniquenessConflictError: the SRN belongs to another buyer or is
                already linked to another order.
        """
        srn = parse_positive_int(srn_raw)
        if srn is None:
            raise ValidationError("saleRecordNumber must be a positive integer.", payload={'field': ['saleRecordNumber']})

        with get_db_session() as db:
            order = self.order_repository.get(db, order_id)
            if order is None:
                raise NotFoundError(f"Order {order_id} not found.")

            record = self.sale_record_repository.get(db, srn)
            if record is not None and record.buyer_id != order.buyer_id:
                raise UniquenessConflictError(
                    f"SRN {srn} belongs to another buyer.", fields=['saleRecordNumber'],
                    payload={'buyerId': record.buyer_id},
                )
            holder = self.order_repository.find_by_srn(db, srn)
            if holder is not None and holder.id != order.id:
                raise UniquenessConflictError(
                    f"SRN {srn} is already linked to order {holder.id}.", fields=['saleRecordNumber'],
                    payload={'orderId': holder.id},
                )

            if record is None:
                record = self.sale_record_repository.create_for_buyer(db, srn, order.buyer_id)
            self.order_repository.link_srn(db, order, srn)
            self.order_repository.apply_tracking(
                db, order, record.kurasi_shipment_id, record.tracking_number, record.tracking_slug
            )
            result = order.to_dict()

        logger.info(f"Order {order_id} linked to SRN {srn}.")
        return result

    def delete_order(self, order_id: int) -> Dict[str, Any]:
        """Deletes the order; its SRN goes too when no other order holds it."""
        with get_db_session() as db:
            order = self.order_repository.get(db, order_id)
            if order is None:
                raise NotFoundError(f"Order {order_id} not found.")
            srn = order.srn_id

            package_deleted = self.order_repository.delete(db, order, cascade_package=self.cascade_packages)

            srn_deleted = False
            if srn is not None and self.order_repository.count_by_srn(db, srn) == 0:
                record = self.sale_record_repository.get(db, srn)
                if record is not None:
                    self.sale_record_repository.delete(db, record)
                    srn_deleted = True

        logger.info(f"Order {order_id} deleted (SRN {srn} deleted: {srn_deleted}, package deleted: {package_deleted}).")
        return {'ok': True, 'deleted': order_id, 'srnDeleted': srn_deleted, 'packageDeleted': package_deleted}
