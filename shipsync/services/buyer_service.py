# shipsync/services/buyer_service.py
# Business logic for manual buyer management: create, edit, delete and merge.

from typing import Dict, Any, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError

from shipsync.database import get_db_session
from shipsync.database.buyer_repository import BuyerRepository
from shipsync.database.sale_record_repository import SaleRecordRepository
from shipsync.utils.phone_normalizer import normalize_phone
from shipsync.utils.country_codes import normalize_country
from shipsync.utils.data_conversion import clean_str, parse_positive_int
from shipsync.utils.logger import logger
from shipsync.config import config
from shipsync.api.errors import (
    ApiError, ValidationError, NotFoundError, UniquenessConflictError, ReferentialBlockError, ServiceError
)

# Request payload key -> Buyer column
PAYLOAD_FIELDS = {
    'buyerFullName': 'full_name',
    'buyerAddress1': 'address1',
    'buyerAddress2': 'address2',
    'buyerCity': 'city',
    'buyerState': 'state',
    'buyerZip': 'zip_code',
    'buyerEmail': 'email',
}
REQUIRED_FIELDS = ('buyerFullName', 'buyerAddress1', 'buyerCity', 'buyerZip', 'buyerCountry', 'buyerPhone')

DELETE_HINT = "Use ?force=1 to delete the buyer's orders too, or ?mergeInto=<buyerId> to move them to another buyer."


class BuyerService:
    """
    Service layer for buyers entered or corrected by hand. Unlike the sync
    reconciler, manual input gets strict validation: the phone must be a
    valid number for its country.
    """

    def __init__(
        self,
        buyer_repository: BuyerRepository,
        sale_record_repository: SaleRecordRepository,
        cascade_packages: Optional[bool] = None,
    ):
        self.buyer_repository = buyer_repository
        self.sale_record_repository = sale_record_repository
        self.cascade_packages = config.CASCADE_PACKAGE_ON_ORDER_DELETE if cascade_packages is None else cascade_packages
        logger.info(f"BuyerService initialized (cascade packages on order delete: {self.cascade_packages}).")

    # --- Payload helpers ---

    @staticmethod
    def _resolve_country(value: Any) -> str:
        iso2 = normalize_country(value)
        if not iso2:
            raise ValidationError("Invalid country code.", payload={'field': ['buyerCountry']})
        return iso2

    @staticmethod
    def _strict_phone(raw: Any, phone_code: Any, country: str) -> str:
        result = normalize_phone(raw, phone_code, country)
        if not result.is_validated:
            raise ValidationError("Invalid phone number.", payload={'field': ['buyerPhone']})
        return result.value

    @staticmethod
    def _contact_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
        fields = {}
        for key, column in PAYLOAD_FIELDS.items():
            if key not in payload:
                continue
            value = clean_str(payload.get(key)) or ''
            fields[column] = value.lower() if column == 'email' else value
        return fields

    # --- Operations ---

    def create_or_update_buyer(self, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """
        Manual upsert keyed by (country, phone), optionally attaching an SRN.

        Returns:
            (buyer dict with SRNs, created)

        Raises:
            ValidationError: missing required fields, bad country or phone, bad SRN.
            UniquenessConflictError: the SRN belongs to a different buyer.
        """
        payload = payload or {}
        missing = [key for key in REQUIRED_FIELDS if not clean_str(payload.get(key))]
        if missing:
            raise ValidationError("Required fields are missing.", payload={'field': missing})

        country = self._resolve_country(payload.get('buyerCountry'))
        phone = self._strict_phone(payload.get('buyerPhone'), payload.get('phoneCode'), country)
        fields = self._contact_fields(payload)

        srn = None
        if clean_str(payload.get('saleRecordNumber')) is not None:
            srn = parse_positive_int(payload.get('saleRecordNumber'))
            if srn is None:
                raise ValidationError("saleRecordNumber must be a positive integer.", payload={'field': ['saleRecordNumber']})

        logger.info(f"Manual buyer upsert for {country}/{phone} (SRN: {srn}).")
        with get_db_session() as db:
            buyer = self.buyer_repository.find_by_natural_key(db, country, phone)
            record = self.sale_record_repository.get(db, srn) if srn is not None else None
            if record is not None and (buyer is None or record.buyer_id != buyer.id):
                raise UniquenessConflictError(
                    f"SRN {srn} already belongs to another buyer.", fields=['saleRecordNumber'],
                    payload={'buyerId': record.buyer_id},
                )

            created = buyer is None
            if created:
                buyer = self.buyer_repository.create(db, {**fields, 'country': country, 'phone': phone})
            else:
                self.buyer_repository.update_fields(db, buyer, fields)

            if srn is not None and record is None:
                self.sale_record_repository.create_for_buyer(db, srn, buyer.id)
            db.refresh(buyer)
            result = buyer.to_dict(include_srns=True)

        logger.info(f"Buyer {result['id']} {'created' if created else 'updated'} manually.")
        return result, created

    def update_buyer(self, buyer_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Partial edit, including the natural key.

        Raises:
            NotFoundError, ValidationError,
            UniquenessConflictError: another buyer already owns the new (country, phone).
        """
        payload = payload or {}
        for key in REQUIRED_FIELDS:
            if key in payload and not clean_str(payload.get(key)):
                raise ValidationError(f"{key} cannot be empty.", payload={'field': [key]})

        with get_db_session() as db:
            buyer = self.buyer_repository.find_by_id(db, buyer_id)
            if buyer is None:
                raise NotFoundError(f"Buyer {buyer_id} not found.")

            fields = self._contact_fields(payload)
            if 'buyerCountry' in payload or 'buyerPhone' in payload:
                country = self._resolve_country(payload['buyerCountry']) if 'buyerCountry' in payload else buyer.country
                phone = (
                    self._strict_phone(payload['buyerPhone'], payload.get('phoneCode'), country)
                    if 'buyerPhone' in payload else buyer.phone
                )
                if self.buyer_repository.key_taken_by_other(db, country, phone, buyer_id):
                    raise UniquenessConflictError(
                        "Another buyer already uses this country+phone.", fields=['buyerCountry', 'buyerPhone']
                    )
                fields['country'] = country
                fields['phone'] = phone

            self.buyer_repository.update_fields(db, buyer, fields)
            result = buyer.to_dict()

        logger.info(f"Buyer {buyer_id} updated ({', '.join(sorted(fields)) or 'no changes'}).")
        return result

    def get_buyer(self, buyer_id: int) -> Dict[str, Any]:
        with get_db_session() as db:
            buyer = self.buyer_repository.find_by_id(db, buyer_id, with_srns=True)
            if buyer is None:
                raise NotFoundError(f"Buyer {buyer_id} not found.")
            result = buyer.to_dict(include_srns=True)
            result['orderCount'] = self.buyer_repository.count_orders(db, buyer_id)
        return result

    def list_buyers(self, page: int = 1, page_size: int = 25, query: Optional[str] = None) -> Dict[str, Any]:
        """Paged, searchable buyer listing with overall totals."""
        page = max(1, page)
        page_size = min(100, max(1, page_size))
        query = clean_str(query)
        with get_db_session() as db:
            buyers, total_filtered = self.buyer_repository.search(db, query, (page - 1) * page_size, page_size)
            totals = self.buyer_repository.count_all(db)
            items = [buyer.to_dict(include_srns=True) for buyer in buyers]
        return {
            'page': page,
            'pageSize': page_size,
            'totalPages': max(1, -(-total_filtered // page_size)),
            'totalFiltered': total_filtered,
            'totalBuyers': totals['buyers'],
            'totalSRN': totals['srns'],
            'buyers': items,
        }

    def delete_buyer(self, buyer_id: int, force: bool = False, merge_into: Optional[int] = None) -> Dict[str, Any]:
        """
        Deletes a buyer with its sale records.

        merge_into moves everything to another buyer instead. A buyer with
        orders is only deleted with force, which deletes the orders too.

        Raises:
            NotFoundError, ValidationError,
            ReferentialBlockError: orders exist and force is not set.
        """
        if merge_into is not None:
            return self.merge_buyers(buyer_id, merge_into)

        with get_db_session() as db:
            buyer = self.buyer_repository.find_by_id(db, buyer_id)
            if buyer is None:
                raise NotFoundError(f"Buyer {buyer_id} not found.")
            order_count = self.buyer_repository.count_orders(db, buyer_id)
            if order_count and not force:
                logger.warning(f"Refusing to delete buyer {buyer_id}: {order_count} order(s) reference it.")
                raise ReferentialBlockError(
                    f"Buyer {buyer_id} has {order_count} order(s).",
                    payload={'hint': DELETE_HINT, 'orders': order_count},
                )
            removed = self.buyer_repository.delete_with_dependents(
                db, buyer_id, delete_orders=force, cascade_packages=self.cascade_packages
            )

        logger.info(f"Buyer {buyer_id} deleted (force={force}): {removed}.")
        return {
            'ok': True,
            'deleted': buyer_id,
            'deletedOrders': removed['orders'],
            'deletedSrns': removed['srns'],
            'deletedPackages': removed['packages'],
        }

    def merge_buyers(self, source_id: int, target_id: int) -> Dict[str, Any]:
        """
        Moves all orders and sale records of source to target and deletes
        source, in one transaction.

        Raises:
            ValidationError: source and target are the same buyer.
            NotFoundError: either buyer does not exist.
        """
        if source_id == target_id:
            raise ValidationError("Cannot merge a buyer into itself.")

        logger.info(f"Merging buyer {source_id} into {target_id}.")
        try:
            with get_db_session() as db:
                if self.buyer_repository.find_by_id(db, source_id) is None:
                    raise NotFoundError(f"Buyer {source_id} not found.")
                if self.buyer_repository.find_by_id(db, target_id) is None:
                    raise NotFoundError(f"Target buyer {target_id} not found.")
                moved = self.buyer_repository.reassign_and_delete(db, source_id, target_id)
        except ApiError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Merge of buyer {source_id} into {target_id} failed: {e}", exc_info=True)
            raise ServiceError(f"Could not merge buyers: {e}") from e

        logger.info(f"Buyer {source_id} merged into {target_id}: {moved}.")
        return {'ok': True, 'mergedInto': target_id, 'movedOrders': moved['orders'], 'movedSrns': moved['srns']}
