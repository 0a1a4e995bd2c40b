# shipsync/services/sync/shipment_reconciler.py
# Applies fetched Kurasi shipment rows to buyers, sale records, the shipment mirror and orders.

from dataclasses import dataclass
from typing import Optional, List, Dict, Any

from sqlalchemy.exc import OperationalError, InterfaceError

from shipsync.database import get_db_session
from shipsync.database.buyer_repository import BuyerRepository
from shipsync.database.sale_record_repository import SaleRecordRepository
from shipsync.database.shipment_mirror_repository import ShipmentMirrorRepository
from shipsync.database.order_repository import OrderRepository
from shipsync.domain import Buyer, BuyerSaleRecord, ShipmentMirror
from shipsync.domain.sync import RowOutcome, ReconcileBatchResult, OutcomeStatus, SkipReason
from shipsync.utils.phone_normalizer import normalize_phone, PhoneResult
from shipsync.utils.country_codes import normalize_country
from shipsync.utils.data_conversion import (
    clean_str, safe_int, fit_str, parse_fee, parse_positive_int, parse_platform_datetime
)
from shipsync.utils.logger import logger
from shipsync.api.errors import InvalidPhoneError, DatabaseError


def _column_length(model, name: str) -> Optional[int]:
    return getattr(model.__table__.columns[name].type, "length", None)


SHIPMENT_ID_LENGTH = _column_length(ShipmentMirror, "kurasi_shipment_id")
TRACKING_NUMBER_LENGTH = _column_length(BuyerSaleRecord, "tracking_number")
TRACKING_SLUG_LENGTH = _column_length(BuyerSaleRecord, "tracking_slug")


def fit_to_columns(model, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Drops string values wider than their String(n) column on model."""
    fitted = {}
    for name, value in fields.items():
        if isinstance(value, str) and name in model.__table__.columns:
            value = fit_str(value, _column_length(model, name))
        fitted[name] = value
    return fitted


def is_storage_outage(error: Exception) -> bool:
    """Connection-level database failures, as opposed to a row the database refuses."""
    cause = error.__cause__ if isinstance(error, DatabaseError) else error
    return isinstance(cause, (OperationalError, InterfaceError))


@dataclass
class TrackingInfo:
    number: Optional[str]
    slug: Optional[str]


def pick_tracking(row: Dict[str, Any]) -> TrackingInfo:
    """Top-level trackingNumber wins over trackingList[0]; slug falls back to the lower-cased carrier."""
    tracking_list = row.get("trackingList") or []
    first = tracking_list[0] if isinstance(tracking_list, list) and tracking_list and isinstance(tracking_list[0], dict) else {}
    number = clean_str(row.get("trackingNumber")) or clean_str(first.get("trackingNumber"))
    slug = clean_str(first.get("slug"))
    if not slug:
        carrier = clean_str(row.get("carrier"))
        slug = carrier.lower() if carrier else None
    return TrackingInfo(number=fit_str(number, TRACKING_NUMBER_LENGTH), slug=fit_str(slug, TRACKING_SLUG_LENGTH))


def map_buyer_fields(row: Dict[str, Any]) -> Dict[str, Any]:
    """Buyer contact fields from a row. None means 'not provided, keep what is stored'."""
    email = clean_str(row.get("buyerEmail"))
    return fit_to_columns(Buyer, {
        'full_name': clean_str(row.get("buyerFullName")),
        'address1': clean_str(row.get("buyerAddress1")),
        'address2': clean_str(row.get("buyerAddress2")) or '',
        'city': clean_str(row.get("buyerCity")),
        'state': clean_str(row.get("buyerState")) or '',
        'zip_code': clean_str(row.get("buyerZip")),
        'email': email.lower() if email else None,
    })


def map_mirror_fields(row: Dict[str, Any], phone: Optional[str], tracking: TrackingInfo) -> Dict[str, Any]:
    fee_raw = row.get("shippingFee")
    return fit_to_columns(ShipmentMirror, {
        'sale_record_number': clean_str(row.get("saleRecordNumber")),
        'flag_id': safe_int(row.get("flagId")),
        'buyer_full_name': clean_str(row.get("buyerFullName")),
        'buyer_country': clean_str(row.get("buyerCountry")),
        'buyer_city': clean_str(row.get("buyerCity")),
        'buyer_state': clean_str(row.get("buyerState")),
        'buyer_zip': clean_str(row.get("buyerZip")),
        'buyer_phone': phone or clean_str(row.get("buyerPhone")),
        'service_name': clean_str(row.get("serviceName")),
        'carrier': clean_str(row.get("carrier")),
        'shipping_fee': clean_str(fee_raw),
        'shipping_fee_minor': parse_fee(fee_raw),
        'chargeable_weight': safe_int(row.get("chargeableWeight")),
        'actual_weight': safe_int(row.get("actualWeight")),
        'tracking_number': tracking.number,
        'awb': clean_str(row.get("awb")),
        'box_id': clean_str(row.get("boxId")),
        'shipment_received_at': parse_platform_datetime(row.get("shipmentReceivedDatetime")),
        'label_created_at': parse_platform_datetime(row.get("labelCreatedDatetime")),
        'shipped_at': parse_platform_datetime(row.get("shippedDatetime")),
    })


class ShipmentReconciler:
    """
    Idempotent upsert of one Kurasi row at a time. Each row runs in its own
    transaction; a failing row is rolled back and reported as skipped, it
    never stops the rest of the page.
    """

    def __init__(
        self,
        buyer_repository: BuyerRepository,
        sale_record_repository: SaleRecordRepository,
        shipment_mirror_repository: ShipmentMirrorRepository,
        order_repository: OrderRepository,
    ):
        self.buyer_repository = buyer_repository
        self.sale_record_repository = sale_record_repository
        self.shipment_mirror_repository = shipment_mirror_repository
        self.order_repository = order_repository
        logger.info("ShipmentReconciler initialized.")

    def reconcile_page(self, rows: List[Dict[str, Any]]) -> ReconcileBatchResult:
        batch = ReconcileBatchResult()
        for row in rows:
            batch.add(self.reconcile_row(row))
        logger.debug(
            f"Page reconciled: {len(rows)} rows, created={batch.created}, updated={batch.updated}, "
            f"skipped={batch.skipped} {dict(batch.skip_reasons)}"
        )
        return batch

    def reconcile_row(self, row: Dict[str, Any]) -> RowOutcome:
        if not isinstance(row, dict):
            logger.warning(f"Skipping non-object shipment row: {row!r}")
            return RowOutcome.skipped(SkipReason.MISSING_IDENTIFIER, "row is not an object")

        srn = parse_positive_int(row.get("saleRecordNumber"))
        shipment_id = fit_str(clean_str(row.get("kurasiShipmentId")), SHIPMENT_ID_LENGTH)
        if srn is None and shipment_id is None:
            return RowOutcome.skipped(SkipReason.MISSING_IDENTIFIER, "no numeric SRN and no shipment id")

        country = normalize_country(row.get("countryShortName") or row.get("buyerCountry"))
        phone: Optional[PhoneResult] = None
        buyer_skip: Optional[SkipReason] = None
        try:
            phone = normalize_phone(row.get("buyerPhone"), row.get("phoneCode"), country)
        except InvalidPhoneError:
            buyer_skip = SkipReason.INVALID_PHONE
        if country is None:
            buyer_skip = SkipReason.MISSING_COUNTRY

        tracking = pick_tracking(row)
        try:
            return self._apply(row, srn, shipment_id, country, phone, buyer_skip, tracking)
        except Exception as e:
            if is_storage_outage(e):
                logger.error(f"Storage unavailable while reconciling SRN {srn}, shipment {shipment_id}: {e}")
                raise
            logger.error(
                f"Failed to reconcile shipment row (SRN {srn}, shipment {shipment_id}): {e}", exc_info=True
            )
            return RowOutcome.skipped(
                SkipReason.ERROR, str(e), sale_record_number=srn, kurasi_shipment_id=shipment_id
            )

    def _apply(
        self,
        row: Dict[str, Any],
        srn: Optional[int],
        shipment_id: Optional[str],
        country: Optional[str],
        phone: Optional[PhoneResult],
        buyer_skip: Optional[SkipReason],
        tracking: TrackingInfo,
    ) -> RowOutcome:
        created = False
        wrote_anything = False
        buyer_id: Optional[int] = None

        with get_db_session() as db:
            if shipment_id:
                mirror_fields = map_mirror_fields(row, phone.value if phone else None, tracking)
                created |= self.shipment_mirror_repository.upsert(db, shipment_id, mirror_fields)
                wrote_anything = True

            if buyer_skip is None:
                buyer, buyer_created = self.buyer_repository.upsert_by_natural_key(
                    db, country, phone.value, map_buyer_fields(row)
                )
                buyer_id = buyer.id
                created |= buyer_created
                wrote_anything = True

            record = None
            if srn is not None:
                if buyer_id is not None:
                    record, srn_created = self.sale_record_repository.upsert(
                        db, srn, buyer_id, shipment_id, tracking.number, tracking.slug
                    )
                    created |= srn_created
                    wrote_anything = True
                else:
                    record = self.sale_record_repository.get(db, srn)
                    if record is not None:
                        self.sale_record_repository.refresh_tracking(
                            db, record, shipment_id, tracking.number, tracking.slug
                        )
                        wrote_anything = True

            if record is not None:
                order = self.order_repository.find_by_srn(db, record.sale_record_number)
                if order is not None:
                    self.order_repository.apply_tracking(
                        db, order, record.kurasi_shipment_id, record.tracking_number, record.tracking_slug
                    )

        if not wrote_anything:
            return RowOutcome.skipped(buyer_skip, sale_record_number=srn, kurasi_shipment_id=shipment_id)

        return RowOutcome(
            status=OutcomeStatus.CREATED if created else OutcomeStatus.UPDATED,
            buyer_id=buyer_id,
            sale_record_number=srn,
            kurasi_shipment_id=shipment_id,
            phone_best_effort=bool(phone and not phone.is_validated and buyer_id is not None),
            buyer_skip_reason=buyer_skip,
        )
