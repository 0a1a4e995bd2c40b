"""
Tests for ShipmentReconciler: per-row idempotent upserts of buyers, SRNs,
the shipment mirror and order tracking, and the skip classification.
"""
from datetime import datetime

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from conftest import kurasi_row
from shipsync.api.errors import DatabaseError
from shipsync.database import get_db_session
from shipsync.domain import Buyer, BuyerSaleRecord, ShipmentMirror, Order
from shipsync.domain.sync import OutcomeStatus, SkipReason


def _count(model) -> int:
    with get_db_session() as db:
        return db.scalar(select(func.count()).select_from(model))


def _one(model, **filters):
    with get_db_session() as db:
        return db.scalars(select(model).filter_by(**filters)).one()


class TestReconcileRow:

    def test_new_row_creates_buyer_srn_and_mirror(self, reconciler):
        outcome = reconciler.reconcile_row(kurasi_row())

        assert outcome.status is OutcomeStatus.CREATED
        assert outcome.sale_record_number == 1001
        assert outcome.kurasi_shipment_id == "KRS0001"
        assert not outcome.phone_best_effort

        buyer = _one(Buyer, id=outcome.buyer_id)
        assert (buyer.country, buyer.phone) == ("US", "+19176187575")
        assert buyer.email == "jane.doe@example.com"
        assert buyer.state == "NY"

        record = _one(BuyerSaleRecord, sale_record_number=1001)
        assert record.buyer_id == buyer.id
        assert record.kurasi_shipment_id == "KRS0001"
        assert (record.tracking_number, record.tracking_slug) == ("TRK1", "dhl")

        mirror = _one(ShipmentMirror, kurasi_shipment_id="KRS0001")
        assert mirror.shipping_fee == "104,000"
        assert mirror.shipping_fee_minor == 104000
        assert mirror.chargeable_weight == 500
        assert mirror.shipment_received_at == datetime(2025, 9, 1, 10, 0, 0)
        assert mirror.label_created_at is None
        assert mirror.buyer_phone == "+19176187575"

    def test_reapplying_a_row_is_idempotent(self, reconciler):
        first = reconciler.reconcile_row(kurasi_row())
        second = reconciler.reconcile_row(kurasi_row())

        assert first.status is OutcomeStatus.CREATED
        assert second.status is OutcomeStatus.UPDATED
        assert second.buyer_id == first.buyer_id
        assert (_count(Buyer), _count(BuyerSaleRecord), _count(ShipmentMirror)) == (1, 1, 1)

    def test_contact_fields_refresh_but_blanks_do_not_erase(self, reconciler):
        first = reconciler.reconcile_row(kurasi_row())
        reconciler.reconcile_row(kurasi_row(buyerCity="Brooklyn", buyerEmail="", buyerState="null"))

        buyer = _one(Buyer, id=first.buyer_id)
        assert buyer.city == "Brooklyn"
        assert buyer.email == "jane.doe@example.com"
        assert buyer.state == ""

    def test_same_phone_different_country_is_a_different_buyer(self, reconciler):
        us = reconciler.reconcile_row(kurasi_row())
        ca = reconciler.reconcile_row(kurasi_row(
            kurasiShipmentId="KRS0002", saleRecordNumber="1002", countryShortName="CA", buyerCountry="Canada"
        ))
        assert us.buyer_id != ca.buyer_id
        assert _count(Buyer) == 2

    def test_missing_identifiers_are_skipped(self, reconciler):
        outcome = reconciler.reconcile_row(kurasi_row(kurasiShipmentId=None, saleRecordNumber="null"))
        assert outcome.status is OutcomeStatus.SKIPPED
        assert outcome.skip_reason is SkipReason.MISSING_IDENTIFIER
        assert _count(Buyer) == 0

    def test_non_object_row_is_skipped(self, reconciler):
        outcome = reconciler.reconcile_row(["not", "a", "row"])
        assert outcome.skip_reason is SkipReason.MISSING_IDENTIFIER

    def test_invalid_phone_without_shipment_id_is_skipped(self, reconciler):
        outcome = reconciler.reconcile_row(kurasi_row(kurasiShipmentId=None, buyerPhone="n/a"))
        assert outcome.status is OutcomeStatus.SKIPPED
        assert outcome.skip_reason is SkipReason.INVALID_PHONE
        assert _count(Buyer) == 0
        assert _count(BuyerSaleRecord) == 0

    def test_invalid_phone_still_refreshes_mirror(self, reconciler):
        outcome = reconciler.reconcile_row(kurasi_row(buyerPhone=""))
        assert outcome.status is OutcomeStatus.CREATED
        assert outcome.buyer_id is None
        assert outcome.buyer_skip_reason is SkipReason.INVALID_PHONE
        assert _count(ShipmentMirror) == 1
        assert _count(Buyer) == 0

    def test_unknown_country_skips_buyer(self, reconciler):
        outcome = reconciler.reconcile_row(kurasi_row(
            kurasiShipmentId=None, countryShortName=None, buyerCountry="Atlantis"
        ))
        assert outcome.status is OutcomeStatus.SKIPPED
        assert outcome.skip_reason is SkipReason.MISSING_COUNTRY

    def test_known_srn_gets_tracking_even_without_buyer(self, reconciler, make_buyer):
        make_buyer(srns=(1001,))
        outcome = reconciler.reconcile_row(kurasi_row(
            kurasiShipmentId=None, buyerPhone="n/a", trackingNumber="TRK9", trackingList=[], carrier="UPS"
        ))

        assert outcome.status is OutcomeStatus.UPDATED
        assert outcome.buyer_skip_reason is SkipReason.INVALID_PHONE
        record = _one(BuyerSaleRecord, sale_record_number=1001)
        assert (record.tracking_number, record.tracking_slug) == ("TRK9", "ups")

    def test_tracking_list_used_when_top_level_missing(self, reconciler):
        reconciler.reconcile_row(kurasi_row(
            trackingNumber=None, trackingList=[{"trackingNumber": "LIST1", "slug": "fedex"}]
        ))
        record = _one(BuyerSaleRecord, sale_record_number=1001)
        assert (record.tracking_number, record.tracking_slug) == ("LIST1", "fedex")

    def test_shipment_id_moves_to_newer_srn(self, reconciler):
        reconciler.reconcile_row(kurasi_row())
        reconciler.reconcile_row(kurasi_row(saleRecordNumber="1002"))

        assert _one(BuyerSaleRecord, sale_record_number=1001).kurasi_shipment_id is None
        assert _one(BuyerSaleRecord, sale_record_number=1002).kurasi_shipment_id == "KRS0001"

    def test_non_numeric_srn_only_mirrors(self, reconciler):
        outcome = reconciler.reconcile_row(kurasi_row(saleRecordNumber="ABC-1"))
        assert outcome.status is OutcomeStatus.CREATED
        assert outcome.sale_record_number is None
        assert _count(BuyerSaleRecord) == 0
        assert _one(ShipmentMirror, kurasi_shipment_id="KRS0001").sale_record_number == "ABC-1"

    def test_best_effort_phone_is_flagged(self, reconciler):
        outcome = reconciler.reconcile_row(kurasi_row(
            buyerPhone="08111280720", phoneCode="+61", countryShortName="AU", buyerCountry="Australia"
        ))
        assert outcome.phone_best_effort
        buyer = _one(Buyer, id=outcome.buyer_id)
        assert buyer.phone.startswith("+61")
        assert not buyer.phone.startswith("+610")

    def test_linked_order_receives_tracking(self, reconciler, make_buyer, make_order):
        buyer_id = make_buyer(srns=(1001,))
        order_id = make_order(buyer_id, srn=1001)

        reconciler.reconcile_row(kurasi_row())

        order = _one(Order, id=order_id)
        assert order.krs_tracking_number == "KRS0001"
        assert order.tracking_link == "https://track.aftership.com/dhl/TRK1"

    def test_failing_row_is_rolled_back_and_reported(self, reconciler, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(reconciler.buyer_repository, "upsert_by_natural_key", _boom)
        outcome = reconciler.reconcile_row(kurasi_row())

        assert outcome.status is OutcomeStatus.SKIPPED
        assert outcome.skip_reason is SkipReason.ERROR
        assert "disk full" in outcome.detail
        assert _count(ShipmentMirror) == 0

    def test_storage_outage_is_raised(self, reconciler, monkeypatch):
        def _connection_lost(*args, **kwargs):
            raise DatabaseError("Database operation failed") from OperationalError(
                "SELECT 1", {}, Exception("connection refused")
            )

        monkeypatch.setattr(reconciler.buyer_repository, "upsert_by_natural_key", _connection_lost)
        with pytest.raises(DatabaseError):
            reconciler.reconcile_row(kurasi_row())

    def test_values_wider_than_columns_are_dropped(self, reconciler):
        outcome = reconciler.reconcile_row(kurasi_row(
            actualWeight="99999999999999999999999",
            chargeableWeight=2**40,
            shippingFee="9" * 30,
            buyerZip="1" * 40,
            trackingNumber="T" * 200,
            trackingList=[],
        ))

        assert outcome.status is OutcomeStatus.CREATED
        mirror = _one(ShipmentMirror, kurasi_shipment_id="KRS0001")
        assert mirror.actual_weight is None
        assert mirror.chargeable_weight is None
        assert mirror.shipping_fee == "9" * 30
        assert mirror.shipping_fee_minor is None
        assert mirror.buyer_zip is None
        assert mirror.tracking_number is None
        assert _one(Buyer, id=outcome.buyer_id).zip_code == ""


class TestReconcilePage:

    def test_batch_counts(self, reconciler):
        rows = [
            kurasi_row(),
            kurasi_row(),
            kurasi_row(kurasiShipmentId=None, saleRecordNumber=None),
            kurasi_row(kurasiShipmentId=None, saleRecordNumber="1005", buyerPhone="--"),
        ]
        batch = reconciler.reconcile_page(rows)

        assert (batch.created, batch.updated, batch.skipped) == (1, 1, 2)
        assert batch.skip_reasons == {
            SkipReason.MISSING_IDENTIFIER.value: 1,
            SkipReason.INVALID_PHONE.value: 1,
        }
        assert len(batch.outcomes) == 4
        assert batch.buyer_skip_reasons == {}

    def test_rows_stored_without_buyer_are_counted(self, reconciler):
        batch = reconciler.reconcile_page([
            kurasi_row(buyerPhone=""),
            kurasi_row(kurasiShipmentId="KRS0002", saleRecordNumber="1002", countryShortName=None, buyerCountry="Atlantis"),
        ])

        assert (batch.created, batch.skipped) == (2, 0)
        assert batch.buyer_skip_reasons == {
            SkipReason.INVALID_PHONE.value: 1,
            SkipReason.MISSING_COUNTRY.value: 1,
        }
