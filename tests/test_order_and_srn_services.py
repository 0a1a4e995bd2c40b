"""Tests for SRN lookups and the order-side SRN linkage."""
import pytest
from sqlalchemy import select, func

from shipsync.api.errors import NotFoundError, UniquenessConflictError, ValidationError
from shipsync.database import get_db_session
from shipsync.domain import BuyerSaleRecord, PackageDetail
from shipsync.services import OrderService, SaleRecordService


def _count(model) -> int:
    with get_db_session() as db:
        return db.scalar(select(func.count()).select_from(model))


@pytest.fixture
def srn_service(srn_repo):
    return SaleRecordService(srn_repo)


@pytest.fixture
def order_service(order_repo, srn_repo):
    return OrderService(order_repo, srn_repo, cascade_packages=True)


@pytest.fixture
def tracked_srn(srn_repo, make_buyer):
    """Buyer owning SRN 3001, already matched to shipment KRS0042."""
    buyer_id = make_buyer()
    with get_db_session() as db:
        srn_repo.upsert(db, 3001, buyer_id, "KRS0042", "TRK42", "dhl")
    return buyer_id


class TestCheckSrn:

    def test_exists(self, srn_service, make_buyer):
        buyer_id = make_buyer(srns=(2945,))
        assert srn_service.check_srn("2945") == {'exists': True, 'srn': 2945}
        assert srn_service.check_srn(2946) == {'exists': False, 'srn': 2946}
        assert srn_service.check_srn("2945", str(buyer_id)) == {'exists': False, 'srn': 2945}
        assert srn_service.check_srn("2945", "") == {'exists': True, 'srn': 2945}

    @pytest.mark.parametrize("srn,exclude", [("abc", None), ("0", None), (None, None), ("12", "x")])
    def test_invalid_parameters(self, srn_service, db_engine, srn, exclude):
        with pytest.raises(ValidationError):
            srn_service.check_srn(srn, exclude)


class TestLookupSrn:

    def test_by_number(self, srn_service, tracked_srn):
        record = srn_service.lookup_srn("3001")
        assert record['kurasiShipmentId'] == "KRS0042"
        assert record['buyer']['id'] == tracked_srn

    def test_by_shipment_id(self, srn_service, tracked_srn):
        record = srn_service.lookup_srn("KRS0042")
        assert record['saleRecordNumber'] == 3001
        assert record['trackingNumber'] == "TRK42"

    def test_invalid_key(self, srn_service, db_engine):
        with pytest.raises(ValidationError, match="Invalid key"):
            srn_service.lookup_srn("ABC-1")

    def test_not_found(self, srn_service, db_engine):
        with pytest.raises(NotFoundError):
            srn_service.lookup_srn("9999")
        with pytest.raises(NotFoundError):
            srn_service.lookup_srn("KRS9999")


class TestAssignSrn:

    def test_unknown_srn_is_created_for_order_buyer(self, order_service, make_buyer, make_order):
        buyer_id = make_buyer()
        order_id = make_order(buyer_id)

        order = order_service.assign_srn_to_order(order_id, "4001")

        assert order['srnId'] == 4001
        with get_db_session() as db:
            assert db.get(BuyerSaleRecord, 4001).buyer_id == buyer_id

    def test_known_tracking_is_copied(self, order_service, tracked_srn, make_order):
        order_id = make_order(tracked_srn)

        order = order_service.assign_srn_to_order(order_id, 3001)

        assert order['krsTrackingNumber'] == "KRS0042"
        assert order['trackingLink'] == "https://track.aftership.com/dhl/TRK42"

    def test_srn_of_other_buyer_conflicts(self, order_service, make_buyer, make_order):
        owner = make_buyer(srns=(2945,))
        other = make_buyer(phone="+12015550123")
        order_id = make_order(other)

        with pytest.raises(UniquenessConflictError) as exc_info:
            order_service.assign_srn_to_order(order_id, 2945)
        assert exc_info.value.payload['buyerId'] == owner

    def test_srn_linked_to_other_order_conflicts(self, order_service, make_buyer, make_order):
        buyer_id = make_buyer(srns=(2945,))
        first = make_order(buyer_id, srn=2945)
        second = make_order(buyer_id)

        with pytest.raises(UniquenessConflictError) as exc_info:
            order_service.assign_srn_to_order(second, 2945)
        assert exc_info.value.payload['orderId'] == first

    def test_relinking_same_order_is_fine(self, order_service, make_buyer, make_order):
        buyer_id = make_buyer(srns=(2945,))
        order_id = make_order(buyer_id, srn=2945)
        assert order_service.assign_srn_to_order(order_id, 2945)['srnId'] == 2945

    def test_invalid_srn(self, order_service, db_engine):
        with pytest.raises(ValidationError):
            order_service.assign_srn_to_order(1, "-3")

    def test_unknown_order(self, order_service, db_engine):
        with pytest.raises(NotFoundError):
            order_service.assign_srn_to_order(404, 1)


class TestDeleteOrder:

    def test_sole_srn_and_package_go_with_order(self, order_service, make_buyer, make_order):
        buyer_id = make_buyer(srns=(1001,))
        order_id = make_order(buyer_id, srn=1001)

        result = order_service.delete_order(order_id)

        assert result == {'ok': True, 'deleted': order_id, 'srnDeleted': True, 'packageDeleted': True}
        assert _count(BuyerSaleRecord) == 0
        assert _count(PackageDetail) == 0

    def test_order_without_srn(self, order_service, make_buyer, make_order):
        order_id = make_order(make_buyer(srns=(1001,)))

        result = order_service.delete_order(order_id)

        assert result['srnDeleted'] is False
        assert _count(BuyerSaleRecord) == 1

    def test_package_kept_without_cascade(self, order_repo, srn_repo, make_buyer, make_order):
        service = OrderService(order_repo, srn_repo, cascade_packages=False)
        order_id = make_order(make_buyer())

        assert service.delete_order(order_id)['packageDeleted'] is False
        assert _count(PackageDetail) == 1

    def test_unknown_order(self, order_service, db_engine):
        with pytest.raises(NotFoundError):
            order_service.delete_order(1)
