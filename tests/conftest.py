"""
Shared fixtures: in-memory SQLite through init_sqlalchemy, repositories,
a scripted fake of the Kurasi HTTP session and Kurasi row factories.
"""
import os

# Must be set before shipsync.config is imported; .env never overrides these
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_TYPE", "SQLITE")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("KURASI_BASE_URL", "https://kurasi.test")
os.environ.setdefault("KURASI_TOKEN", "")
os.environ.setdefault("KURASI_CLIENT_CODE", "")
os.environ.setdefault("SYNC_SCHEDULER_ENABLED", "False")

from typing import Callable, List, Optional

import pytest

from shipsync.database import init_sqlalchemy, dispose_sqlalchemy_engine, get_db_session
from shipsync.database.buyer_repository import BuyerRepository
from shipsync.database.sale_record_repository import SaleRecordRepository
from shipsync.database.shipment_mirror_repository import ShipmentMirrorRepository
from shipsync.database.order_repository import OrderRepository
from shipsync.database.sync_checkpoint_repository import SyncCheckpointRepository
from shipsync.domain import Buyer, BuyerSaleRecord, Order, PackageDetail
from shipsync.api.errors import DatabaseError
from shipsync.domain.sync import ReconcileBatchResult, RowOutcome, OutcomeStatus, SkipReason
from shipsync.kurasi_integration import KurasiAuthService, KurasiShipmentService
from shipsync.services.sync import ShipmentReconciler

TEST_DB_URI = "sqlite:///:memory:"
KURASI_BASE = "https://kurasi.test"
SHIPMENTS_URL = f"{KURASI_BASE}/api/v1/shipmentManagement"
LOGIN_URL = f"{KURASI_BASE}/api/v1/login"
ME_URL = f"{KURASI_BASE}/api/v1/me"


# ────────────────────────────────────────────
# FAKE KURASI HTTP
# ────────────────────────────────────────────


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    _NO_JSON = object()

    def __init__(self, status_code: int = 200, body=None, text: str = ""):
        self.status_code = status_code
        self._body = body
        self.text = text

    @classmethod
    def not_json(cls, status_code: int = 200, text: str = "<html>oops</html>"):
        return cls(status_code, cls._NO_JSON, text)

    def json(self):
        if self._body is self._NO_JSON:
            raise ValueError("No JSON object could be decoded")
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            import requests
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeKurasiSession:
    """
    Records every call and answers through handler callables.

    shipments(payload, call_number) returns a FakeResponse, a list of rows
    (wrapped as {data: {rows}}), or an exception instance to raise.
    """

    def __init__(self, shipments: Optional[Callable] = None, login: Optional[Callable] = None, me: Optional[Callable] = None):
        self.shipments_handler = shipments or (lambda payload, n: [])
        self.login_handler = login or (lambda payload, n: FakeResponse(200, {"status": "SUCCESS", "data": {"token": f"token-{n}"}}))
        self.me_handler = me or (lambda n: FakeResponse(200, {"data": {"clientCode": "C-100"}}))
        self.shipment_calls: List[dict] = []
        self.login_calls: List[dict] = []
        self.me_calls: List[dict] = []

    @staticmethod
    def _resolve(result):
        if isinstance(result, Exception):
            raise result
        if isinstance(result, list):
            return FakeResponse(200, {"status": "SUCCESS", "data": {"rows": result, "total": len(result)}})
        return result

    def post(self, url, json=None, headers=None, timeout=None):
        if url == LOGIN_URL:
            self.login_calls.append({"json": json})
            return self._resolve(self.login_handler(json, len(self.login_calls)))
        self.shipment_calls.append({"url": url, "json": dict(json or {}), "headers": dict(headers or {})})
        return self._resolve(self.shipments_handler(json, len(self.shipment_calls)))

    def get(self, url, headers=None, timeout=None):
        self.me_calls.append({"url": url, "headers": dict(headers or {})})
        return self._resolve(self.me_handler(len(self.me_calls)))


class StubReconciler:
    """
    Counts every row as updated, or as an ERROR skip when failing=True.
    outage=True raises the error the reconciler raises when the database is down.
    """

    def __init__(self, failing: bool = False, outage: bool = False):
        self.failing = failing
        self.outage = outage
        self.pages = []

    def reconcile_page(self, rows):
        self.pages.append(rows)
        if self.outage:
            raise DatabaseError("Database operation failed: connection refused")
        batch = ReconcileBatchResult()
        for _ in rows:
            if self.failing:
                batch.add(RowOutcome.skipped(SkipReason.ERROR, "boom"))
            else:
                batch.add(RowOutcome(status=OutcomeStatus.UPDATED))
        return batch


@pytest.fixture
def fake_session():
    return FakeKurasiSession()


@pytest.fixture
def auth_service(fake_session):
    return KurasiAuthService(
        base_url=KURASI_BASE, static_token="static-token", client_code="C-100", session=fake_session
    )


@pytest.fixture
def sleeps():
    """Collects backoff delays instead of sleeping."""
    return []


@pytest.fixture
def shipment_service(auth_service, sleeps):
    def _no_sleep(delay):
        sleeps.append(delay)
        return False

    return KurasiShipmentService(
        auth_service, max_retries=5, base_delay=1.0, max_delay=30.0, jitter=0.4, min_page_size=200, sleep=_no_sleep
    )


# ────────────────────────────────────────────
# DATABASE
# ────────────────────────────────────────────


@pytest.fixture
def db_engine():
    """Fresh in-memory database per test."""
    dispose_sqlalchemy_engine()
    engine = init_sqlalchemy(TEST_DB_URI)
    yield engine
    dispose_sqlalchemy_engine()


@pytest.fixture
def buyer_repo(db_engine):
    return BuyerRepository(db_engine)


@pytest.fixture
def srn_repo(db_engine):
    return SaleRecordRepository(db_engine)


@pytest.fixture
def mirror_repo(db_engine):
    return ShipmentMirrorRepository(db_engine)


@pytest.fixture
def order_repo(db_engine):
    return OrderRepository(db_engine)


@pytest.fixture
def checkpoint_repo(db_engine):
    return SyncCheckpointRepository(db_engine)


@pytest.fixture
def reconciler(buyer_repo, srn_repo, mirror_repo, order_repo):
    return ShipmentReconciler(buyer_repo, srn_repo, mirror_repo, order_repo)


# ────────────────────────────────────────────
# ENTITY FACTORIES
# ────────────────────────────────────────────


@pytest.fixture
def make_buyer(db_engine):
    def _make(country="US", phone="+19176187575", full_name="Jane Doe", srns=(), **fields) -> int:
        with get_db_session() as db:
            buyer = Buyer(
                full_name=full_name,
                address1=fields.pop("address1", "1 Main St"),
                city=fields.pop("city", "New York"),
                zip_code=fields.pop("zip_code", "10001"),
                country=country,
                phone=phone,
                **fields,
            )
            db.add(buyer)
            db.flush()
            for srn in srns:
                db.add(BuyerSaleRecord(sale_record_number=srn, buyer_id=buyer.id))
            return buyer.id
    return _make


@pytest.fixture
def make_order(db_engine):
    def _make(buyer_id: int, srn: Optional[int] = None, with_package: bool = True) -> int:
        with get_db_session() as db:
            package_id = None
            if with_package:
                package = PackageDetail(weight_grams=500, service_name="Express")
                db.add(package)
                db.flush()
                package_id = package.id
            order = Order(buyer_id=buyer_id, srn_id=srn, package_id=package_id)
            db.add(order)
            db.flush()
            return order.id
    return _make


def kurasi_row(**overrides) -> dict:
    """One shipmentManagement row as Kurasi returns it."""
    row = {
        "kurasiShipmentId": "KRS0001",
        "saleRecordNumber": "1001",
        "flagId": 2,
        "buyerFullName": "Jane Doe",
        "buyerAddress1": "1 Main St",
        "buyerAddress2": "",
        "buyerCity": "New York",
        "buyerState": "NY",
        "buyerZip": "10001",
        "buyerCountry": "United States",
        "countryShortName": "US",
        "buyerPhone": "9176187575",
        "phoneCode": "+1",
        "buyerEmail": "Jane.Doe@Example.com",
        "serviceName": "Express",
        "carrier": "DHL",
        "shippingFee": "104,000",
        "chargeableWeight": "500",
        "actualWeight": "450",
        "trackingNumber": "TRK1",
        "trackingList": [{"trackingNumber": "TRK1", "slug": "dhl"}],
        "awb": "AWB1",
        "boxId": "BOX1",
        "shipmentReceivedDatetime": "2025/09/01 10:00:00",
        "labelCreatedDatetime": "null",
        "shippedDatetime": "",
    }
    row.update(overrides)
    return row


def numbered_rows(count: int, start: int = 1) -> List[dict]:
    return [
        kurasi_row(kurasiShipmentId=f"KRS{n:05d}", saleRecordNumber=str(n), trackingNumber=f"TRK{n}")
        for n in range(start, start + count)
    ]


@pytest.fixture
def row_factory():
    return kurasi_row
