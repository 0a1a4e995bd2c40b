"""
HTTP-level tests through create_app: status codes and JSON bodies of the
buyer, SRN, order and sync endpoints.
"""
from datetime import date

import pytest

from conftest import FakeKurasiSession, FakeResponse, KURASI_BASE, TEST_DB_URI, kurasi_row
from shipsync.app import create_app
from shipsync.config import Config
from shipsync.database import dispose_sqlalchemy_engine, get_db_session
from shipsync.domain import Order
from shipsync.kurasi_integration import KurasiAuthService

BUYER = {
    'buyerFullName': 'Jane Doe',
    'buyerAddress1': '1 Main St',
    'buyerCity': 'New York',
    'buyerZip': '10001',
    'buyerCountry': 'US',
    'buyerPhone': '9176187575',
}


def _insert_order(buyer_id: int) -> int:
    with get_db_session() as db:
        order = Order(buyer_id=buyer_id)
        db.add(order)
        db.flush()
        return order.id


@pytest.fixture
def kurasi_session():
    return FakeKurasiSession()


@pytest.fixture
def app(tmp_path, kurasi_session):
    dispose_sqlalchemy_engine()
    cfg = Config(
        SQLALCHEMY_DATABASE_URI=TEST_DB_URI,
        CHECKPOINT_PATH=str(tmp_path / "cp.json"),
        CHECKPOINT_BACKEND="file",
        SYNC_SCHEDULER_ENABLED=False,
    )
    auth = KurasiAuthService(base_url=KURASI_BASE, static_token="t", client_code="C-100", session=kurasi_session)
    application = create_app(cfg, kurasi_auth_service=auth)
    application.config['TESTING'] = True
    yield application
    dispose_sqlalchemy_engine()


@pytest.fixture
def client(app):
    return app.test_client()


# ────────────────────────────────────────────
# BUYERS
# ────────────────────────────────────────────


class TestBuyerRoutes:

    def test_create_then_update_status_codes(self, client):
        created = client.post('/api/buyers', json={**BUYER, 'saleRecordNumber': 2945})
        assert created.status_code == 201
        assert created.get_json()['buyerPhone'] == '+19176187575'

        again = client.post('/api/buyers', json={**BUYER, 'buyerCity': 'Brooklyn'})
        assert again.status_code == 200
        assert again.get_json()['id'] == created.get_json()['id']

    def test_create_requires_json(self, client):
        response = client.post('/api/buyers', data="not json", content_type="text/plain")
        assert response.status_code == 400
        assert 'error' in response.get_json()

    def test_invalid_phone_is_400_with_field(self, client):
        response = client.post('/api/buyers', json={**BUYER, 'buyerPhone': '12'})
        assert response.status_code == 400
        assert response.get_json()['field'] == ['buyerPhone']

    def test_srn_conflict_is_409_with_field(self, client):
        client.post('/api/buyers', json={**BUYER, 'saleRecordNumber': 2945})
        response = client.post(
            '/api/buyers', json={**BUYER, 'buyerPhone': '+61412345678', 'buyerCountry': 'AU', 'saleRecordNumber': 2945}
        )
        assert response.status_code == 409
        assert response.get_json()['field'] == ['saleRecordNumber']

    def test_get_update_list(self, client):
        buyer_id = client.post('/api/buyers', json=BUYER).get_json()['id']

        assert client.get(f'/api/buyers/{buyer_id}').get_json()['orderCount'] == 0
        updated = client.put(f'/api/buyers/{buyer_id}', json={'buyerCity': 'Queens'})
        assert updated.status_code == 200
        assert updated.get_json()['buyerCity'] == 'Queens'

        listing = client.get('/api/buyers?q=queens&pageSize=10').get_json()
        assert listing['totalFiltered'] == 1
        assert listing['pageSize'] == 10

    def test_unknown_buyer_is_404(self, client):
        assert client.get('/api/buyers/999').status_code == 404

    def test_delete_and_merge(self, client):
        first = client.post('/api/buyers', json=BUYER).get_json()['id']
        second = client.post('/api/buyers', json={**BUYER, 'buyerCountry': 'AU', 'buyerPhone': '+61412345678'}).get_json()['id']

        assert client.delete(f'/api/buyers/{first}?mergeInto=abc').status_code == 400

        merged = client.post('/api/buyers/merge', json={'sourceBuyerId': first, 'targetBuyerId': second})
        assert merged.status_code == 200
        assert merged.get_json()['mergedInto'] == second

        deleted = client.delete(f'/api/buyers/{second}')
        assert deleted.status_code == 200
        assert deleted.get_json()['deleted'] == second

    def test_merge_requires_ids(self, client):
        response = client.post('/api/buyers/merge', json={'sourceBuyerId': 'x'})
        assert response.status_code == 400


# ────────────────────────────────────────────
# SRNS / ORDERS
# ────────────────────────────────────────────


class TestSrnAndOrderRoutes:

    def test_check_srn(self, client):
        client.post('/api/buyers', json={**BUYER, 'saleRecordNumber': 2945})
        assert client.get('/api/srns/check?srn=2945').get_json() == {'exists': True, 'srn': 2945}
        assert client.get('/api/srns/check?srn=abc').status_code == 400
        assert client.get('/api/srns/check?srn=1&excludeBuyerId=x').status_code == 400

    def test_lookup_srn(self, client):
        buyer_id = client.post('/api/buyers', json={**BUYER, 'saleRecordNumber': 2945}).get_json()['id']
        response = client.get('/api/srns/2945')
        assert response.status_code == 200
        assert response.get_json()['buyer']['id'] == buyer_id
        assert client.get('/api/srns/nope').status_code == 400
        assert client.get('/api/srns/KRS404').status_code == 404

    def test_order_routes(self, client):
        buyer_id = client.post('/api/buyers', json=BUYER).get_json()['id']
        order_id = _insert_order(buyer_id)

        assigned = client.put(f'/api/orders/{order_id}/srn', json={'saleRecordNumber': 7001})
        assert assigned.status_code == 200
        assert assigned.get_json()['srnId'] == 7001

        assert client.put(f'/api/orders/{order_id}/srn', json={'saleRecordNumber': 'x'}).status_code == 400

        deleted = client.delete(f'/api/orders/{order_id}')
        assert deleted.get_json()['srnDeleted'] is True
        assert client.delete(f'/api/orders/{order_id}').status_code == 404


# ────────────────────────────────────────────
# SYNC
# ────────────────────────────────────────────


class TestSyncRoutes:

    def test_incremental_sync(self, client, kurasi_session):
        kurasi_session.shipments_handler = lambda payload, n: [kurasi_row()]

        response = client.post('/api/sync/shipments', json={'startDate': '2025-09-01', 'endDate': '2025-09-30'})

        assert response.status_code == 200
        body = response.get_json()
        assert body['rowsFetched'] == 1
        assert body['created'] == 1
        assert body['aborted'] is False
        assert body['dateRangeProcessed'] == {'startDate': '2025-09-01', 'endDate': '2025-09-30'}
        assert kurasi_session.shipment_calls[0]['json']['sortType'] == 'ASC'

        status = client.get('/api/sync/status').get_json()
        assert status['running'] is False
        assert status['state'] == 'DONE'
        assert status['lastRun']['rowsFetched'] == 1

    def test_unconvertible_row_does_not_fail_the_run(self, client, kurasi_session):
        kurasi_session.shipments_handler = lambda payload, n: [
            kurasi_row(actualWeight="99999999999999999999999", buyerPhone=""),
        ]

        response = client.post('/api/sync/shipments', json={'startDate': '2025-09-01', 'endDate': '2025-09-30'})

        assert response.status_code == 200
        body = response.get_json()
        assert body['created'] == 1
        assert body['skipped'] == 0
        assert body['buyerSkipReasons'] == {'INVALID_PHONE': 1}

    def test_bad_date_is_400(self, client):
        response = client.post('/api/sync/shipments', json={'startDate': '01/09/2025'})
        assert response.status_code == 400
        assert response.get_json()['field'] == ['startDate']

    def test_start_after_end_is_400(self, client):
        response = client.post('/api/sync/shipments', json={'startDate': '2025-10-01', 'endDate': '2025-09-01'})
        assert response.status_code == 400

    def test_aborted_sync_reports_upstream_status(self, client, kurasi_session):
        kurasi_session.shipments_handler = lambda payload, n: FakeResponse(400, {}, text="bad filter")

        response = client.post('/api/sync/shipments', json={'startDate': '2025-09-01', 'endDate': '2025-09-30'})

        assert response.status_code == 502
        assert response.get_json()['aborted'] is True

    def test_full_sync_saves_and_clears_checkpoint(self, client, kurasi_session):
        response = client.post('/api/sync/shipments', json={
            'startDate': '2025-08-15', 'endDate': '2025-09-30', 'fullSync': True,
        })
        assert response.status_code == 200
        assert response.get_json()['monthsCompleted'] == 2
        windows = [c['json']['startDate'] for c in kurasi_session.shipment_calls]
        assert windows == ['2025-09-01', '2025-08-15']
        assert client.get('/api/sync/checkpoint').get_json() == {'monthEnd': None}

    def test_checkpoint_reset(self, client, app):
        store = app.config['shipment_sync_service'].checkpoint_store
        store.save(date(2025, 8, 31))

        assert client.get('/api/sync/checkpoint').get_json() == {'monthEnd': '2025-08-31'}
        assert client.delete('/api/sync/checkpoint').status_code == 204
        assert client.get('/api/sync/checkpoint').get_json() == {'monthEnd': None}

    def test_cancel_without_run(self, client):
        assert client.post('/api/sync/shipments/cancel').get_json() == {'cancelled': False}


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        body = response.get_json()
        assert body['database'] == 'ok'
        assert body['sync_running'] is False
