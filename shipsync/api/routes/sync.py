# shipsync/api/routes/sync.py
# API endpoints to trigger, cancel and inspect Kurasi shipment synchronization.

from flask import Blueprint, jsonify, current_app, request

from shipsync.services.sync.shipment_sync_service import ShipmentSyncService, is_scheduler_running
from shipsync.domain.sync import SyncRunRequest
from shipsync.utils.data_conversion import parse_optional_date, parse_positive_int
from shipsync.api.errors import ServiceError, ValidationError, SyncAlreadyRunningError
from shipsync.utils.logger import logger

sync_bp = Blueprint('sync', __name__)


def _get_shipment_sync_service() -> ShipmentSyncService:
    service = current_app.config.get('shipment_sync_service')
    if not service:
        logger.critical("ShipmentSyncService not found in application config!")
        raise ServiceError("Shipment sync service is unavailable.", 503)
    return service


def _parse_date_field(data: dict, key: str):
    raw = data.get(key)
    if raw in (None, ""):
        return None
    parsed = parse_optional_date(raw)
    if parsed is None:
        raise ValidationError(f"{key} must be a YYYY-MM-DD date.", payload={'field': [key]})
    return parsed


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


@sync_bp.route('/shipments', methods=['POST'])
def trigger_shipment_sync():
    """
    Runs a shipment sync and waits for it to finish.

    Body (JSON, all optional): startDate, endDate (YYYY-MM-DD), fullSync,
    clearExistingBuyers, pageSize. Without fullSync only the recent lookback
    window is fetched. An aborted run still returns its summary, with the
    status code of the error that stopped it.
    """
    data = request.get_json(silent=True) or {}
    page_size = None
    if data.get('pageSize') not in (None, ""):
        page_size = parse_positive_int(data.get('pageSize'))
        if page_size is None:
            raise ValidationError("pageSize must be a positive integer.", payload={'field': ['pageSize']})

    run_request = SyncRunRequest(
        start_date=_parse_date_field(data, 'startDate'),
        end_date=_parse_date_field(data, 'endDate'),
        full_sync=_as_bool(data.get('fullSync', False)),
        clear_existing_buyers=_as_bool(data.get('clearExistingBuyers', False)),
        page_size=page_size,
    )
    logger.info(f"Shipment sync requested: {run_request}")

    summary = _get_shipment_sync_service().run_sync(run_request)
    status = (summary.error_status or 500) if summary.aborted else 200
    return jsonify(summary.to_dict()), status


@sync_bp.route('/shipments/cancel', methods=['POST'])
def cancel_shipment_sync():
    """Asks the running sync to stop after the current page or backoff wait."""
    cancelled = _get_shipment_sync_service().cancel()
    return jsonify({"cancelled": cancelled}), 200


@sync_bp.route('/status', methods=['GET'])
def get_sync_status():
    service = _get_shipment_sync_service()
    last = service.last_summary
    return jsonify({
        "running": ShipmentSyncService.is_running(),
        "state": service.state.value,
        "schedulerRunning": is_scheduler_running(),
        "lastRun": last.to_dict() if last else None,
    }), 200


@sync_bp.route('/checkpoint', methods=['GET'])
def get_checkpoint():
    month_end = _get_shipment_sync_service().checkpoint_store.load()
    return jsonify({"monthEnd": month_end.isoformat() if month_end else None}), 200


@sync_bp.route('/checkpoint', methods=['DELETE'])
def reset_checkpoint():
    if ShipmentSyncService.is_running():
        raise SyncAlreadyRunningError("Cannot reset the checkpoint while a sync is running.")
    _get_shipment_sync_service().checkpoint_store.clear()
    logger.warning("Shipment sync checkpoint reset via API.")
    return '', 204
