# shipsync/api/routes/buyers.py
# API endpoints for managing buyers by hand.

from flask import Blueprint, request, jsonify, current_app

from shipsync.services.buyer_service import BuyerService
from shipsync.utils.data_conversion import safe_int, parse_positive_int
from shipsync.api.errors import ServiceError, ValidationError
from shipsync.utils.logger import logger

buyers_bp = Blueprint('buyers', __name__)


def _get_buyer_service() -> BuyerService:
    service = current_app.config.get('buyer_service')
    if not service:
        logger.critical("BuyerService not found in application config!")
        raise ServiceError("Buyer service is unavailable.", 503)
    return service


def _require_json() -> dict:
    if not request.is_json:
        raise ValidationError("Request must be JSON")
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _flag(name: str) -> bool:
    return request.args.get(name, '').strip().lower() in ('1', 'true', 'yes')


@buyers_bp.route('', methods=['GET'])
def list_buyers():
    """Paged buyer list. Query params: page, pageSize, q."""
    page = safe_int(request.args.get('page')) or 1
    page_size = safe_int(request.args.get('pageSize')) or 25
    result = _get_buyer_service().list_buyers(page, page_size, request.args.get('q'))
    return jsonify(result), 200


@buyers_bp.route('', methods=['POST'])
def create_buyer():
    """Creates a buyer, or refreshes the one already keyed by country+phone."""
    data = _require_json()
    logger.info("Manual buyer create request received.")
    buyer, created = _get_buyer_service().create_or_update_buyer(data)
    return jsonify(buyer), 201 if created else 200


@buyers_bp.route('/<int:buyer_id>', methods=['GET'])
def get_buyer(buyer_id: int):
    return jsonify(_get_buyer_service().get_buyer(buyer_id)), 200


@buyers_bp.route('/<int:buyer_id>', methods=['PUT'])
def update_buyer(buyer_id: int):
    data = _require_json()
    logger.info(f"Update request for buyer {buyer_id}: fields {sorted(data)}")
    return jsonify(_get_buyer_service().update_buyer(buyer_id, data)), 200


@buyers_bp.route('/<int:buyer_id>', methods=['DELETE'])
def delete_buyer(buyer_id: int):
    """
    Deletes a buyer. ?force=1 also deletes its orders; ?mergeInto=<id> moves
    orders and SRNs to that buyer instead of deleting them.
    """
    merge_into = None
    merge_raw = request.args.get('mergeInto')
    if merge_raw not in (None, ''):
        merge_into = parse_positive_int(merge_raw)
        if merge_into is None:
            raise ValidationError("mergeInto must be a positive integer.", payload={'field': ['mergeInto']})

    logger.info(f"Delete request for buyer {buyer_id} (force={_flag('force')}, mergeInto={merge_into}).")
    result = _get_buyer_service().delete_buyer(buyer_id, force=_flag('force'), merge_into=merge_into)
    return jsonify(result), 200


@buyers_bp.route('/merge', methods=['POST'])
def merge_buyers():
    """Body: {sourceBuyerId, targetBuyerId}."""
    data = _require_json()
    source_id = parse_positive_int(data.get('sourceBuyerId'))
    target_id = parse_positive_int(data.get('targetBuyerId'))
    if source_id is None or target_id is None:
        raise ValidationError(
            "sourceBuyerId and targetBuyerId must be positive integers.",
            payload={'field': ['sourceBuyerId', 'targetBuyerId']},
        )
    return jsonify(_get_buyer_service().merge_buyers(source_id, target_id)), 200
