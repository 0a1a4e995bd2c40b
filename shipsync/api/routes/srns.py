# shipsync/api/routes/srns.py
# API endpoints for sale record number (SRN) checks and lookups.

from flask import Blueprint, request, jsonify, current_app

from shipsync.services.sale_record_service import SaleRecordService
from shipsync.api.errors import ServiceError
from shipsync.utils.logger import logger

srns_bp = Blueprint('srns', __name__)


def _get_sale_record_service() -> SaleRecordService:
    service = current_app.config.get('sale_record_service')
    if not service:
        logger.critical("SaleRecordService not found in application config!")
        raise ServiceError("Sale record service is unavailable.", 503)
    return service


@srns_bp.route('/check', methods=['GET'])
def check_srn():
    """?srn=<n>&excludeBuyerId=<id> -> {exists, srn}"""
    result = _get_sale_record_service().check_srn(request.args.get('srn'), request.args.get('excludeBuyerId'))
    return jsonify(result), 200


@srns_bp.route('/<string:key>', methods=['GET'])
def lookup_srn(key: str):
    """Numeric SRN or KRS shipment id."""
    return jsonify(_get_sale_record_service().lookup_srn(key)), 200
