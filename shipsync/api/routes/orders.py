# shipsync/api/routes/orders.py
# API endpoints for the order side of the SRN linkage.

from flask import Blueprint, request, jsonify, current_app

from shipsync.services.order_service import OrderService
from shipsync.api.errors import ServiceError
from shipsync.utils.logger import logger

orders_bp = Blueprint('orders', __name__)


def _get_order_service() -> OrderService:
    service = current_app.config.get('order_service')
    if not service:
        logger.critical("OrderService not found in application config!")
        raise ServiceError("Order service is unavailable.", 503)
    return service


@orders_bp.route('/<int:order_id>/srn', methods=['PUT'])
def assign_srn(order_id: int):
    """Body: {saleRecordNumber}. 409 when the SRN belongs to another buyer or order."""
    data = request.get_json(silent=True) or {}
    logger.info(f"Assign SRN {data.get('saleRecordNumber')!r} to order {order_id}.")
    return jsonify(_get_order_service().assign_srn_to_order(order_id, data.get('saleRecordNumber'))), 200


@orders_bp.route('/<int:order_id>', methods=['DELETE'])
def delete_order(order_id: int):
    logger.info(f"Delete request for order {order_id}.")
    return jsonify(_get_order_service().delete_order(order_id)), 200
