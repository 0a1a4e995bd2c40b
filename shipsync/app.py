# shipsync/app.py
from flask import Flask, jsonify
from flask_cors import CORS
import atexit
import os
import sys
from sqlalchemy.exc import SQLAlchemyError

from shipsync.config import Config
from shipsync.api import register_blueprints
from shipsync.api.errors import register_error_handlers, ConfigurationError, DatabaseError
from shipsync.database import (
    get_db_session,
    init_sqlalchemy,
    dispose_sqlalchemy_engine,
)
from shipsync.utils.logger import logger, configure_logger

from shipsync.database.buyer_repository import BuyerRepository
from shipsync.database.sale_record_repository import SaleRecordRepository
from shipsync.database.shipment_mirror_repository import ShipmentMirrorRepository
from shipsync.database.order_repository import OrderRepository

from shipsync.services import BuyerService, SaleRecordService, OrderService
from shipsync.services.sync import (
    ShipmentReconciler,
    ShipmentSyncService,
    build_checkpoint_store,
    start_shipment_sync_scheduler,
    stop_shipment_sync_scheduler,
    is_scheduler_running,
)
from shipsync.kurasi_integration import KurasiAuthService, KurasiShipmentService


def create_app(config_object: Config, kurasi_auth_service: KurasiAuthService = None) -> Flask:
    """
    Factory function to create and configure the Flask application with SQLAlchemy.

    Args:
        config_object: The configuration object for the application.
        kurasi_auth_service: Optional pre-built Kurasi auth service (tests pass one
            wired to a fake HTTP session).

    Returns:
        The configured Flask application instance.
    """
    app = Flask("ShipSync")
    app.config.from_object(config_object)

    # --- Logging ---
    configure_logger(config_object.LOG_LEVEL)
    logger.info("Starting the ShipSync Flask application.")
    logger.info(f"Debug mode: {app.config.get('APP_DEBUG')}")

    # --- Secret Key Check ---
    if not app.config.get('SECRET_KEY') or app.config.get('SECRET_KEY') == 'default_secret_key_change_me_in_env':
        logger.critical("SECURITY ALERT: SECRET_KEY is not set or is using the default value!")
        if not app.config.get('APP_DEBUG', False) and not app.config.get('TESTING', False):
            raise ConfigurationError("SECRET_KEY must be set to a unique, secure value in production.")
        logger.warning("Using the default SECRET_KEY in debug/testing mode.")

    # --- CORS Configuration ---
    CORS(app, supports_credentials=True, resources={r"/api/*": {"origins": "*"}})

    # --- Database Initialization (SQLAlchemy) ---
    try:
        db_uri = app.config.get('SQLALCHEMY_DATABASE_URI')
        if not db_uri:
            raise ConfigurationError("SQLALCHEMY_DATABASE_URI is not configured.")
        db_engine = init_sqlalchemy(db_uri)
        atexit.register(dispose_sqlalchemy_engine)
    except (DatabaseError, ConfigurationError, SQLAlchemyError) as db_init_err:
        logger.critical(f"Failed to initialize the database: {db_init_err}", exc_info=True)
        sys.exit(1)

    # --- Dependency Injection (Service Instantiation) ---
    logger.info("Instantiating services...")
    try:
        buyer_repo = BuyerRepository(db_engine)
        srn_repo = SaleRecordRepository(db_engine)
        mirror_repo = ShipmentMirrorRepository(db_engine)
        order_repo = OrderRepository(db_engine)

        app.config['buyer_repository'] = buyer_repo
        app.config['sale_record_repository'] = srn_repo
        app.config['shipment_mirror_repository'] = mirror_repo
        app.config['order_repository'] = order_repo

        # Kurasi integration
        auth_svc = kurasi_auth_service or KurasiAuthService()
        shipment_svc = KurasiShipmentService(auth_svc)

        # Application services
        reconciler = ShipmentReconciler(buyer_repo, srn_repo, mirror_repo, order_repo)
        checkpoint_store = build_checkpoint_store(config_object, db_engine)
        shipment_sync_svc = ShipmentSyncService(shipment_svc, auth_svc, reconciler, checkpoint_store, buyer_repo)
        buyer_svc = BuyerService(buyer_repo, srn_repo, cascade_packages=config_object.CASCADE_PACKAGE_ON_ORDER_DELETE)
        srn_svc = SaleRecordService(srn_repo)
        order_svc = OrderService(order_repo, srn_repo, cascade_packages=config_object.CASCADE_PACKAGE_ON_ORDER_DELETE)

        app.config['kurasi_auth_service'] = auth_svc
        app.config['shipment_sync_service'] = shipment_sync_svc
        app.config['buyer_service'] = buyer_svc
        app.config['sale_record_service'] = srn_svc
        app.config['order_service'] = order_svc
        logger.info("Services instantiated and added to the application config.")
    except Exception as service_init_err:
        logger.critical(f"Failed to instantiate services: {service_init_err}", exc_info=True)
        sys.exit(1)

    # --- Register Blueprints (API Routes) ---
    register_blueprints(app)

    # --- Register Error Handlers ---
    register_error_handlers(app)

    # --- Start Background Schedulers ---
    if config_object.SYNC_SCHEDULER_ENABLED and (not app.debug or os.environ.get('WERKZEUG_RUN_MAIN') == 'true'):
        logger.info("Starting the background shipment sync scheduler...")
        start_shipment_sync_scheduler(shipment_sync_svc)
        atexit.register(stop_shipment_sync_scheduler, shipment_sync_svc)

    # --- Simple Health Check Endpoint ---
    @app.route('/health', methods=['GET'])
    def health_check():
        db_status = "ok"
        db_error = None
        try:
            with get_db_session():
                pass
        except Exception as e:
            logger.error(f"Database session health check failed: {e}")
            db_status = "error"
            db_error = str(e)

        return jsonify({
            "status": "ok",
            "database": db_status,
            "database_error": db_error,
            "sync_running": ShipmentSyncService.is_running(),
            "scheduler_running": is_scheduler_running(),
        }), 200 if db_status == "ok" else 503

    logger.info("ShipSync application configured successfully.")
    return app
