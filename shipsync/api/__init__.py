# shipsync/api/__init__.py
# Initializes the API layer and registers blueprints.

from flask import Flask

from shipsync.utils.logger import logger


def register_blueprints(app: Flask):
    """
    Registers all defined blueprints with the Flask application.

    Args:
        app: The Flask application instance.
    """
    # Route modules pull in the service layer, so they are imported on demand
    from .routes.sync import sync_bp
    from .routes.buyers import buyers_bp
    from .routes.srns import srns_bp
    from .routes.orders import orders_bp

    blueprints = [
        (sync_bp, '/api/sync'),
        (buyers_bp, '/api/buyers'),
        (srns_bp, '/api/srns'),
        (orders_bp, '/api/orders'),
    ]

    logger.info("Registering API blueprints...")
    for bp, prefix in blueprints:
        app.register_blueprint(bp, url_prefix=prefix)
        logger.debug(f"Blueprint '{bp.name}' registered with prefix '{prefix}'.")
    logger.info("All API blueprints registered.")

__all__ = ["register_blueprints"]
