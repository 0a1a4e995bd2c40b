# shipsync/api/errors.py
# Defines custom application exceptions and Flask error handlers.

from flask import jsonify, request
from werkzeug.exceptions import HTTPException
from shipsync.utils.logger import logger

# --- Custom Application Exceptions ---

class ApiError(Exception):
    """Base class for custom API errors."""
    status_code = 500
    message = "An internal server error occurred."

    def __init__(self, message=None, status_code=None, payload=None):
        super().__init__(message if message is not None else self.message)
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload # Optional additional data

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['error'] = self.message
        return rv

class ValidationError(ApiError):
    """Indicates invalid data provided by the client."""
    status_code = 400
    message = "Validation failed."

class InvalidPhoneError(ValidationError):
    """The phone input holds no digits and cannot be normalized."""
    message = "Phone number has no digits."

class NotFoundError(ApiError):
    """Indicates a requested resource was not found."""
    status_code = 404
    message = "The requested resource was not found."

class ConflictError(ApiError):
    """Indicates the request conflicts with the current state of a resource."""
    status_code = 409
    message = "The request conflicts with existing data."

class UniquenessConflictError(ConflictError):
    """A natural key is already owned by another record."""
    message = "Another record already uses this key."

    def __init__(self, message=None, fields=None, payload=None):
        payload = dict(payload or {})
        if fields:
            payload['field'] = list(fields)
        super().__init__(message, payload=payload)
        self.fields = list(fields or [])

class ReferentialBlockError(ConflictError):
    """Deletion refused because dependent records exist."""
    message = "Record is still referenced by other records."

class SyncAlreadyRunningError(ConflictError):
    """A synchronization run is already in progress in this process."""
    message = "A shipment synchronization is already running."

class SyncCancelledError(ApiError):
    """The running synchronization was cancelled or hit its deadline."""
    status_code = 499
    message = "Synchronization was cancelled."

class ServiceError(ApiError):
     """Indicates a general error within a service layer operation."""
     status_code = 500
     message = "A service error occurred."

class DatabaseError(ApiError):
    """Indicates an error during a database operation."""
    status_code = 500
    message = "A database error occurred."

class KurasiIntegrationError(ApiError):
    """Indicates an error during communication with the Kurasi platform."""
    status_code = 502
    message = "Error communicating with the Kurasi platform."

class RetriableFetchError(KurasiIntegrationError):
    """Transient page fetch failure (5xx, 429, network)."""
    message = "Transient error fetching shipments from Kurasi."

class NonRetriableFetchError(KurasiIntegrationError):
    """Page fetch failure that retrying will not fix (4xx, bad payload)."""
    message = "Kurasi rejected the shipment request."

class FetchAbortedError(KurasiIntegrationError):
    """Retries were exhausted for a page fetch."""
    message = "Giving up on Kurasi shipment fetch after repeated failures."

    def __init__(self, message=None, attempts=None, last_error=None):
        payload = {}
        if attempts is not None:
            payload['attempts'] = attempts
        super().__init__(message, payload=payload)
        self.attempts = attempts
        self.last_error = last_error

class ConfigurationError(ApiError):
     """Indicates a problem with the application's configuration."""
     status_code = 500
     message = "Application configuration error."


# --- Flask Error Handlers ---

def register_error_handlers(app):
    """Registers custom error handlers with the Flask app."""

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        """Handler for custom ApiError exceptions."""
        logger.warning(f"API Error Handled: {type(error).__name__} - Status: {error.status_code} - Msg: {error.message}")
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        return response

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        """Handler for standard werkzeug HTTPExceptions (like 404, 405)."""
        logger.warning(f"HTTP Exception Handled: {error.code} {error.name} - Path: {request.path} - Msg: {error.description}")
        response = jsonify({"error": f"{error.name}: {error.description}"})
        response.status_code = error.code
        return response

    @app.errorhandler(Exception)
    def handle_generic_exception(error):
        """Handler for any other unhandled exceptions."""
        logger.error(f"Unhandled Exception: {error}", exc_info=True)
        response = jsonify({"error": "An unexpected internal server error occurred."})
        response.status_code = 500
        return response

    logger.info("Custom error handlers registered.")
