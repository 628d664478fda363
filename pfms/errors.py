"""Domain exceptions and their JSON error handlers."""

from __future__ import annotations

from flask import current_app, jsonify


class PFMSError(Exception):
    """Base exception for federation services."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    @property
    def error_type(self) -> str:
        return type(self).__name__


class ValidationError(PFMSError):
    """Malformed or out-of-domain input (unknown enum value, bad birth year)."""

    status_code = 400

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, self.status_code)


class AuthorizationError(PFMSError):
    """The acting user may not touch the referenced entity."""

    status_code = 403

    def __init__(self, message: str = "Access forbidden"):
        super().__init__(message, self.status_code)


class NotFoundError(PFMSError):
    """Referenced entity does not exist or is soft-deleted."""

    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, self.status_code)


class ConflictError(PFMSError):
    """Duplicate active association or duplicate natural key."""

    status_code = 409

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, self.status_code)


class PersistenceError(PFMSError):
    """Underlying storage call failed."""

    status_code = 500

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, self.status_code)


def register_error_handlers(app) -> None:
    """Render domain errors as ``{"error": ..., "message": ...}`` JSON."""

    @app.errorhandler(PFMSError)
    def handle_pfms_error(error: PFMSError):
        if isinstance(error, PersistenceError):
            current_app.logger.error(f"Persistence failure: {error.message} ({error.__cause__!r})")
        return jsonify({'error': error.error_type, 'message': error.message}), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'error': 'NotFoundError', 'message': 'Resource not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({'error': 'InternalError', 'message': 'Internal server error'}), 500


__all__ = [
    'PFMSError',
    'ValidationError',
    'AuthorizationError',
    'NotFoundError',
    'ConflictError',
    'PersistenceError',
    'register_error_handlers',
]
