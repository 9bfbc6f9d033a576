"""
Unified Error Handler for vaultshare.
Combines exception classes and error rendering in one module.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from flask import jsonify
from werkzeug.exceptions import HTTPException

from .logging_middleware import current_request_id

logger = logging.getLogger(__name__)

# ============================================================================
# ERROR CATEGORIES AND SEVERITY
# ============================================================================

class ErrorCategory:
    """Error categories for better organization."""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    RESOURCE = "resource"
    DATABASE = "database"
    RATE_LIMIT = "rate_limit"
    SYSTEM = "system"


class ErrorSeverity:
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class VaultError(Exception):
    """Base exception class for vaultshare.

    ``error_code`` is the stable machine-readable code surfaced to clients
    (``UNAUTHORIZED``, ``EMAIL_EXISTS``, ...); ``message`` is the human text.
    """

    status_code = 400
    category = ErrorCategory.SYSTEM
    severity = ErrorSeverity.MEDIUM
    default_code = 'INVALID_REQUEST'

    def __init__(self, message: str, error_code: Optional[str] = None,
                 status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.request_id = current_request_id()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.error_code!r}, {self.message!r})"


class ValidationError(VaultError):
    """Raised when input validation fails."""
    status_code = 400
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW
    default_code = 'INVALID_REQUEST'

    def __init__(self, message: str, error_code: Optional[str] = None,
                 field: Optional[str] = None):
        details = {'field': field} if field else None
        super().__init__(message, error_code=error_code, details=details)


class AuthenticationError(VaultError):
    """Raised when a bearer credential is missing, unknown or expired."""
    status_code = 401
    category = ErrorCategory.AUTHENTICATION
    default_code = 'UNAUTHORIZED'


class AuthorizationError(VaultError):
    """Raised when an authenticated caller may not perform the action."""
    status_code = 403
    category = ErrorCategory.AUTHORIZATION
    severity = ErrorSeverity.HIGH
    default_code = 'FORBIDDEN'


class NotFoundError(VaultError):
    """Raised when a resource is not found."""
    status_code = 404
    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.LOW
    default_code = 'NOT_FOUND'

    def __init__(self, message: str, error_code: Optional[str] = None,
                 resource_type: Optional[str] = None, resource_id: Optional[str] = None):
        details = {}
        if resource_type:
            details['resource_type'] = resource_type
        if resource_id:
            details['resource_id'] = resource_id
        super().__init__(message, error_code=error_code, details=details)


class ConflictError(VaultError):
    """Raised when the request collides with existing state."""
    status_code = 409
    category = ErrorCategory.CONFLICT
    severity = ErrorSeverity.LOW
    default_code = 'CONFLICT'


class GoneError(VaultError):
    """Raised when an artifact exists but may no longer be served."""
    status_code = 410
    category = ErrorCategory.RESOURCE
    severity = ErrorSeverity.LOW
    default_code = 'EXPIRED'


class RateLimitError(VaultError):
    """Raised when the upload quota is exhausted."""
    status_code = 429
    category = ErrorCategory.RATE_LIMIT
    default_code = 'RATE_LIMIT_EXCEEDED'

    def __init__(self, message: str, remaining: int = 0, reset_at: Optional[str] = None):
        details = {'remaining': remaining}
        if reset_at:
            details['reset_at'] = reset_at
        super().__init__(message, details=details)


class DatabaseError(VaultError):
    """Raised when database operations fail."""
    status_code = 500
    category = ErrorCategory.DATABASE
    severity = ErrorSeverity.HIGH
    default_code = 'DATABASE_ERROR'

# ============================================================================
# ERROR HANDLING FUNCTIONS
# ============================================================================

def create_error_response(error: VaultError, include_details: bool = True) -> Dict[str, Any]:
    """
    Create a structured error response.

    Args:
        error: VaultError instance
        include_details: Whether to include detailed error information

    Returns:
        Dict containing structured error response
    """
    response = {
        'error': True,
        'code': error.error_code,
        'message': error.message,
        'timestamp': error.timestamp,
        'request_id': error.request_id,
        'category': error.category,
    }

    if include_details and error.details:
        response['details'] = error.details

    return response


def handle_vault_error(error: VaultError) -> tuple:
    """Render any VaultError at the request boundary."""
    # Server-side faults never leak their details to the client
    response = create_error_response(error, include_details=error.status_code < 500)

    if error.status_code >= 500:
        logger.error(f"{type(error).__name__}: {error.error_code} {error.message} - {error.details}")
    elif error.category in (ErrorCategory.AUTHENTICATION, ErrorCategory.AUTHORIZATION,
                            ErrorCategory.RATE_LIMIT):
        logger.warning(f"{type(error).__name__}: {error.error_code} {error.message}")
    else:
        logger.info(f"{type(error).__name__}: {error.error_code} {error.message}")

    return jsonify(response), error.status_code


def handle_http_exception(error: HTTPException) -> tuple:
    """Render werkzeug HTTP exceptions (404 route, 405, 413...) in the same shape."""
    response = {
        'error': True,
        'code': (error.name or 'HTTP_ERROR').upper().replace(' ', '_'),
        'message': error.description or error.name,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'request_id': current_request_id(),
        'category': ErrorCategory.SYSTEM,
    }
    return jsonify(response), error.code or 500


def handle_generic_exception(error: Exception) -> tuple:
    """Handle generic exceptions with enhanced response."""
    if isinstance(error, HTTPException):
        return handle_http_exception(error)

    error_id = current_request_id()

    # Don't expose internal details to users
    response = {
        'error': True,
        'code': 'INTERNAL_SERVER_ERROR',
        'message': "An unexpected error occurred. Please try again later.",
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'request_id': error_id,
        'category': ErrorCategory.SYSTEM,
    }

    logger.error(f"Unhandled exception (ID: {error_id}): {str(error)} - Traceback: {traceback.format_exc()}")

    return jsonify(response), 500


def register_error_handlers(app):
    """Attach the handlers above to a Flask app."""
    app.register_error_handler(VaultError, handle_vault_error)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_generic_exception)
