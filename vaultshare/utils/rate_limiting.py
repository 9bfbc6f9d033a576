"""
HTTP-level request throttling.

Flask-Limiter guards the unauthenticated endpoints per client. This is separate
from the per-device upload quota in ``core.rate_limiter``, which lives in the
relational store.
"""

import hashlib
import logging

from flask import jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from .unified_error_handler import RateLimitError, create_error_response

logger = logging.getLogger(__name__)


class RateLimitConfig:
    """Limit strings for the public surface."""

    REGISTRATION_LIMIT = "10 per hour"
    LOGIN_LIMIT = "10 per minute"
    DEVICE_REQUEST_LIMIT = "10 per hour"
    DOWNLOAD_LIMIT = "60 per minute"
    GENERAL_API_LIMIT = "300 per minute"


def get_client_identifier():
    """
    Get a unique identifier for the client for rate limiting.
    Uses X-Forwarded-For header if available (for proxy setups).
    """
    forwarded_for = request.headers.get('X-Forwarded-For')
    if forwarded_for:
        client_ip = forwarded_for.split(',')[0].strip()
    else:
        client_ip = get_remote_address()

    # Stable across processes, unlike hash()
    user_agent = request.headers.get('User-Agent', 'unknown')
    ua_bucket = int(hashlib.sha256(user_agent.encode('utf-8')).hexdigest()[:8], 16) % 1000

    return f"{client_ip}:{ua_bucket}"


limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[RateLimitConfig.GENERAL_API_LIMIT],
)


def rate_limit_exceeded_handler(e):
    """Render Flask-Limiter's 429 in the shared error shape."""
    logger.warning(f"Rate limit exceeded for {get_client_identifier()}: {e.description}")

    error = RateLimitError('Too many requests. Please try again later.')
    response = create_error_response(error, include_details=False)
    response['limit'] = str(e.description)
    return jsonify(response), 429
