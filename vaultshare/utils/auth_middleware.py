"""
Request identity resolution.

Session tokens and device tokens are separate credential spaces: each is only
ever looked up in its own table.
"""

import logging
from functools import wraps
from typing import Optional

from flask import g, request

from ..core.context import current_context
from ..core.devices import DeviceTrustManager
from ..core.sessions import SessionManager
from .logging_config import log_security_event
from .unified_error_handler import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)


def extract_bearer_token() -> Optional[str]:
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        token = auth_header[len('Bearer '):].strip()
        return token or None
    return None


def extract_device_token() -> Optional[str]:
    """``X-Device-Token`` first, then ``Authorization: Bearer``."""
    return request.headers.get('X-Device-Token') or extract_bearer_token()


def _authenticate_session():
    token = extract_bearer_token()
    try:
        user = SessionManager(current_context()).validate(token)
    except AuthenticationError as e:
        log_security_event('session_rejected', f"Session rejected: {e.error_code}",
                           ip_address=getattr(g, 'client_ip', None), failure_reason=e.error_code)
        raise
    g.current_user = user
    g.session_token = token
    return user


def require_session(f):
    """Resolve ``Authorization: Bearer <session>`` into ``g.current_user``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        _authenticate_session()
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """Like :func:`require_session`, and the user must be an admin."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = _authenticate_session()
        if not user.is_admin:
            log_security_event('admin_required', f"Non-admin {user.id} denied {request.path}",
                               user_id=user.id, ip_address=getattr(g, 'client_ip', None))
            raise AuthorizationError('Admin access required')
        return f(*args, **kwargs)
    return decorated_function


def require_device(f):
    """Resolve a device token into ``g.device`` (a DeviceContext)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.device = DeviceTrustManager(current_context()).authenticate(extract_device_token())
        except AuthenticationError as e:
            log_security_event('device_rejected', f"Device token rejected: {e.error_code}",
                               ip_address=getattr(g, 'client_ip', None), failure_reason=e.error_code)
            raise
        return f(*args, **kwargs)
    return decorated_function
