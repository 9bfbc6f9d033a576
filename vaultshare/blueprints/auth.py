"""
Authentication Blueprint for vaultshare.
Handles registration, password login and session lifecycle.
"""

import logging

from flask import Blueprint, g, jsonify, request

from ..core.context import current_context
from ..core.credentials import verify_password
from ..core.sessions import SessionManager
from ..database.db_operations import add_user, count_users, get_user_by_email
from ..utils.auth_middleware import require_session
from ..utils.logging_config import log_security_event
from ..utils.rate_limiting import RateLimitConfig, limiter
from ..utils.unified_error_handler import AuthenticationError
from ..utils.validation import InputValidator, LOGIN_SCHEMA, REGISTRATION_SCHEMA, validate_request_schema

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/register', methods=['POST'])
@limiter.limit(RateLimitConfig.REGISTRATION_LIMIT)
@validate_request_schema(**REGISTRATION_SCHEMA)
def register():
    """Register a user. The first account on a fresh install becomes admin."""
    data = request.validated_data
    email = InputValidator.validate_email(data['email'])
    password = InputValidator.validate_password(data['password'])

    user = add_user(email, password)
    token = SessionManager(current_context()).create_session(user.id)

    log_security_event('user_registered', f"User registered: {email}", level=logging.INFO,
                       user_id=user.id, ip_address=g.get('client_ip'))
    return jsonify({'user': user.to_dict(), 'token': token}), 201


@auth_bp.route('/login', methods=['POST'])
@limiter.limit(RateLimitConfig.LOGIN_LIMIT)
@validate_request_schema(**LOGIN_SCHEMA)
def login():
    data = request.validated_data
    email = str(data['email']).strip().lower()

    user = get_user_by_email(email)
    if user is None or not verify_password(str(data['password']), user.password_salt, user.password_hash):
        log_security_event('login_failed', f"Failed login for {email}",
                           ip_address=g.get('client_ip'), success=False)
        raise AuthenticationError('Invalid email or password', error_code='INVALID_CREDENTIALS')

    token = SessionManager(current_context()).create_session(user.id)
    log_security_event('login_succeeded', f"User logged in: {email}", level=logging.INFO,
                       user_id=user.id, ip_address=g.get('client_ip'), success=True)
    return jsonify({'user': user.to_dict(), 'token': token}), 200


@auth_bp.route('/logout', methods=['POST'])
@require_session
def logout():
    SessionManager(current_context()).revoke(g.session_token)
    return jsonify({'message': 'Logged out successfully'}), 200


@auth_bp.route('/me', methods=['GET'])
@require_session
def me():
    return jsonify({'user': g.current_user.to_dict()}), 200


@auth_bp.route('/check-users', methods=['GET'])
def check_users():
    """Tell a first-run client whether the next registration becomes admin."""
    return jsonify({'has_users': count_users() > 0}), 200
