"""
Devices Blueprint for vaultshare.
Handles the device trust workflow: access requests, admin decisions, listing and revocation.
"""

import logging

from flask import Blueprint, g, jsonify, request

from ..core.context import current_context
from ..core.devices import DeviceTrustManager
from ..core.sessions import SessionManager
from ..utils.auth_middleware import (
    extract_bearer_token, require_admin, require_session
)
from ..utils.rate_limiting import RateLimitConfig, limiter
from ..utils.unified_error_handler import AuthenticationError
from ..utils.validation import (
    DEVICE_DECISION_SCHEMA, DEVICE_REQUEST_SCHEMA, InputValidator, validate_request_schema
)

logger = logging.getLogger(__name__)

devices_bp = Blueprint('devices', __name__, url_prefix='/devices')

CLIENT_HINT_HEADERS = ('Sec-CH-UA', 'Sec-CH-UA-Platform', 'Sec-CH-UA-Mobile', 'Accept-Language')


def _client_hints() -> str:
    return '|'.join(request.headers.get(name, '') for name in CLIENT_HINT_HEADERS)


@devices_bp.route('/request', methods=['POST'])
@limiter.limit(RateLimitConfig.DEVICE_REQUEST_LIMIT)
@validate_request_schema(**DEVICE_REQUEST_SCHEMA)
def request_device():
    """Ask an admin to trust the calling device for uploads."""
    data = request.validated_data
    manager = DeviceTrustManager(current_context())
    pending = manager.request_access(
        user_email=InputValidator.validate_email(data['user_email']),
        device_name=data.get('device_name'),
        fingerprint=data.get('fingerprint'),
        user_agent=request.headers.get('User-Agent', ''),
        client_hints=_client_hints(),
    )
    return jsonify({
        'message': 'Device access requested. Waiting for admin approval.',
        'request_id': pending.id,
        'device_name': pending.device_name,
    }), 200


@devices_bp.route('/pending', methods=['GET'])
@require_admin
def pending_devices():
    requests_ = DeviceTrustManager(current_context()).list_pending(g.current_user)
    return jsonify({'pending_devices': [r.to_dict() for r in requests_]}), 200


@devices_bp.route('/<request_id>/approve', methods=['POST'])
@require_admin
@validate_request_schema(**DEVICE_DECISION_SCHEMA)
def decide_device(request_id):
    """Approve or reject a pending request. The device token is only ever returned here."""
    approved = InputValidator.validate_bool(request.validated_data['approved'])
    decision = DeviceTrustManager(current_context()).resolve_request(request_id, approved, g.current_user)

    if not approved:
        return jsonify({'message': 'Device rejected', 'status': decision.status.value}), 200

    return jsonify({
        'message': 'Device approved',
        'status': decision.status.value,
        'device_id': decision.device_id,
        'device_name': decision.device_name,
        'device_token': decision.device_token,
    }), 200


@devices_bp.route('', methods=['GET'])
@require_session
def list_devices():
    user = g.current_user
    devices = DeviceTrustManager(current_context()).list_devices(user)
    return jsonify({'devices': [d.to_dict(include_owner=user.is_admin) for d in devices]}), 200


@devices_bp.route('/<device_id>', methods=['DELETE'])
def revoke_device(device_id):
    """Revoke a trusted device.

    Accepts an admin session, or a device token (``X-Device-Token`` or bearer)
    belonging to the same user as the target device.
    """
    ctx = current_context()
    manager = DeviceTrustManager(ctx)

    if request.headers.get('X-Device-Token'):
        actor = manager.authenticate(request.headers['X-Device-Token'])
    else:
        token = extract_bearer_token()
        try:
            actor = SessionManager(ctx).validate(token)
        except AuthenticationError as e:
            # An expired session was a session; its row is already gone
            if not token or e.error_code == 'SESSION_EXPIRED':
                raise
            # Not a live session: the bearer may be a device token
            actor = manager.authenticate(token)

    changed = manager.revoke(device_id, actor)
    message = 'Device revoked successfully' if changed else 'Device already revoked'
    return jsonify({'message': message}), 200
