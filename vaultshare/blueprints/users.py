"""
Users Blueprint for vaultshare.
Admin-only account management.
"""

from flask import Blueprint, g, jsonify, request

from ..database.db_operations import add_user, delete_user, list_users, update_user_flags
from ..utils.auth_middleware import require_admin
from ..utils.logging_config import log_audit_event
from ..utils.unified_error_handler import ValidationError
from ..utils.validation import (
    CREATE_USER_SCHEMA, UPDATE_USER_SCHEMA, InputValidator, validate_request_schema
)

users_bp = Blueprint('users', __name__, url_prefix='/users')


@users_bp.route('', methods=['GET'])
@require_admin
def get_users():
    return jsonify({'users': [user.to_dict() for user in list_users()]}), 200


@users_bp.route('', methods=['POST'])
@require_admin
@validate_request_schema(**CREATE_USER_SCHEMA)
def create_user():
    """Create a non-admin account."""
    data = request.validated_data
    email = InputValidator.validate_email(data['email'])
    password = InputValidator.validate_password(data['password'])

    user = add_user(email, password, is_admin=False,
                    unlimited_upload=data.get('unlimited_upload', False))
    log_audit_event('create', f"user:{user.id}", f"User {email} created", actor_id=g.current_user.id)
    return jsonify({'user': user.to_dict()}), 201


@users_bp.route('/<user_id>', methods=['PATCH'])
@require_admin
@validate_request_schema(**UPDATE_USER_SCHEMA)
def patch_user(user_id):
    user = update_user_flags(user_id, unlimited_upload=request.validated_data.get('unlimited_upload'))
    log_audit_event('update', f"user:{user_id}", f"unlimited_upload={user.unlimited_upload}",
                    actor_id=g.current_user.id)
    return jsonify({'user': user.to_dict()}), 200


@users_bp.route('/<user_id>', methods=['DELETE'])
@require_admin
def remove_user(user_id):
    if user_id == g.current_user.id:
        raise ValidationError('Cannot delete your own account', error_code='CANNOT_DELETE_SELF')

    delete_user(user_id)
    log_audit_event('delete', f"user:{user_id}", f"User {user_id} deleted", actor_id=g.current_user.id)
    return jsonify({'message': 'User deleted successfully'}), 200
