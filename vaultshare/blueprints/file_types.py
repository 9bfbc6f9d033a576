"""
File Types Blueprint for vaultshare.
Admin management of the upload extension allow-list.
"""

from flask import Blueprint, g, jsonify, request

from ..database.db_operations import add_file_type, deactivate_file_type, list_file_types
from ..utils.auth_middleware import require_admin
from ..utils.logging_config import log_audit_event
from ..utils.validation import FILE_TYPE_SCHEMA, InputValidator, validate_request_schema

file_types_bp = Blueprint('file_types', __name__, url_prefix='/file-types')


@file_types_bp.route('', methods=['GET'])
@require_admin
def get_file_types():
    include_inactive = request.args.get('include_inactive', 'false').lower() == 'true'
    return jsonify({'file_types': [ft.to_dict() for ft in list_file_types(include_inactive)]}), 200


@file_types_bp.route('', methods=['POST'])
@require_admin
@validate_request_schema(**FILE_TYPE_SCHEMA)
def create_file_type():
    data = request.validated_data
    extension = InputValidator.validate_extension(data['extension'])
    file_type = add_file_type(extension, data.get('category'))
    log_audit_event('allow', f"file_type:{file_type.extension}", f"Extension {file_type.extension} allowed",
                    actor_id=g.current_user.id)
    return jsonify({'file_type': file_type.to_dict()}), 201


@file_types_bp.route('/<extension>', methods=['DELETE'])
@require_admin
def remove_file_type(extension):
    file_type = deactivate_file_type(InputValidator.validate_extension(extension))
    log_audit_event('disallow', f"file_type:{file_type.extension}", f"Extension {file_type.extension} disabled",
                    actor_id=g.current_user.id)
    return jsonify({'file_type': file_type.to_dict()}), 200
