import re
import logging
from functools import wraps
from typing import Any, Dict, List, Optional

from email_validator import EmailNotValidError, validate_email
from flask import request

from .unified_error_handler import ValidationError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class InputValidator:
    """Input validation for vaultshare request payloads."""

    DEVICE_NAME_PATTERN = re.compile(r'^[^\x00-\x1f\x7f]{1,100}$')
    FINGERPRINT_PATTERN = re.compile(r'^[A-Za-z0-9_\-:.]{8,255}$')
    UUID_PATTERN = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)
    EXTENSION_PATTERN = re.compile(r'^\.?[a-z0-9]{1,16}$')

    MAX_EMAIL_LENGTH = 255
    MAX_PASSWORD_LENGTH = 1024

    @staticmethod
    def validate_email(email: str) -> str:
        """
        Validate and normalize an email address.

        Returns:
            str: Lowercased normalized address

        Raises:
            ValidationError: ``INVALID_EMAIL``
        """
        if not email or not isinstance(email, str):
            raise ValidationError("Email is required", error_code='INVALID_EMAIL', field='email')

        email = email.strip().lower()
        if len(email) > InputValidator.MAX_EMAIL_LENGTH:
            raise ValidationError(f"Email too long (max {InputValidator.MAX_EMAIL_LENGTH} characters)",
                                  error_code='INVALID_EMAIL', field='email')

        try:
            return validate_email(email, check_deliverability=False).normalized.lower()
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email format: {e}", error_code='INVALID_EMAIL', field='email') from e

    @staticmethod
    def validate_password(password: str) -> str:
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                                  error_code='WEAK_PASSWORD', field='password')
        if len(password) > InputValidator.MAX_PASSWORD_LENGTH:
            raise ValidationError("Password too long", error_code='INVALID_REQUEST', field='password')
        return password

    @staticmethod
    def validate_device_name(device_name: str) -> str:
        if not isinstance(device_name, str):
            raise ValidationError("Device name must be a string", field='device_name')

        device_name = device_name.strip()
        if not InputValidator.DEVICE_NAME_PATTERN.match(device_name):
            raise ValidationError("Device name must be 1-100 printable characters", field='device_name')
        return device_name

    @staticmethod
    def validate_fingerprint(fingerprint: str) -> str:
        if not isinstance(fingerprint, str) or not InputValidator.FINGERPRINT_PATTERN.match(fingerprint):
            raise ValidationError("Invalid device fingerprint", field='fingerprint')
        return fingerprint

    @staticmethod
    def validate_uuid(uuid_str: str) -> str:
        if not uuid_str or not isinstance(uuid_str, str):
            raise ValidationError("UUID is required and must be a string")

        if not InputValidator.UUID_PATTERN.match(uuid_str):
            raise ValidationError("Invalid UUID format")

        return uuid_str

    @staticmethod
    def validate_extension(extension: str) -> str:
        if not isinstance(extension, str) or not InputValidator.EXTENSION_PATTERN.match(extension.strip().lower()):
            raise ValidationError("Invalid file extension", field='extension')
        return extension.strip().lower()

    @staticmethod
    def validate_bool(value: Any) -> bool:
        if not isinstance(value, bool):
            raise ValidationError("Expected a boolean")
        return value

    @staticmethod
    def validate_json_payload(data: Dict[str, Any], required_fields: List[str],
                              optional_fields: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Validate JSON payload structure and content.

        Args:
            data: JSON data to validate
            required_fields: List of required field names
            optional_fields: Dict of optional fields with their validators

        Returns:
            Dict: Validated data

        Raises:
            ValidationError: ``INVALID_REQUEST`` or ``MISSING_FIELDS``
        """
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        missing = [f for f in required_fields if data.get(f) in (None, '')]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", error_code='MISSING_FIELDS')

        validated_data = {field: data[field] for field in required_fields}

        for field, validator in (optional_fields or {}).items():
            if field in data and data[field] is not None:
                validated_data[field] = validator(data[field])

        return validated_data


def validate_request_schema(required_fields: List[str],
                            optional_fields: Optional[Dict[str, Any]] = None):
    """
    Decorator for validating a JSON request body.

    The validated payload is exposed as ``request.validated_data``.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if request.method == 'OPTIONS':
                return f(*args, **kwargs)

            data = request.get_json(silent=True)
            if data is None:
                raise ValidationError("Invalid JSON body")

            request.validated_data = InputValidator.validate_json_payload(
                data, required_fields, optional_fields
            )
            return f(*args, **kwargs)

        return decorated_function
    return decorator


REGISTRATION_SCHEMA = {
    'required_fields': ['email', 'password'],
    'optional_fields': {},
}

LOGIN_SCHEMA = {
    'required_fields': ['email', 'password'],
    'optional_fields': {},
}

CREATE_USER_SCHEMA = {
    'required_fields': ['email', 'password'],
    'optional_fields': {'unlimited_upload': InputValidator.validate_bool},
}

UPDATE_USER_SCHEMA = {
    'required_fields': [],
    'optional_fields': {'unlimited_upload': InputValidator.validate_bool},
}

DEVICE_REQUEST_SCHEMA = {
    'required_fields': ['user_email'],
    'optional_fields': {
        'device_name': InputValidator.validate_device_name,
        'fingerprint': InputValidator.validate_fingerprint,
    },
}

DEVICE_DECISION_SCHEMA = {
    'required_fields': ['approved'],
    'optional_fields': {},
}

FILE_TYPE_SCHEMA = {
    'required_fields': ['extension'],
    'optional_fields': {'category': str},
}
