from datetime import datetime, timedelta

from ..database.models import FileType
from ..utils.unified_error_handler import ValidationError

ALLOWED_EXPIRATIONS = (1, 6, 24, 168)
ALLOWED_DOWNLOAD_LIMITS = (0, 1, 3, 5)
DEFAULT_MAX_FILE_SIZE = 104857600


def get_allowed_extensions(session) -> set:
    rows = session.query(FileType.extension).filter(FileType.is_active.is_(True)).all()
    return {row.extension.lower() for row in rows}


def get_extension(filename: str) -> str:
    """Return ``.ext`` (lowercased) from the last dot, or '' when there is none."""
    filename = filename or ''
    last_dot = filename.rfind('.')
    if last_dot == -1:
        return ''
    return filename[last_dot:].lower()


def validate_file_size(file_size: int, max_size: int = DEFAULT_MAX_FILE_SIZE) -> None:
    if file_size <= 0:
        raise ValidationError('File is empty', error_code='INVALID_FILE_SIZE', field='file')
    if file_size > max_size:
        raise ValidationError(f"File size exceeds {round(max_size / 1048576)}MB limit",
                              error_code='INVALID_FILE_SIZE', field='file')


def validate_file_extension(filename: str, allowed_extensions: set) -> None:
    extension = get_extension(filename)
    if not extension:
        raise ValidationError('File must have an extension', error_code='INVALID_FILE_TYPE', field='file')
    if extension not in allowed_extensions:
        raise ValidationError(f'File type "{extension}" is not allowed',
                              error_code='INVALID_FILE_TYPE', field='file')


def validate_expiration(expires_in_hours) -> None:
    if isinstance(expires_in_hours, bool) or expires_in_hours not in ALLOWED_EXPIRATIONS:
        raise ValidationError('Invalid expiration time', error_code='INVALID_EXPIRATION',
                              field='expires_in_hours')


def validate_download_limit(max_downloads) -> None:
    if isinstance(max_downloads, bool) or max_downloads not in ALLOWED_DOWNLOAD_LIMITS:
        raise ValidationError('Invalid download limit', error_code='INVALID_DOWNLOAD_LIMIT',
                              field='max_downloads')


def calculate_expires_at(now: datetime, expires_in_hours: int) -> datetime:
    return now + timedelta(hours=expires_in_hours)
