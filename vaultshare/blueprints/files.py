"""
Files Blueprint for vaultshare.
Device-authenticated uploads of client-encrypted payloads and the owner's file listing.
"""

import logging

from flask import Blueprint, g, jsonify, request

from ..core.blob_store import BlobStoreError, generate_blob_key
from ..core.context import current_context
from ..core.rate_limiter import UNLIMITED, RateLimiter
from ..core.vault import VaultLifecycleManager
from ..utils.auth_middleware import require_device, require_session
from ..utils.logging_config import log_security_event
from ..utils.unified_error_handler import DatabaseError, RateLimitError, ValidationError, VaultError

logger = logging.getLogger(__name__)

files_bp = Blueprint('files', __name__, url_prefix='/files')

UPLOAD_FIELDS = ('max_downloads', 'expires_in_hours', 'iv')


def _parse_choice(value, error_code, field):
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid value for {field}", error_code=error_code, field=field) from e


@files_bp.route('/upload', methods=['POST'])
@require_device
def upload_file():
    """Accept one encrypted file from a trusted device.

    Validation and the quota check run before anything is written. If the
    metadata insert fails after the blob write, the blob is deleted again.
    """
    device = g.device
    upload = request.files.get('file')
    missing = [name for name in UPLOAD_FIELDS if not request.form.get(name)]
    if upload is None:
        missing.insert(0, 'file')
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", error_code='MISSING_FIELDS')

    max_downloads = _parse_choice(request.form['max_downloads'], 'INVALID_DOWNLOAD_LIMIT', 'max_downloads')
    expires_in_hours = _parse_choice(request.form['expires_in_hours'], 'INVALID_EXPIRATION', 'expires_in_hours')
    iv = request.form['iv']
    name = upload.filename or ''
    payload = upload.read()

    ctx = current_context()
    rate_limiter = RateLimiter(ctx)
    vault = VaultLifecycleManager(ctx, rate_limiter=rate_limiter)

    vault.validate_upload(name, len(payload), max_downloads, expires_in_hours)

    quota = rate_limiter.check(device.device_id, device.unlimited_upload)
    if not quota.allowed:
        log_security_event('upload_rate_limited', f"Upload quota exhausted for device {device.device_id}",
                           device_id=device.device_id, user_id=device.user_id)
        reset_at = quota.reset_at.isoformat() + 'Z' if quota.reset_at else None
        raise RateLimitError('Upload rate limit exceeded. Please try again later.',
                             remaining=quota.remaining, reset_at=reset_at)

    blob_key = generate_blob_key()
    try:
        ctx.blob_store.put(blob_key, payload)
    except BlobStoreError as e:
        logger.error(f"Blob write failed for device {device.device_id}: {e}")
        raise DatabaseError('Failed to store file') from e

    try:
        vault_file = vault.create(
            owner_id=device.user_id,
            blob_key=blob_key,
            name=name,
            size=len(payload),
            mime_type=upload.mimetype,
            iv=iv,
            max_downloads=max_downloads,
            expires_in_hours=expires_in_hours,
        )
    except VaultError:
        _discard_blob(ctx.blob_store, blob_key)
        raise

    rate_limiter.record(device.device_id)

    remaining = UNLIMITED if quota.remaining == UNLIMITED else max(0, quota.remaining - 1)
    return jsonify({
        'success': True,
        'file_id': vault_file.id,
        'file': vault_file.to_dict(),
        'remaining_uploads': remaining,
    }), 201


def _discard_blob(blob_store, blob_key):
    try:
        blob_store.delete(blob_key)
    except BlobStoreError as e:
        logger.error(f"Orphaned blob {blob_key}: metadata insert failed and cleanup failed: {e}")


@files_bp.route('', methods=['GET'])
@require_session
def list_files():
    files = VaultLifecycleManager(current_context()).list_files(g.current_user.id)
    return jsonify({'files': [f.to_dict() for f in files]}), 200
