"""
Download Blueprint for vaultshare.
Public share links: a metadata probe and two encodings of the encrypted payload.
"""

import base64
from urllib.parse import quote

from flask import Blueprint, Response, jsonify, request

from ..core.context import current_context
from ..core.vault import VaultLifecycleManager
from ..utils.rate_limiting import RateLimitConfig, limiter

download_bp = Blueprint('download', __name__, url_prefix='/download')


def _describe_payload(vault_file):
    return {
        'id': vault_file.id,
        'original_name': vault_file.original_name,
        'file_size': vault_file.file_size,
        'mime_type': vault_file.mime_type,
        'iv': vault_file.iv,
    }


@download_bp.route('/<file_id>', methods=['GET', 'HEAD'])
@limiter.limit(RateLimitConfig.DOWNLOAD_LIMIT)
def probe_file(file_id):
    """Pre-download probe; does not consume a download."""
    vault_file = VaultLifecycleManager(current_context()).describe(file_id)
    if request.method == 'HEAD':
        return Response(status=200)
    return jsonify({'success': True, 'data': _describe_payload(vault_file)}), 200


@download_bp.route('/<file_id>', methods=['POST'])
@limiter.limit(RateLimitConfig.DOWNLOAD_LIMIT)
def fetch_file(file_id):
    """Consume one download and return the ciphertext base64-encoded in JSON."""
    fetched = VaultLifecycleManager(current_context()).fetch(file_id)
    data = _describe_payload(fetched.file)
    data['encrypted_data'] = base64.b64encode(fetched.data).decode('ascii')
    data['download_count'] = fetched.file.download_count
    data['max_downloads'] = fetched.file.max_downloads
    return jsonify({'success': True, 'data': data}), 200


def _content_headers(vault_file) -> dict:
    # Header values must be latin-1; the UTF-8 name travels percent-encoded
    quoted = quote(vault_file.original_name, safe='')
    return {
        'X-File-IV': vault_file.iv,
        'X-Original-Name': quoted,
        'X-Original-Mime-Type': vault_file.mime_type,
        'Content-Disposition': f"attachment; filename*=UTF-8''{quoted}",
        'Cache-Control': 'no-store',
    }


@download_bp.route('/<file_id>/content', methods=['GET'])
@limiter.limit(RateLimitConfig.DOWNLOAD_LIMIT)
def fetch_file_content(file_id):
    """Consume one download and stream the raw ciphertext; the IV travels in a header.

    HEAD is answered from metadata and never consumes a download.
    """
    vault = VaultLifecycleManager(current_context())
    if request.method == 'HEAD':
        vault_file = vault.describe(file_id)
        return Response(status=200, mimetype='application/octet-stream', headers=_content_headers(vault_file))

    fetched = vault.fetch(file_id)
    return Response(fetched.data, status=200, mimetype='application/octet-stream',
                    headers=_content_headers(fetched.file))
