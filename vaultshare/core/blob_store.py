"""
Blob storage for encrypted payloads.

The store only ever sees ciphertext. Keys are random hex strings minted by
:func:`generate_blob_key`, distinct from the public file id.
"""

import logging
import os
import re
from pathlib import Path
from typing import Optional

from .credentials import generate_token

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r'^[0-9a-f]{16,128}$')


class BlobStoreError(Exception):
    """Raised when the backing storage fails."""


def generate_blob_key() -> str:
    return generate_token(32)


class BlobStore:
    """Interface for the object store collaborator."""

    def put(self, key: str, data: bytes) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or ``None`` when no object exists under ``key``."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove ``key``; deleting a missing object is a no-op."""
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Filesystem-backed bucket: one file per key, fanned out by key prefix."""

    def __init__(self, root):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key or ''):
            raise BlobStoreError(f"Invalid blob key: {key!r}")
        return self.root / key[:2] / key

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix('.tmp')
        try:
            with open(tmp_path, 'wb') as fh:
                fh.write(data)
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise BlobStoreError(f"Failed to write blob {key}: {e}") from e
        logger.debug(f"Stored blob {key[:8]}... ({len(data)} bytes)")

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            with open(path, 'rb') as fh:
                return fh.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BlobStoreError(f"Failed to read blob {key}: {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise BlobStoreError(f"Failed to delete blob {key}: {e}") from e
