"""
Artifact lifecycle: create, probe, consume, list and sweep.

An artifact is servable while ``now <= expires_at`` and, when
``max_downloads > 0``, while ``download_count < max_downloads``. A successful
fetch consumes one download through a single conditional UPDATE, so concurrent
fetches near the limit can never push the count past ``max_downloads``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..database.models import VaultFile
from ..utils.logging_config import log_audit_event
from ..utils.unified_error_handler import DatabaseError, GoneError, NotFoundError, ValidationError
from .blob_store import BlobStoreError
from .context import VaultContext
from .credentials import generate_id
from .file_validator import (
    calculate_expires_at, get_allowed_extensions, validate_download_limit,
    validate_expiration, validate_file_extension, validate_file_size
)
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedFile:
    file: VaultFile
    data: bytes


@dataclass
class SweepReport:
    files_deleted: int = 0
    failed: list = field(default_factory=list)
    upload_logs_deleted: int = 0

    def to_dict(self):
        return {
            'files_deleted': self.files_deleted,
            'failed': list(self.failed),
            'upload_logs_deleted': self.upload_logs_deleted,
        }


class VaultLifecycleManager:
    def __init__(self, ctx: VaultContext, rate_limiter: Optional[RateLimiter] = None):
        self.ctx = ctx
        self.db = ctx.session
        self.rate_limiter = rate_limiter or RateLimiter(ctx)

    def validate_upload(self, name: str, size: int, max_downloads, expires_in_hours) -> None:
        """Run every create-time check without touching any store but the allow-list."""
        validate_download_limit(max_downloads)
        validate_expiration(expires_in_hours)
        validate_file_size(size, self.ctx.settings.max_file_size)
        validate_file_extension(name, get_allowed_extensions(self.db))

    def create(self, owner_id: str, blob_key: str, name: str, size: int, mime_type: Optional[str],
               iv: str, max_downloads: int, expires_in_hours: int) -> VaultFile:
        """Insert the metadata row for a blob that has already been written."""
        self.validate_upload(name, size, max_downloads, expires_in_hours)
        if not iv:
            raise ValidationError('Missing encryption IV', error_code='MISSING_FIELDS', field='iv')

        now = self.ctx.now()
        vault_file = VaultFile(
            id=generate_id(),
            user_id=owner_id,
            blob_key=blob_key,
            original_name=name,
            file_size=size,
            mime_type=mime_type or 'application/octet-stream',
            download_count=0,
            max_downloads=max_downloads,
            expires_at=calculate_expires_at(now, expires_in_hours),
            iv=iv,
            created_at=now,
        )
        try:
            self.db.add(vault_file)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save file metadata for blob {blob_key}: {e}")
            raise DatabaseError('Failed to save file metadata') from e

        logger.info(f"File {vault_file.id} stored for user {owner_id} ({size} bytes)")
        return vault_file

    def describe(self, file_id: str) -> VaultFile:
        """Pre-download probe: metadata only, the counter is untouched."""
        return self._servable(file_id)

    def fetch(self, file_id: str) -> FetchedFile:
        """Return the encrypted payload and consume exactly one download."""
        vault_file = self._servable(file_id)

        try:
            data = self.ctx.blob_store.get(vault_file.blob_key)
        except BlobStoreError as e:
            logger.error(f"Blob read failed for file {file_id}: {e}")
            raise DatabaseError('Failed to read file content') from e
        if data is None:
            logger.warning(f"File {file_id} has metadata but no blob")
            raise NotFoundError('File content not found', resource_type='file', resource_id=file_id)

        now = self.ctx.now()
        try:
            consumed = self.db.query(VaultFile).filter(
                VaultFile.id == file_id,
                VaultFile.expires_at >= now,
                or_(VaultFile.max_downloads == 0, VaultFile.download_count < VaultFile.max_downloads),
            ).update({VaultFile.download_count: VaultFile.download_count + 1}, synchronize_session=False)
            if consumed:
                self.db.commit()
            else:
                self.db.rollback()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record download for file {file_id}: {e}")
            raise DatabaseError('Failed to record download') from e

        if not consumed:
            # Lost a race since the first check; report the state that beat us
            self.db.expire_all()
            self._servable(file_id)
            raise GoneError('Download limit reached', error_code='LIMIT_EXCEEDED')

        self.db.refresh(vault_file)
        return FetchedFile(file=vault_file, data=data)

    def list_files(self, owner_id: str) -> list[VaultFile]:
        return (self.db.query(VaultFile)
                .filter_by(user_id=owner_id)
                .order_by(VaultFile.created_at.desc())
                .all())

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Reclaim expired artifacts: blob first, then row.

        A failure on one file is logged and skipped; whatever remains is picked
        up by the next run.
        """
        now = now or self.ctx.now()
        report = SweepReport()

        expired = (self.db.query(VaultFile.id, VaultFile.blob_key)
                   .filter(VaultFile.expires_at < now)
                   .all())
        logger.info(f"Found {len(expired)} expired files")

        for file_id, blob_key in expired:
            try:
                self.ctx.blob_store.delete(blob_key)
            except BlobStoreError as e:
                logger.error(f"Failed to delete blob for file {file_id}: {e}")
                report.failed.append(file_id)
                continue

            try:
                self.db.query(VaultFile).filter_by(id=file_id).delete(synchronize_session=False)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to delete metadata for file {file_id}: {e}")
                report.failed.append(file_id)
                continue

            report.files_deleted += 1
            logger.debug(f"Deleted file: {file_id}")

        report.upload_logs_deleted = self.rate_limiter.cleanup(now)

        log_audit_event('sweep', 'vault_files',
                        f"Sweep removed {report.files_deleted} files, {len(report.failed)} failed",
                        files_deleted=report.files_deleted, failed=len(report.failed))
        return report

    def _servable(self, file_id: str) -> VaultFile:
        vault_file = self.db.get(VaultFile, file_id)
        if vault_file is None:
            raise NotFoundError('File not found', resource_type='file', resource_id=file_id)

        if self.ctx.now() > vault_file.expires_at:
            raise GoneError('File has expired', error_code='EXPIRED')

        if vault_file.max_downloads > 0 and vault_file.download_count >= vault_file.max_downloads:
            raise GoneError('Download limit reached', error_code='LIMIT_EXCEEDED')

        return vault_file
