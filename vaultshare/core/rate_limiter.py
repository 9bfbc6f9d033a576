"""
Per-device upload quota.

A sliding window over ``upload_log``: a device may record at most
``upload_rate_limit`` uploads in any rolling ``upload_rate_window``. The log is
the only state, so every worker sees the same count.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..database.models import UploadLogEntry
from .context import VaultContext

logger = logging.getLogger(__name__)

UNLIMITED = -1


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_at: Optional[datetime] = None


class RateLimiter:
    def __init__(self, ctx: VaultContext):
        self.ctx = ctx
        self.db = ctx.session
        self.limit = ctx.settings.upload_rate_limit
        self.window = ctx.settings.upload_rate_window

    def check(self, device_id: str, unlimited_upload: bool = False) -> RateLimitStatus:
        """Admission check; does not consume quota.

        ``reset_at`` is when the oldest upload inside the window ages out, or
        ``None`` when nothing is in the window. Unlimited devices report
        ``remaining == -1``.
        """
        if unlimited_upload:
            return RateLimitStatus(allowed=True, remaining=UNLIMITED)

        window_start = self.ctx.now() - self.window
        count, oldest = self.db.query(
            func.count(UploadLogEntry.id), func.min(UploadLogEntry.uploaded_at)
        ).filter(
            UploadLogEntry.device_id == device_id,
            UploadLogEntry.uploaded_at > window_start,
        ).one()

        count = count or 0
        return RateLimitStatus(
            allowed=count < self.limit,
            remaining=max(0, self.limit - count),
            reset_at=oldest + self.window if oldest else None,
        )

    def record(self, device_id: str) -> None:
        """Log one accepted upload. Failures are logged, not raised."""
        try:
            self.db.add(UploadLogEntry(device_id=device_id, uploaded_at=self.ctx.now()))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Failed to record upload for device {device_id}: {e}")

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Delete log entries past the retention horizon; returns how many."""
        cutoff = (now or self.ctx.now()) - self.ctx.settings.upload_log_retention
        try:
            deleted = self.db.query(UploadLogEntry).filter(
                UploadLogEntry.uploaded_at < cutoff
            ).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to clean up upload log: {e}")
            return 0
        logger.info(f"Cleaned up {deleted} old upload log entries")
        return deleted
