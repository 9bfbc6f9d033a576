from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from flask import current_app

from ..database.models import db, utcnow
from .blob_store import BlobStore


@dataclass(frozen=True)
class VaultSettings:
    session_duration: timedelta = timedelta(hours=24)
    upload_rate_limit: int = 10
    upload_rate_window: timedelta = timedelta(seconds=3600)
    upload_log_retention: timedelta = timedelta(hours=24)
    max_file_size: int = 100 * 1024 * 1024

    @classmethod
    def from_config(cls, config) -> 'VaultSettings':
        return cls(
            session_duration=timedelta(hours=config['SESSION_DURATION_HOURS']),
            upload_rate_limit=config['UPLOAD_RATE_LIMIT'],
            upload_rate_window=timedelta(seconds=config['UPLOAD_RATE_WINDOW_SECONDS']),
            upload_log_retention=timedelta(hours=config['UPLOAD_LOG_RETENTION_HOURS']),
            max_file_size=config['MAX_FILE_SIZE'],
        )


@dataclass
class VaultContext:
    """Everything a manager touches: store handles, clock and settings.

    Managers never reach for app globals themselves; tests build a context
    around fakes.
    """
    session: Any
    blob_store: Optional[BlobStore] = None
    clock: Callable[[], datetime] = utcnow
    settings: VaultSettings = field(default_factory=VaultSettings)

    def now(self) -> datetime:
        return self.clock()


def current_context() -> VaultContext:
    """Build the context for the active Flask app."""
    return VaultContext(
        session=db.session,
        blob_store=current_app.extensions.get('blob_store'),
        clock=current_app.extensions.get('vault_clock', utcnow),
        settings=current_app.extensions['vault_settings'],
    )
