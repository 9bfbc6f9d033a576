import pytest
from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from vaultshare.core.rate_limiter import UNLIMITED, RateLimiter
from vaultshare.database.models import UploadLogEntry, db

pytestmark = pytest.mark.unit

DEVICE = 'device-0001'


class TestSlidingWindow:
    """Test the per-device upload quota."""

    def test_fresh_device_has_full_quota(self, ctx):
        status = RateLimiter(ctx).check(DEVICE)
        assert status.allowed is True
        assert status.remaining == 10
        assert status.reset_at is None

    def test_tenth_allowed_eleventh_denied(self, ctx, clock):
        limiter = RateLimiter(ctx)
        for _ in range(10):
            assert limiter.check(DEVICE).allowed
            limiter.record(DEVICE)
            clock.advance(seconds=30)

        status = limiter.check(DEVICE)
        assert status.allowed is False
        assert status.remaining == 0

    def test_reset_at_is_when_oldest_entry_leaves(self, ctx, clock):
        limiter = RateLimiter(ctx)
        first = clock()
        limiter.record(DEVICE)
        clock.advance(minutes=10)
        limiter.record(DEVICE)
        assert limiter.check(DEVICE).reset_at == first + timedelta(hours=1)

    def test_capacity_restored_as_window_slides(self, ctx, clock):
        limiter = RateLimiter(ctx)
        for _ in range(10):
            limiter.record(DEVICE)
        clock.advance(minutes=30)
        assert not limiter.check(DEVICE).allowed

        clock.advance(minutes=30, seconds=1)
        status = limiter.check(DEVICE)
        assert status.allowed is True
        assert status.remaining == 10

    def test_quota_is_per_device(self, ctx):
        limiter = RateLimiter(ctx)
        for _ in range(10):
            limiter.record(DEVICE)
        assert limiter.check('device-0002').remaining == 10

    def test_unlimited_upload(self, ctx):
        limiter = RateLimiter(ctx)
        for _ in range(15):
            limiter.record(DEVICE)
        status = limiter.check(DEVICE, unlimited_upload=True)
        assert status.allowed is True
        assert status.remaining == UNLIMITED


class TestRecordAndCleanup:
    def test_record_failure_is_swallowed(self, ctx):
        with patch.object(db.session, 'commit', side_effect=SQLAlchemyError('locked')):
            RateLimiter(ctx).record(DEVICE)
        assert UploadLogEntry.query.count() == 0

    def test_cleanup_removes_only_entries_past_retention(self, ctx, clock):
        limiter = RateLimiter(ctx)
        limiter.record(DEVICE)
        clock.advance(hours=23)
        limiter.record(DEVICE)
        clock.advance(hours=1, seconds=1)

        assert limiter.cleanup() == 1
        assert UploadLogEntry.query.count() == 1
