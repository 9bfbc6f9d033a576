import pytest
from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from vaultshare.core.blob_store import BlobStore, BlobStoreError, generate_blob_key
from vaultshare.core.rate_limiter import RateLimiter
from vaultshare.core.vault import VaultLifecycleManager
from vaultshare.database.models import UploadLogEntry, VaultFile, db
from vaultshare.utils.unified_error_handler import (
    DatabaseError, GoneError, NotFoundError, ValidationError
)

pytestmark = pytest.mark.unit

PAYLOAD = b'\x8f\x02ciphertext\x00\xff'


@pytest.fixture
def store_file(ctx, user):
    """Write a blob and its metadata the way an upload does."""
    def _store(max_downloads=0, expires_in_hours=24, name='report.pdf', payload=PAYLOAD):
        blob_key = generate_blob_key()
        ctx.blob_store.put(blob_key, payload)
        return VaultLifecycleManager(ctx).create(
            owner_id=user.id, blob_key=blob_key, name=name, size=len(payload),
            mime_type='application/pdf', iv='aXYtYmFzZTY0', max_downloads=max_downloads,
            expires_in_hours=expires_in_hours,
        )
    return _store


class TestCreate:
    """Test artifact creation."""

    def test_create_sets_lifecycle_fields(self, ctx, clock, store_file):
        vault_file = store_file(max_downloads=3, expires_in_hours=6)
        assert vault_file.download_count == 0
        assert vault_file.max_downloads == 3
        assert vault_file.expires_at == clock() + timedelta(hours=6)
        assert vault_file.blob_key != vault_file.id

    @pytest.mark.parametrize('kwargs,code', [
        ({'max_downloads': 2}, 'INVALID_DOWNLOAD_LIMIT'),
        ({'expires_in_hours': 12}, 'INVALID_EXPIRATION'),
        ({'name': 'tool.exe'}, 'INVALID_FILE_TYPE'),
        ({'payload': b''}, 'INVALID_FILE_SIZE'),
    ])
    def test_create_rejects_invalid_choices(self, store_file, kwargs, code):
        with pytest.raises(ValidationError) as exc_info:
            store_file(**kwargs)
        assert exc_info.value.error_code == code
        assert VaultFile.query.count() == 0

    def test_oversized_upload_rejected(self, ctx):
        with pytest.raises(ValidationError) as exc_info:
            VaultLifecycleManager(ctx).validate_upload('big.zip', 104857601, 0, 24)
        assert exc_info.value.error_code == 'INVALID_FILE_SIZE'

    def test_insert_failure_becomes_database_error(self, ctx, user):
        with patch.object(db.session, 'commit', side_effect=SQLAlchemyError('constraint')):
            with pytest.raises(DatabaseError):
                VaultLifecycleManager(ctx).create(user.id, generate_blob_key(), 'a.pdf', 10, None,
                                                  'iv', 0, 1)


class TestDescribe:
    """Test the metadata probe."""

    def test_describe_does_not_consume(self, ctx, store_file):
        vault_file = store_file(max_downloads=1)
        manager = VaultLifecycleManager(ctx)
        for _ in range(3):
            assert manager.describe(vault_file.id).original_name == 'report.pdf'
        assert db.session.get(VaultFile, vault_file.id).download_count == 0

    def test_not_found(self, ctx):
        with pytest.raises(NotFoundError) as exc_info:
            VaultLifecycleManager(ctx).describe('missing')
        assert exc_info.value.status_code == 404

    def test_expired_after_window_even_if_never_downloaded(self, ctx, clock, store_file):
        vault_file = store_file(expires_in_hours=1)
        clock.advance(hours=2)
        manager = VaultLifecycleManager(ctx)
        for call in (manager.describe, manager.fetch):
            with pytest.raises(GoneError) as exc_info:
                call(vault_file.id)
            assert exc_info.value.error_code == 'EXPIRED'
            assert exc_info.value.status_code == 410

    def test_servable_at_exact_expiry_instant(self, ctx, clock, store_file):
        vault_file = store_file(expires_in_hours=1)
        clock.advance(hours=1)
        assert VaultLifecycleManager(ctx).fetch(vault_file.id).data == PAYLOAD


class TestFetch:
    """Test consumption of downloads."""

    def test_single_use_file(self, ctx, store_file):
        vault_file = store_file(max_downloads=1)
        manager = VaultLifecycleManager(ctx)

        fetched = manager.fetch(vault_file.id)
        assert fetched.data == PAYLOAD
        assert fetched.file.download_count == 1

        with pytest.raises(GoneError) as exc_info:
            manager.fetch(vault_file.id)
        assert exc_info.value.error_code == 'LIMIT_EXCEEDED'

    def test_unlimited_downloads(self, ctx, store_file):
        vault_file = store_file(max_downloads=0)
        manager = VaultLifecycleManager(ctx)
        for _ in range(7):
            manager.fetch(vault_file.id)
        assert db.session.get(VaultFile, vault_file.id).download_count == 7

    def test_missing_blob_is_not_found_and_not_counted(self, ctx, store_file):
        vault_file = store_file(max_downloads=3)
        ctx.blob_store.delete(vault_file.blob_key)
        with pytest.raises(NotFoundError):
            VaultLifecycleManager(ctx).fetch(vault_file.id)
        assert db.session.get(VaultFile, vault_file.id).download_count == 0

    def test_concurrent_fetch_at_limit_never_overshoots(self, ctx, store_file):
        """Two fetches that both pass the pre-check: only one may consume the last download."""
        vault_file = store_file(max_downloads=1)
        real_store = ctx.blob_store

        class RacingBlobStore(BlobStore):
            """Runs a competing fetch between our pre-check and our increment."""
            raced = False

            def get(self, key):
                if not RacingBlobStore.raced:
                    RacingBlobStore.raced = True
                    winner = VaultLifecycleManager(ctx).fetch(vault_file.id)
                    assert winner.file.download_count == 1
                return real_store.get(key)

        ctx.blob_store = RacingBlobStore()
        with pytest.raises(GoneError) as exc_info:
            VaultLifecycleManager(ctx).fetch(vault_file.id)

        assert exc_info.value.error_code == 'LIMIT_EXCEEDED'
        db.session.expire_all()
        assert db.session.get(VaultFile, vault_file.id).download_count == 1

    def test_blob_read_error(self, ctx, store_file):
        vault_file = store_file()
        with patch.object(ctx.blob_store, 'get', side_effect=BlobStoreError('io')):
            with pytest.raises(DatabaseError):
                VaultLifecycleManager(ctx).fetch(vault_file.id)


class TestListFiles:
    def test_newest_first_and_owner_only(self, ctx, clock, make_user, store_file, user):
        older = store_file()
        clock.advance(minutes=1)
        newer = store_file()
        stranger = make_user('carol@vault.io')

        manager = VaultLifecycleManager(ctx)
        assert [f.id for f in manager.list_files(user.id)] == [newer.id, older.id]
        assert manager.list_files(stranger.id) == []


class TestSweep:
    """Test the periodic cleanup."""

    def test_removes_expired_blob_and_row(self, ctx, clock, store_file):
        expired = store_file(expires_in_hours=1)
        alive = store_file(expires_in_hours=168)
        clock.advance(hours=2)

        report = VaultLifecycleManager(ctx).sweep()

        assert report.files_deleted == 1
        assert report.failed == []
        assert db.session.get(VaultFile, expired.id) is None
        assert ctx.blob_store.get(expired.blob_key) is None
        assert db.session.get(VaultFile, alive.id) is not None

    def test_second_run_is_a_noop(self, ctx, clock, store_file):
        store_file(expires_in_hours=1)
        store_file(expires_in_hours=1)
        clock.advance(hours=2)
        manager = VaultLifecycleManager(ctx)

        first = manager.sweep()
        second = manager.sweep()

        assert first.files_deleted == 2
        assert second.to_dict() == {'files_deleted': 0, 'failed': [], 'upload_logs_deleted': 0}

    def test_blob_failure_skips_file_and_continues(self, ctx, clock, store_file):
        broken = store_file(expires_in_hours=1)
        fine = store_file(expires_in_hours=1)
        clock.advance(hours=2)
        real_delete = ctx.blob_store.delete

        def flaky_delete(key):
            if key == broken.blob_key:
                raise BlobStoreError('bucket unavailable')
            real_delete(key)

        with patch.object(ctx.blob_store, 'delete', side_effect=flaky_delete):
            report = VaultLifecycleManager(ctx).sweep()

        assert report.failed == [broken.id]
        assert report.files_deleted == 1
        assert db.session.get(VaultFile, broken.id) is not None
        assert db.session.get(VaultFile, fine.id) is None

        # The next run picks up what was left behind
        assert VaultLifecycleManager(ctx).sweep().files_deleted == 1

    def test_sweep_prunes_upload_log(self, ctx, clock):
        limiter = RateLimiter(ctx)
        limiter.record('device-0001')
        clock.advance(hours=25)
        limiter.record('device-0001')

        report = VaultLifecycleManager(ctx, rate_limiter=limiter).sweep()

        assert report.upload_logs_deleted == 1
        assert UploadLogEntry.query.count() == 1

    def test_files_of_deleted_owner_survive_until_expiry(self, ctx, clock, store_file, user):
        vault_file = store_file(expires_in_hours=1)
        db.session.delete(user)
        db.session.commit()

        assert VaultLifecycleManager(ctx).describe(vault_file.id).id == vault_file.id
        clock.advance(hours=2)
        assert VaultLifecycleManager(ctx).sweep().files_deleted == 1
