from datetime import datetime, timedelta

import pytest

from vaultshare import create_app
from vaultshare.core.context import current_context
from vaultshare.core.devices import DeviceTrustManager
from vaultshare.core.sessions import SessionManager
from vaultshare.database.db_operations import add_user, seed_default_file_types
from vaultshare.database.models import db

DEFAULT_PASSWORD = 'correct-horse-battery'


class FakeClock:
    """Injectable clock; tests move time explicitly with :meth:`advance`."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 1, 15, 12, 0, 0)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_app(tmp_path, clock):
    """Create a test Flask application on in-memory SQLite with a temp blob store."""
    app = create_app('testing', {'BLOB_STORAGE_PATH': str(tmp_path / 'blobs')})
    app.extensions['vault_clock'] = clock

    with app.app_context():
        seed_default_file_types()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(test_app):
    """Create a test client."""
    return test_app.test_client()


@pytest.fixture
def ctx(test_app):
    return current_context()


@pytest.fixture
def make_user(test_app):
    """Factory: the first user created on a fresh database becomes admin."""
    counter = {'n': 0}

    def _make(email=None, password=DEFAULT_PASSWORD, **kwargs):
        counter['n'] += 1
        return add_user(email or f"user{counter['n']}@vault.io", password, **kwargs)

    return _make


@pytest.fixture
def admin(make_user):
    return make_user('admin@vault.io')


@pytest.fixture
def user(admin, make_user):
    return make_user('alice@vault.io')


@pytest.fixture
def login(ctx):
    """Return a fresh session token for a user."""
    def _login(u):
        return SessionManager(ctx).create_session(u.id)
    return _login


@pytest.fixture
def trust_device(ctx, admin):
    """Factory: request and approve a device for ``owner``; returns the DeviceDecision."""
    counter = {'n': 0}

    def _trust(owner, fingerprint=None, device_name='Test Laptop'):
        counter['n'] += 1
        manager = DeviceTrustManager(ctx)
        pending = manager.request_access(owner.email, device_name=device_name,
                                         fingerprint=fingerprint or f"fp-device-{counter['n']:04d}")
        return manager.resolve_request(pending.id, True, admin)

    return _trust


@pytest.fixture
def auth_headers(login):
    """Authorization headers carrying a fresh session for a user."""
    def _headers(u):
        return {'Authorization': f"Bearer {login(u)}"}
    return _headers
