import json

import pytest

from vaultshare.database.models import Session, TrustedDevice, User, db

pytestmark = pytest.mark.integration

API = '/api/v1'


def post_json(client, path, data, headers=None):
    return client.post(f'{API}{path}', data=json.dumps(data), content_type='application/json',
                       headers=headers or {})


class TestRegistration:
    """Test user registration endpoint."""

    def test_first_user_becomes_admin(self, client):
        response = post_json(client, '/auth/register', {'email': 'First@Vault.io', 'password': 'password123'})

        assert response.status_code == 201
        result = json.loads(response.data)
        assert result['user']['email'] == 'first@vault.io'
        assert result['user']['is_admin'] is True
        assert len(result['token']) == 64

    def test_later_users_are_not_admin(self, client):
        post_json(client, '/auth/register', {'email': 'first@vault.io', 'password': 'password123'})
        response = post_json(client, '/auth/register', {'email': 'second@vault.io', 'password': 'password123'})

        assert response.status_code == 201
        assert json.loads(response.data)['user']['is_admin'] is False

    def test_duplicate_email(self, client, user):
        response = post_json(client, '/auth/register', {'email': 'ALICE@vault.io', 'password': 'password123'})
        assert response.status_code == 409
        assert json.loads(response.data)['code'] == 'EMAIL_EXISTS'

    @pytest.mark.parametrize('payload,code', [
        ({'email': 'not-an-email', 'password': 'password123'}, 'INVALID_EMAIL'),
        ({'email': 'bob@vault.io', 'password': 'short'}, 'WEAK_PASSWORD'),
        ({'email': 'bob@vault.io'}, 'MISSING_FIELDS'),
        ({'password': 'password123'}, 'MISSING_FIELDS'),
    ])
    def test_invalid_payloads(self, client, payload, code):
        response = post_json(client, '/auth/register', payload)
        assert response.status_code == 400
        result = json.loads(response.data)
        assert result['error'] is True
        assert result['code'] == code

    def test_invalid_json(self, client):
        response = client.post(f'{API}/auth/register', data='{not json', content_type='application/json')
        assert response.status_code == 400
        assert json.loads(response.data)['code'] == 'INVALID_REQUEST'


class TestLogin:
    """Test login, me and logout."""

    def test_login_and_me(self, client, user):
        response = post_json(client, '/auth/login', {'email': user.email, 'password': 'correct-horse-battery'})
        assert response.status_code == 200
        token = json.loads(response.data)['token']

        me = client.get(f'{API}/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert me.status_code == 200
        assert json.loads(me.data)['user']['id'] == user.id

    def test_wrong_password(self, client, user):
        response = post_json(client, '/auth/login', {'email': user.email, 'password': 'wrong-password'})
        assert response.status_code == 401
        assert json.loads(response.data)['code'] == 'INVALID_CREDENTIALS'

    def test_unknown_email(self, client, admin):
        response = post_json(client, '/auth/login', {'email': 'ghost@vault.io', 'password': 'password123'})
        assert response.status_code == 401
        assert json.loads(response.data)['code'] == 'INVALID_CREDENTIALS'

    def test_me_without_token(self, client):
        response = client.get(f'{API}/auth/me')
        assert response.status_code == 401
        assert json.loads(response.data)['code'] == 'UNAUTHORIZED'

    def test_logout_revokes_session(self, client, user, login):
        headers = {'Authorization': f'Bearer {login(user)}'}
        assert client.post(f'{API}/auth/logout', headers=headers).status_code == 200
        assert client.get(f'{API}/auth/me', headers=headers).status_code == 401

    def test_expired_session(self, client, clock, user, login):
        headers = {'Authorization': f'Bearer {login(user)}'}
        clock.advance(hours=24)

        response = client.get(f'{API}/auth/me', headers=headers)
        assert response.status_code == 401
        assert json.loads(response.data)['code'] == 'SESSION_EXPIRED'
        assert Session.query.count() == 0

    def test_check_users(self, client):
        assert json.loads(client.get(f'{API}/auth/check-users').data) == {'has_users': False}
        post_json(client, '/auth/register', {'email': 'first@vault.io', 'password': 'password123'})
        assert json.loads(client.get(f'{API}/auth/check-users').data) == {'has_users': True}


class TestUserAdministration:
    """Test admin-only user management."""

    def test_non_admin_forbidden(self, client, user, auth_headers):
        response = client.get(f'{API}/users', headers=auth_headers(user))
        assert response.status_code == 403
        assert json.loads(response.data)['code'] == 'FORBIDDEN'

    def test_list_users(self, client, admin, user, auth_headers):
        response = client.get(f'{API}/users', headers=auth_headers(admin))
        assert response.status_code == 200
        emails = {u['email'] for u in json.loads(response.data)['users']}
        assert emails == {admin.email, user.email}
        assert 'password_hash' not in json.loads(response.data)['users'][0]

    def test_create_user(self, client, admin, auth_headers):
        response = post_json(client, '/users', {
            'email': 'dave@vault.io', 'password': 'password123', 'unlimited_upload': True,
        }, headers=auth_headers(admin))

        assert response.status_code == 201
        created = json.loads(response.data)['user']
        assert created['is_admin'] is False
        assert created['unlimited_upload'] is True

    def test_create_duplicate_user(self, client, admin, user, auth_headers):
        response = post_json(client, '/users', {'email': user.email, 'password': 'password123'},
                             headers=auth_headers(admin))
        assert response.status_code == 409

    def test_patch_user(self, client, admin, user, auth_headers):
        response = client.patch(f'{API}/users/{user.id}', data=json.dumps({'unlimited_upload': True}),
                                content_type='application/json', headers=auth_headers(admin))
        assert response.status_code == 200
        assert json.loads(response.data)['user']['unlimited_upload'] is True

    def test_patch_without_fields(self, client, admin, user, auth_headers):
        response = client.patch(f'{API}/users/{user.id}', data=json.dumps({'email': 'x@vault.io'}),
                                content_type='application/json', headers=auth_headers(admin))
        assert response.status_code == 400
        assert json.loads(response.data)['code'] == 'NO_UPDATES'

    def test_patch_unknown_user(self, client, admin, auth_headers):
        response = client.patch(f'{API}/users/missing', data=json.dumps({'unlimited_upload': True}),
                                content_type='application/json', headers=auth_headers(admin))
        assert response.status_code == 404
        assert json.loads(response.data)['code'] == 'USER_NOT_FOUND'

    def test_cannot_delete_self(self, client, admin, auth_headers):
        response = client.delete(f'{API}/users/{admin.id}', headers=auth_headers(admin))
        assert response.status_code == 400
        assert json.loads(response.data)['code'] == 'CANNOT_DELETE_SELF'

    def test_delete_user_cascades(self, client, admin, user, login, trust_device, auth_headers):
        login(user)
        trust_device(user)
        user_id = user.id

        response = client.delete(f'{API}/users/{user_id}', headers=auth_headers(admin))

        assert response.status_code == 200
        assert db.session.get(User, user_id) is None
        assert Session.query.filter_by(user_id=user_id).count() == 0
        assert TrustedDevice.query.filter_by(user_id=user_id).count() == 0
