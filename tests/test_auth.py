"""
Tests for registration, login and the JWT middleware.
"""
from datetime import datetime, timedelta, timezone

import jwt

from yarn_erp.extensions import db
from yarn_erp.models.user import User


class TestRegister:
    """POST /api/auth/register"""

    def test_register_creates_pending_manager(self, client, app):
        resp = client.post('/api/auth/register', json={
            'name': 'Ravi', 'email': 'Ravi@Mill.test', 'password': 'secret1'
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body['success'] is True
        assert body['token']
        assert body['user']['email'] == 'ravi@mill.test'
        assert body['user']['role'] == 'manager'
        assert body['user']['status'] == 'pending'
        assert 'password_hash' not in body['user']

        user = User.query.filter_by(email='ravi@mill.test').first()
        assert user.check_password('secret1')

    def test_register_missing_fields(self, client):
        resp = client.post('/api/auth/register', json={'email': 'x@mill.test'})
        assert resp.status_code == 400
        assert resp.get_json()['success'] is False

    def test_register_invalid_email(self, client):
        resp = client.post('/api/auth/register', json={
            'name': 'X', 'email': 'not-an-email', 'password': 'secret1'
        })
        assert resp.status_code == 400

    def test_register_short_password(self, client):
        resp = client.post('/api/auth/register', json={
            'name': 'X', 'email': 'x@mill.test', 'password': '123'
        })
        assert resp.status_code == 400
        assert '6' in resp.get_json()['error']

    def test_register_duplicate_email(self, client, admin_user):
        resp = client.post('/api/auth/register', json={
            'name': 'Other', 'email': 'admin@mill.test', 'password': 'secret1'
        })
        assert resp.status_code == 409

    def test_register_superadmin_falls_back_to_manager(self, client):
        resp = client.post('/api/auth/register', json={
            'name': 'X', 'email': 'x@mill.test', 'password': 'secret1', 'role': 'superadmin'
        })
        assert resp.status_code == 201
        assert resp.get_json()['user']['role'] == 'manager'

    def test_register_unknown_role(self, client):
        resp = client.post('/api/auth/register', json={
            'name': 'X', 'email': 'x@mill.test', 'password': 'secret1', 'role': 'owner'
        })
        assert resp.status_code == 400

    def test_register_non_string_fields(self, client):
        resp = client.post('/api/auth/register', json={'name': 'X', 'email': 123, 'password': 'secret1'})
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'email must be a string'

        resp = client.post('/api/auth/register', json={'name': 'X', 'email': 'x@mill.test', 'password': 123456})
        assert resp.status_code == 400


class TestLogin:
    """POST /api/auth/login"""

    def test_login_non_string_email(self, client):
        resp = client.post('/api/auth/login', json={'email': ['a'], 'password': 'secret1'})
        assert resp.status_code == 400

    def test_login_returns_token_and_records_history(self, client, admin_user):
        resp = client.post('/api/auth/login', json={'email': 'admin@mill.test', 'password': 'secret123'})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['token']
        assert body['user']['id'] == admin_user.id

        user = db.session.get(User, admin_user.id)
        assert len(user.login_history) == 1
        assert 'timestamp' in user.login_history[0]

    def test_login_wrong_password(self, client, admin_user):
        resp = client.post('/api/auth/login', json={'email': 'admin@mill.test', 'password': 'nope'})
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'Invalid email or password'

    def test_login_unknown_email(self, client):
        resp = client.post('/api/auth/login', json={'email': 'ghost@mill.test', 'password': 'secret123'})
        assert resp.status_code == 401

    def test_login_inactive_user(self, client, make_user):
        make_user('off@mill.test', role='manager', status='inactive')
        resp = client.post('/api/auth/login', json={'email': 'off@mill.test', 'password': 'secret123'})
        assert resp.status_code == 403


class TestTokenMiddleware:
    """token_required and role checks"""

    def test_me_requires_token(self, client):
        resp = client.get('/api/auth/me')
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'Unauthorized'

    def test_me_returns_current_user(self, client, auth_headers, admin_user):
        resp = client.get('/api/auth/me', headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()['data']['email'] == admin_user.email

    def test_garbage_token(self, client):
        resp = client.get('/api/auth/me', headers={'Authorization': 'Bearer not.a.jwt'})
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'Invalid token'

    def test_expired_token(self, client, app, admin_user):
        token = jwt.encode({
            'sub': str(admin_user.id),
            'exp': datetime.now(timezone.utc) - timedelta(hours=1)
        }, app.config['JWT_SECRET'], algorithm='HS256')
        resp = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'Invalid token'

    def test_deleted_user_token(self, client, make_user, headers_for):
        user = make_user('gone@mill.test')
        headers = headers_for(user)
        db.session.delete(user)
        db.session.commit()

        resp = client.get('/api/auth/me', headers=headers)
        assert resp.status_code == 401

    def test_logout(self, client, auth_headers):
        resp = client.post('/api/auth/logout', headers=auth_headers)
        assert resp.status_code == 200
        assert resp.get_json()['message'] == 'Logged out successfully'

    def test_token_payload(self, app, admin_user):
        from yarn_erp.utils.auth import generate_token, decode_token
        payload = decode_token(generate_token(admin_user))
        assert payload['sub'] == str(admin_user.id)
        assert payload['role'] == 'admin'
        assert payload['email'] == admin_user.email
