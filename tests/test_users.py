"""
Tests for user administration (admin only).
"""
from yarn_erp.extensions import db
from yarn_erp.models.user import User


class TestUsersAccess:

    def test_manager_is_forbidden(self, client, manager_headers):
        resp = client.get('/api/users', headers=manager_headers)
        assert resp.status_code == 403

    def test_superadmin_passes_role_check(self, client, make_user, headers_for):
        root = make_user('root@mill.test', role='superadmin')
        resp = client.get('/api/users', headers=headers_for(root))
        assert resp.status_code == 200


class TestUsersAPI:

    def test_list_and_search(self, client, auth_headers, make_user):
        make_user('weaver@mill.test', role='storekeeper', name='Weaver')
        resp = client.get('/api/users?search=weav', headers=auth_headers)
        data = resp.get_json()['data']
        assert [u['email'] for u in data] == ['weaver@mill.test']
        assert 'password_hash' not in data[0]

    def test_filter_by_role(self, client, auth_headers, make_user):
        make_user('s1@mill.test', role='storekeeper')
        resp = client.get('/api/users?role=storekeeper', headers=auth_headers)
        assert len(resp.get_json()['data']) == 1

    def test_create_user_defaults(self, client, auth_headers):
        resp = client.post('/api/users', headers=auth_headers, json={'name': 'New', 'email': 'new@mill.test'})
        assert resp.status_code == 201
        data = resp.get_json()['data']
        assert data['role'] == 'manager'
        assert data['status'] == 'pending'
        assert User.query.filter_by(email='new@mill.test').first().check_password('temp1234')

    def test_create_user_duplicate_email(self, client, auth_headers, admin_user):
        resp = client.post('/api/users', headers=auth_headers, json={'name': 'Dup', 'email': 'admin@mill.test'})
        assert resp.status_code == 400

    def test_non_string_values_rejected(self, client, auth_headers, make_user):
        resp = client.post('/api/users', headers=auth_headers, json={'name': 'New', 'email': 42})
        assert resp.status_code == 400
        resp = client.post('/api/users/invite', headers=auth_headers, json={'email': {'a': 1}})
        assert resp.status_code == 400

        user = make_user('u@mill.test', role='manager')
        resp = client.post(f'/api/users/{user.id}/reset-password', headers=auth_headers, json={'password': 1234567})
        assert resp.status_code == 400

    def test_update_role_and_status(self, client, auth_headers, make_user):
        user = make_user('u@mill.test', role='manager', status='pending')
        resp = client.patch(f'/api/users/{user.id}', headers=auth_headers,
                            json={'role': 'storekeeper', 'status': 'active'})
        assert resp.status_code == 200
        assert resp.get_json()['data']['role'] == 'storekeeper'
        assert resp.get_json()['data']['status'] == 'active'

    def test_update_invalid_status(self, client, auth_headers, make_user):
        user = make_user('u@mill.test', role='manager')
        resp = client.patch(f'/api/users/{user.id}', headers=auth_headers, json={'status': 'banned'})
        assert resp.status_code == 400

    def test_admin_cannot_modify_superadmin(self, client, auth_headers, make_user):
        root = make_user('root@mill.test', role='superadmin')
        resp = client.patch(f'/api/users/{root.id}', headers=auth_headers, json={'status': 'inactive'})
        assert resp.status_code == 403

    def test_cannot_delete_self(self, client, auth_headers, admin_user):
        resp = client.delete(f'/api/users/{admin_user.id}', headers=auth_headers)
        assert resp.status_code == 400

    def test_delete_user(self, client, auth_headers, make_user):
        user = make_user('bye@mill.test', role='manager')
        user_id = user.id
        resp = client.delete(f'/api/users/{user_id}', headers=auth_headers)
        assert resp.status_code == 200
        assert db.session.get(User, user_id) is None

    def test_reset_password(self, client, auth_headers, make_user):
        user = make_user('u@mill.test', role='manager')
        assert client.post(f'/api/users/{user.id}/reset-password', headers=auth_headers,
                           json={'password': '123'}).status_code == 400

        resp = client.post(f'/api/users/{user.id}/reset-password', headers=auth_headers, json={})
        assert resp.status_code == 200
        assert db.session.get(User, user.id).check_password('temp1234')

    def test_approve_and_reject(self, client, auth_headers, make_user):
        user = make_user('u@mill.test', role='manager', status='pending')
        resp = client.patch(f'/api/users/{user.id}/approve', headers=auth_headers, json={'approved': True})
        assert resp.get_json()['data']['status'] == 'active'

        resp = client.patch(f'/api/users/{user.id}/approve', headers=auth_headers, json={'approved': False})
        assert resp.get_json()['data']['status'] == 'inactive'

    def test_invite(self, client, auth_headers):
        resp = client.post('/api/users/invite', headers=auth_headers, json={'email': 'dyer@mill.test'})
        assert resp.status_code == 201
        data = resp.get_json()['data']
        assert data['name'] == 'dyer'
        assert data['status'] == 'pending'

        again = client.post('/api/users/invite', headers=auth_headers, json={'email': 'dyer@mill.test'})
        assert again.status_code == 400

    def test_login_logs_newest_first(self, client, auth_headers, make_user):
        user = make_user('u@mill.test', role='manager')
        user.login_history = [
            {'timestamp': '2025-01-01T08:00:00', 'ip': '10.0.0.1'},
            {'timestamp': '2025-01-02T08:00:00', 'ip': '10.0.0.2'},
        ]
        db.session.commit()

        resp = client.get(f'/api/users/{user.id}/logs', headers=auth_headers)
        history = resp.get_json()['data']
        assert [h['ip'] for h in history] == ['10.0.0.2', '10.0.0.1']
