import os
# Force SQLite for tests -> MUST be done before importing yarn_erp.config
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from yarn_erp import create_app, db
from yarn_erp.models.user import User
from yarn_erp.utils.auth import generate_token


@pytest.fixture
def app():
    app = create_app()
    app.config.update({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def create_user(email, role='admin', status='active', name=None, password='secret123'):
    """
    Creates and commits a user. Call inside an app context.
    Returns: User
    """
    user = User(name=name or email.split('@')[0], email=email, role=role, status=status)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def bearer(user):
    return {'Authorization': f'Bearer {generate_token(user)}'}


@pytest.fixture
def admin_user(app):
    return create_user('admin@mill.test', role='admin', name='Admin')


@pytest.fixture
def auth_headers(admin_user):
    """Bearer headers of an active admin."""
    return bearer(admin_user)


@pytest.fixture
def manager_user(app):
    return create_user('manager@mill.test', role='manager', name='Manager')


@pytest.fixture
def manager_headers(manager_user):
    """Bearer headers of an active manager (read-only on inventory)."""
    return bearer(manager_user)


@pytest.fixture
def make_user(app):
    """Factory: make_user(email, role='admin', status='active') -> User"""
    return create_user


@pytest.fixture
def headers_for(app):
    """Factory: headers_for(user) -> Authorization headers"""
    return bearer
