from datetime import datetime, timezone
import re

from werkzeug.security import generate_password_hash, check_password_hash

from yarn_erp.extensions import db

EMAIL_REGEX = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

ROLES = ('superadmin', 'admin', 'manager', 'storekeeper')
STATUSES = ('pending', 'active', 'inactive')


class User(db.Model):
    """
    Application user. Passwords are stored as werkzeug hashes.
    New accounts start as 'pending' until an admin approves them.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='manager')
    status = db.Column(db.String(20), nullable=False, default='pending')

    # List of {timestamp, ip}
    login_history = db.Column(db.JSON, default=list)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def record_login(self, ip=None):
        # Reassign so SQLAlchemy detects the change on the JSON column
        history = list(self.login_history or [])
        history.append({'timestamp': datetime.now(timezone.utc).isoformat(), 'ip': ip})
        self.login_history = history

    @staticmethod
    def is_valid_email(email):
        return bool(email and EMAIL_REGEX.match(email))

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'status': self.status,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'
