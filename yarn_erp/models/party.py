from datetime import datetime, timezone
import re

from yarn_erp.extensions import db

PHONE_REGEX = re.compile(r'^[+]?[\d\s\-()]{7,20}$')


class Party(db.Model):
    """Customer placing dyeing and production orders."""
    __tablename__ = 'parties'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    address = db.Column(db.Text)
    contact = db.Column(db.String(30))
    dyeing_firm = db.Column(db.String(200))

    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    archived_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @staticmethod
    def is_valid_contact(contact):
        return not contact or bool(PHONE_REGEX.match(contact))

    def archive(self):
        self.is_archived = True
        self.archived_at = datetime.now(timezone.utc)

    def restore(self):
        self.is_archived = False
        self.archived_at = None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'contact': self.contact,
            'dyeingFirm': self.dyeing_firm,
            'isArchived': self.is_archived,
            'archivedAt': self.archived_at.isoformat() if self.archived_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Party {self.name}>'
