"""
Dyeing firms, dyeing orders sent to them, and follow-up notes on those orders.
"""
from datetime import date, datetime, timezone

from yarn_erp.extensions import db


def _iso(value):
    return value.isoformat() if value else None


class DyeingFirm(db.Model):
    __tablename__ = 'dyeing_firms'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    contact_person = db.Column(db.String(120))
    phone_number = db.Column(db.String(30))
    email = db.Column(db.String(255))
    address = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @classmethod
    def find_by_name(cls, name, exclude_id=None):
        """Case-insensitive lookup by name."""
        query = cls.query.filter(db.func.lower(cls.name) == name.strip().lower())
        if exclude_id is not None:
            query = query.filter(cls.id != exclude_id)
        return query.first()

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'contactPerson': self.contact_person,
            'phoneNumber': self.phone_number,
            'email': self.email,
            'address': self.address,
            'isActive': self.is_active,
            'notes': self.notes,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }

    def __repr__(self):
        return f'<DyeingFirm {self.name}>'


class DyeingRecord(db.Model):
    """
    Yarn lot sent to a dyeing firm. It is pending until arrival_date is set.
    """
    __tablename__ = 'dyeing_records'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    yarn_type = db.Column(db.String(100), nullable=False)
    party_name = db.Column(db.String(200), nullable=False, index=True)
    dyeing_firm = db.Column(db.String(200), nullable=False, index=True)
    quantity = db.Column(db.Float, nullable=False, default=0.0)
    shade = db.Column(db.String(100))
    count = db.Column(db.String(50))
    lot = db.Column(db.String(100))

    sent_date = db.Column(db.Date, nullable=False)
    expected_arrival_date = db.Column(db.Date, nullable=False)
    arrival_date = db.Column(db.Date)

    is_reprocessing = db.Column(db.Boolean, nullable=False, default=False)
    remarks = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    follow_ups = db.relationship(
        'DyeingFollowUp',
        backref='dyeing_record',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='DyeingFollowUp.follow_up_date.desc()'
    )

    @property
    def status(self):
        return 'Arrived' if self.arrival_date else 'Pending'

    @property
    def is_overdue(self):
        if self.arrival_date or not self.expected_arrival_date:
            return False
        return date.today() > self.expected_arrival_date

    @property
    def days_until_due(self):
        if not self.expected_arrival_date:
            return None
        return (self.expected_arrival_date - date.today()).days

    def to_dict(self):
        return {
            'id': self.id,
            'yarnType': self.yarn_type,
            'partyName': self.party_name,
            'dyeingFirm': self.dyeing_firm,
            'quantity': self.quantity,
            'shade': self.shade,
            'count': self.count,
            'lot': self.lot,
            'sentDate': _iso(self.sent_date),
            'expectedArrivalDate': _iso(self.expected_arrival_date),
            'arrivalDate': _iso(self.arrival_date),
            'isReprocessing': self.is_reprocessing,
            'remarks': self.remarks,
            'status': self.status,
            'isOverdue': self.is_overdue,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }

    def __repr__(self):
        return f'<DyeingRecord {self.id} {self.party_name} -> {self.dyeing_firm}>'


class DyeingFollowUp(db.Model):
    __tablename__ = 'dyeing_follow_ups'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    dyeing_record_id = db.Column(db.Integer, db.ForeignKey('dyeing_records.id', ondelete='CASCADE'), nullable=False, index=True)
    follow_up_date = db.Column(db.DateTime, nullable=False)
    remarks = db.Column(db.Text)
    added_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    added_by_name = db.Column(db.String(120))

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            'id': self.id,
            'dyeingRecordId': self.dyeing_record_id,
            'followUpDate': _iso(self.follow_up_date),
            'remarks': self.remarks,
            'addedBy': self.added_by,
            'addedByName': self.added_by_name,
            'createdAt': _iso(self.created_at)
        }
