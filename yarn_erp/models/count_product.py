from datetime import datetime, timezone

from yarn_erp.extensions import db

QUALITY_GRADES = ('A', 'B', 'C')


def _iso(value):
    return value.isoformat() if value else None


class CountProduct(db.Model):
    """
    Finished yarn lot of a given count, tracked through dyeing, receipt and dispatch.
    """
    __tablename__ = 'count_products'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    party_name = db.Column(db.String(200), nullable=False)
    dyeing_firm = db.Column(db.String(200), nullable=False)
    yarn_type = db.Column(db.String(100), nullable=False)
    count = db.Column(db.String(50), nullable=False)
    shade = db.Column(db.String(100), nullable=False)
    quantity = db.Column(db.Float, nullable=False, default=0.0)
    completed_date = db.Column(db.Date, nullable=False)
    quality_grade = db.Column(db.String(1), nullable=False, default='A')
    remarks = db.Column(db.Text)
    lot_number = db.Column(db.String(100), unique=True)
    processed_by = db.Column(db.String(100), default='System')
    customer_name = db.Column(db.String(200))

    # Dyeing
    sent_to_dye = db.Column(db.Boolean, default=True)
    sent_date = db.Column(db.Date)

    # Receipt
    received = db.Column(db.Boolean, default=False)
    received_date = db.Column(db.Date)
    received_quantity = db.Column(db.Float, default=0.0)

    # Dispatch
    dispatch = db.Column(db.Boolean, default=False)
    dispatch_date = db.Column(db.Date)
    dispatch_quantity = db.Column(db.Float, default=0.0)
    middleman = db.Column(db.String(200), default='Direct Supply')

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    follow_ups = db.relationship(
        'CountProductFollowUp',
        backref='count_product',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='CountProductFollowUp.follow_up_date.desc()'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'partyName': self.party_name,
            'dyeingFirm': self.dyeing_firm,
            'yarnType': self.yarn_type,
            'count': self.count,
            'shade': self.shade,
            'quantity': self.quantity,
            'completedDate': _iso(self.completed_date),
            'qualityGrade': self.quality_grade,
            'remarks': self.remarks,
            'lotNumber': self.lot_number,
            'processedBy': self.processed_by,
            'customerName': self.customer_name,
            'sentToDye': self.sent_to_dye,
            'sentDate': _iso(self.sent_date),
            'received': self.received,
            'receivedDate': _iso(self.received_date),
            'receivedQuantity': self.received_quantity,
            'dispatch': self.dispatch,
            'dispatchDate': _iso(self.dispatch_date),
            'dispatchQuantity': self.dispatch_quantity,
            'middleman': self.middleman,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }

    def __repr__(self):
        return f'<CountProduct {self.lot_number or self.id} {self.party_name}>'


class CountProductFollowUp(db.Model):
    __tablename__ = 'count_product_follow_ups'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    count_product_id = db.Column(db.Integer, db.ForeignKey('count_products.id', ondelete='CASCADE'), nullable=False, index=True)
    follow_up_date = db.Column(db.DateTime, nullable=False)
    remarks = db.Column(db.Text, nullable=False)
    added_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    added_by_name = db.Column(db.String(120))

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            'id': self.id,
            'countProductId': self.count_product_id,
            'followUpDate': _iso(self.follow_up_date),
            'remarks': self.remarks,
            'addedBy': self.added_by,
            'addedByName': self.added_by_name,
            'createdAt': _iso(self.created_at)
        }
