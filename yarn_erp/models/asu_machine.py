from datetime import datetime, timezone

from yarn_erp.extensions import db

UNITS = (1, 2)


class ASUMachine(db.Model):
    """
    Spinning machine of an ASU unit.
    machine_no is unique inside a unit, not globally.
    """
    __tablename__ = 'asu_machines'
    __table_args__ = (
        db.UniqueConstraint('unit', 'machine_no', name='uq_asu_machine_unit_no'),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    unit = db.Column(db.Integer, nullable=False, default=1, index=True)
    machine_no = db.Column(db.Integer, nullable=False)
    machine_name = db.Column(db.String(100))

    # Current production settings (history lives in MachineConfiguration)
    count = db.Column(db.Float, nullable=False, default=0.0)
    yarn_type = db.Column(db.String(100), nullable=False, default='Cotton')
    spindles = db.Column(db.Integer)
    speed = db.Column(db.Float)
    production_at_100 = db.Column(db.Float, default=0.0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    archived_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    configurations = db.relationship(
        'MachineConfiguration',
        backref='machine',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='MachineConfiguration.start_date.desc()'
    )

    @property
    def status(self):
        return 'active' if self.is_active else 'inactive'

    def to_dict(self):
        return {
            'id': self.id,
            'unit': self.unit,
            'machineNo': self.machine_no,
            'machineName': self.machine_name,
            'count': self.count,
            'yarnType': self.yarn_type,
            'spindles': self.spindles,
            'speed': self.speed,
            'productionAt100': self.production_at_100,
            'isActive': self.is_active,
            'status': self.status,
            'archivedAt': self.archived_at.isoformat() if self.archived_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<ASUMachine U{self.unit}-{self.machine_no}>'
