from datetime import datetime, timezone

from yarn_erp.extensions import db

SHIFTS = ('day', 'night')


class ASUProductionEntry(db.Model):
    """
    Per-shift production record of an ASU machine.
    production_at_100 is a snapshot of the machine target when the entry was
    written, so later machine changes do not rewrite past efficiencies.
    """
    __tablename__ = 'asu_production_entries'
    __table_args__ = (
        db.UniqueConstraint('unit', 'machine_number', 'date', 'shift', name='uq_asu_entry_unit_machine_date_shift'),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    unit = db.Column(db.Integer, nullable=False, default=1, index=True)
    machine_number = db.Column(db.Integer, nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    shift = db.Column(db.String(10), nullable=False)
    yarn_type = db.Column(db.String(100))

    actual_production = db.Column(db.Float, nullable=False, default=0.0)
    theoretical_production = db.Column(db.Float, nullable=False, default=0.0)

    # SNAPSHOT
    production_at_100 = db.Column(db.Float)

    # PERSISTED CALCULATION
    efficiency = db.Column(db.Float, nullable=False, default=0.0)

    remarks = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def update_efficiency(self, target=None):
        """
        efficiency = actual / target * 100, rounded to 2 decimals.
        The target defaults to the snapshot, then to the theoretical value.
        """
        if target is None:
            target = self.production_at_100 or self.theoretical_production
        actual = self.actual_production or 0.0
        self.efficiency = round(actual / target * 100, 2) if target else 0.0
        return self.efficiency

    def to_dict(self):
        return {
            'id': self.id,
            'unit': self.unit,
            'machineNumber': self.machine_number,
            'date': self.date.isoformat() if self.date else None,
            'shift': self.shift,
            'yarnType': self.yarn_type,
            'actualProduction': self.actual_production,
            'theoreticalProduction': self.theoretical_production,
            'productionAt100': self.production_at_100,
            'efficiency': self.efficiency,
            'remarks': self.remarks,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<ASUProductionEntry U{self.unit} M{self.machine_number} {self.date} {self.shift}>'
