"""
MachineConfiguration: versioned history of an ASU machine's settings.
A row with end_date NULL is the active configuration.
"""
from datetime import date, datetime, timezone

from yarn_erp.extensions import db


class MachineConfiguration(db.Model):
    __tablename__ = 'machine_configurations'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    machine_id = db.Column(db.Integer, db.ForeignKey('asu_machines.id', ondelete='CASCADE'), nullable=False, index=True)

    count = db.Column(db.Float)
    spindle_count = db.Column(db.Integer)
    yarn_type = db.Column(db.String(100), default='Cotton')
    speed = db.Column(db.Float)
    production_at_100 = db.Column(db.Float)

    start_date = db.Column(db.Date, nullable=False, default=date.today)
    end_date = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self):
        return self.end_date is None

    def to_dict(self):
        return {
            'id': self.id,
            'machineId': self.machine_id,
            'count': self.count,
            'spindleCount': self.spindle_count,
            'yarnType': self.yarn_type,
            'speed': self.speed,
            'productionAt100': self.production_at_100,
            'startDate': self.start_date.isoformat() if self.start_date else None,
            'endDate': self.end_date.isoformat() if self.end_date else None,
            'isActive': self.is_active
        }

    def __repr__(self):
        return f'<MachineConfiguration machine={self.machine_id} {self.start_date}..{self.end_date}>'


def _normalize_target(value):
    return round(float(value or 0), 5)


def _normalize_yarn(value):
    return (value or '').strip()


def latest_configuration(machine):
    """Most recent configuration of a machine, or None."""
    return (MachineConfiguration.query
            .filter_by(machine_id=machine.id)
            .order_by(MachineConfiguration.start_date.desc(), MachineConfiguration.id.desc())
            .first())


def needs_snapshot(machine, config):
    """
    True when the machine's current settings differ from the stored configuration.
    Targets are compared at 5 decimals and yarn types after trimming.
    """
    if config is None:
        return True
    return (
        (config.spindle_count or 0) != (machine.spindles or 0)
        or _normalize_yarn(config.yarn_type) != _normalize_yarn(machine.yarn_type)
        or _normalize_target(config.production_at_100) != _normalize_target(machine.production_at_100)
    )


def open_configuration(machine, start_date, **overrides):
    """
    Closes the active configuration at start_date and opens a new one.
    Values default to the machine's current settings. Does not commit.
    """
    active = (MachineConfiguration.query
              .filter_by(machine_id=machine.id, end_date=None)
              .all())
    for config in active:
        # A configuration cannot end before it started
        config.end_date = max(start_date, config.start_date) if config.start_date else start_date

    config = MachineConfiguration(
        machine_id=machine.id,
        count=overrides.get('count', machine.count),
        spindle_count=overrides.get('spindle_count', machine.spindles),
        yarn_type=overrides.get('yarn_type', machine.yarn_type),
        speed=overrides.get('speed', machine.speed),
        production_at_100=overrides.get('production_at_100', machine.production_at_100),
        start_date=start_date,
        end_date=None
    )
    db.session.add(config)
    return config


def snapshot_configuration(machine, on_date):
    """
    Stores the machine's settings as a new configuration when they changed
    since the last snapshot.

    Returns:
        The new MachineConfiguration, or None when nothing changed
    """
    if not needs_snapshot(machine, latest_configuration(machine)):
        return None
    return open_configuration(machine, on_date)
