from datetime import date, datetime, timezone
import re

from yarn_erp.extensions import db

JOB_STATUSES = ('pending', 'in_progress', 'completed', 'on_hold', 'cancelled')
JOB_PRIORITIES = ('low', 'medium', 'high', 'urgent')
MACHINE_STATUSES = ('active', 'maintenance', 'inactive')

JOB_ID_PREFIX = 'JB-'


def _iso(value):
    return value.isoformat() if value else None


class Machine(db.Model):
    """Production machine master (dyeing, winding, packing, ...)."""
    __tablename__ = 'machines'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    machine_id = db.Column(db.String(50), unique=True, nullable=False)
    machine_name = db.Column(db.String(120), nullable=False)
    machine_type = db.Column(db.String(100))
    capacity = db.Column(db.Float)
    status = db.Column(db.String(20), nullable=False, default='active')

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    jobs = db.relationship('ProductionJob', backref='machine', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'machineId': self.machine_id,
            'machineName': self.machine_name,
            'machineType': self.machine_type,
            'capacity': self.capacity,
            'status': self.status
        }

    def __repr__(self):
        return f'<Machine {self.machine_id}>'


class ProductionJob(db.Model):
    __tablename__ = 'production_jobs'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    job_id = db.Column(db.String(20), unique=True, nullable=False)
    product_type = db.Column(db.String(100), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(10), nullable=False, default='kg')

    machine_id = db.Column(db.Integer, db.ForeignKey('machines.id', ondelete='SET NULL'))
    worker_name = db.Column(db.String(120))
    worker_id = db.Column(db.String(50))

    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    priority = db.Column(db.String(10), nullable=False, default='medium')

    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)
    due_date = db.Column(db.Date)

    party_name = db.Column(db.String(200), index=True)
    dyeing_order_id = db.Column(db.Integer, db.ForeignKey('dyeing_records.id', ondelete='SET NULL'))
    yarn_type = db.Column(db.String(100))
    shade = db.Column(db.String(100))
    count = db.Column(db.String(50))

    quality_grade = db.Column(db.String(1))
    defect_percentage = db.Column(db.Float)
    notes = db.Column(db.Text)

    # Completion metrics
    hourly_efficiency = db.Column(db.JSON, default=list)
    actual_efficiency = db.Column(db.Float)
    total_downtime = db.Column(db.Float, default=0.0)  # minutes

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def is_overdue(self):
        if not self.due_date or self.status in ('completed', 'cancelled'):
            return False
        return date.today() > self.due_date

    @property
    def duration_days(self):
        if not self.start_date:
            return None
        end = self.end_date or datetime.now(timezone.utc).replace(tzinfo=None)
        start = self.start_date.replace(tzinfo=None)
        return (end.replace(tzinfo=None) - start).days

    def start(self):
        if self.status != 'pending':
            raise ValueError(f"Only pending jobs can be started (current status: {self.status})")
        self.status = 'in_progress'
        self.start_date = datetime.now(timezone.utc)

    def complete(self, hourly_efficiency=None, downtime=None):
        """
        Closes the job.
        actual_efficiency is the mean of the hourly readings and
        total_downtime the sum of downtime minutes.
        """
        if self.status != 'in_progress':
            raise ValueError(f"Only in-progress jobs can be completed (current status: {self.status})")

        readings = [float(v) for v in (hourly_efficiency or [])]
        self.hourly_efficiency = readings
        self.actual_efficiency = round(sum(readings) / len(readings), 2) if readings else None
        self.total_downtime = float(sum(float(d.get('minutes') or 0) for d in (downtime or [])))
        self.status = 'completed'
        self.end_date = datetime.now(timezone.utc)

    @staticmethod
    def next_job_id():
        """Next sequential job id: JB-001, JB-002, ..."""
        highest = 0
        for (job_id,) in db.session.query(ProductionJob.job_id).filter(ProductionJob.job_id.like(f'{JOB_ID_PREFIX}%')):
            match = re.match(rf'^{JOB_ID_PREFIX}(\d+)$', job_id or '')
            if match:
                highest = max(highest, int(match.group(1)))
        return f'{JOB_ID_PREFIX}{highest + 1:03d}'

    def to_dict(self):
        return {
            'id': self.id,
            'jobId': self.job_id,
            'productType': self.product_type,
            'quantity': self.quantity,
            'unit': self.unit,
            'machineId': self.machine_id,
            'machine': self.machine.to_dict() if self.machine else None,
            'workerName': self.worker_name,
            'workerId': self.worker_id,
            'status': self.status,
            'priority': self.priority,
            'startDate': _iso(self.start_date),
            'endDate': _iso(self.end_date),
            'dueDate': _iso(self.due_date),
            'partyName': self.party_name,
            'dyeingOrderId': self.dyeing_order_id,
            'yarnType': self.yarn_type,
            'shade': self.shade,
            'count': self.count,
            'qualityGrade': self.quality_grade,
            'defectPercentage': self.defect_percentage,
            'notes': self.notes,
            'hourlyEfficiency': self.hourly_efficiency or [],
            'actualEfficiency': self.actual_efficiency,
            'totalDowntime': self.total_downtime,
            'isOverdue': self.is_overdue,
            'durationDays': self.duration_days,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at)
        }

    def __repr__(self):
        return f'<ProductionJob {self.job_id} {self.status}>'
