"""
AuditLog: field-level change history for machines, production entries and inventory.
"""
from datetime import datetime, timezone

from yarn_erp.extensions import db

AUDIT_ACTIONS = ('create', 'update', 'delete')


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), index=True)
    product_id = db.Column(db.String(100), index=True)  # "<entity>:<id>"
    yarn_type = db.Column(db.String(100))
    action = db.Column(db.String(10), nullable=False)
    field = db.Column(db.String(100))
    old_value = db.Column(db.Text)
    new_value = db.Column(db.Text)
    remarks = db.Column(db.Text)
    timestamp = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc), index=True)

    user = db.relationship('User', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'userName': self.user.name if self.user else None,
            'productId': self.product_id,
            'yarnType': self.yarn_type,
            'action': self.action,
            'field': self.field,
            'oldValue': self.old_value,
            'newValue': self.new_value,
            'remarks': self.remarks,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None
        }

    def __repr__(self):
        return f'<AuditLog {self.action} {self.product_id} {self.field}>'


def _as_text(value):
    return None if value is None else str(value)


def record_audit(action, product_id, user=None, yarn_type=None, remarks=None, changes=None):
    """
    Adds audit rows to the session without committing.

    Args:
        action: 'create', 'update' or 'delete'
        product_id: Entity reference, e.g. 'asu_machine:12'
        user: User performing the change
        changes: Dict {field: (old, new)}; unchanged fields are skipped.
                 Without changes a single row is written.

    Returns:
        List of AuditLog objects added
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Invalid audit action: {action}")

    user_id = user.id if user is not None else None
    logs = []

    if changes:
        for field, (old, new) in changes.items():
            if _as_text(old) == _as_text(new):
                continue
            logs.append(AuditLog(
                user_id=user_id, product_id=product_id, yarn_type=yarn_type, action=action,
                field=field, old_value=_as_text(old), new_value=_as_text(new), remarks=remarks
            ))
    else:
        logs.append(AuditLog(
            user_id=user_id, product_id=product_id, yarn_type=yarn_type,
            action=action, remarks=remarks
        ))

    db.session.add_all(logs)
    return logs
