"""
Bills of materials, work orders built from them, and the costing of each work order.
"""
from datetime import datetime, timezone

from yarn_erp.extensions import db

WORK_ORDER_STATUSES = ('pending', 'in_progress', 'completed', 'cancelled')


class BillOfMaterials(db.Model):
    __tablename__ = 'boms'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    product_id = db.Column(db.String(100), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    materials = db.relationship('BOMItem', backref='bom', lazy=True, cascade='all, delete-orphan')
    work_orders = db.relationship('WorkOrder', backref='bom', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'materials': [m.to_dict() for m in self.materials],
            'createdAt': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<BillOfMaterials {self.product_id}>'


class BOMItem(db.Model):
    __tablename__ = 'bom_items'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    bom_id = db.Column(db.Integer, db.ForeignKey('boms.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(10), default='kg')

    def to_dict(self):
        return {'name': self.name, 'quantity': self.quantity, 'unit': self.unit}


class WorkOrder(db.Model):
    __tablename__ = 'work_orders'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    bom_id = db.Column(db.Integer, db.ForeignKey('boms.id'), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    costing = db.relationship('Costing', backref='work_order', uselist=False, lazy=True,
                              cascade='all, delete-orphan')

    @property
    def material_requirements(self):
        """BOM quantities scaled by the work order quantity."""
        return [{
            'name': item.name,
            'unit': item.unit,
            'quantityPerUnit': item.quantity,
            'requiredQuantity': round(item.quantity * self.quantity, 4)
        } for item in self.bom.materials]

    def to_dict(self):
        return {
            'id': self.id,
            'bomId': self.bom_id,
            'productId': self.bom.product_id if self.bom else None,
            'quantity': self.quantity,
            'status': self.status,
            'costing': self.costing.to_dict() if self.costing else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<WorkOrder {self.id} bom={self.bom_id} {self.status}>'


class Costing(db.Model):
    __tablename__ = 'costings'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id', ondelete='CASCADE'),
                              unique=True, nullable=False)
    material_cost = db.Column(db.Float, nullable=False, default=0.0)
    labor_cost = db.Column(db.Float, nullable=False, default=0.0)
    total_cost = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def recalculate(self):
        self.total_cost = round((self.material_cost or 0.0) + (self.labor_cost or 0.0), 2)
        return self.total_cost

    def to_dict(self):
        return {
            'id': self.id,
            'workOrderId': self.work_order_id,
            'materialCost': self.material_cost,
            'laborCost': self.labor_cost,
            'totalCost': self.total_cost,
            'createdAt': self.created_at.isoformat() if self.created_at else None
        }
