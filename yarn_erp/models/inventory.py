from datetime import date, datetime, timezone

from yarn_erp.extensions import db

INVENTORY_STATUSES = ('Available', 'Reserved', 'Out of Stock')
STOCK_LOG_TYPES = ('in', 'out', 'spoilage')


class InventoryItem(db.Model):
    """
    Yarn stock item. After the opening balance, current_quantity moves only
    through StockLog entries (see apply_movement); total_value follows
    current_quantity * cost_per_kg.
    """
    __tablename__ = 'inventory'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    product_name = db.Column(db.String(200), nullable=False)
    raw_material = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(100))
    effective_yarn = db.Column(db.Float, nullable=False)
    count = db.Column(db.String(50), nullable=False)
    units_produced = db.Column(db.Integer, default=0)
    initial_quantity = db.Column(db.Float, nullable=False, default=0.0)
    current_quantity = db.Column(db.Float, nullable=False, default=0.0)
    gsm = db.Column(db.Float)
    cost_per_kg = db.Column(db.Float, default=0.0)
    total_value = db.Column(db.Float, default=0.0)

    location = db.Column(db.String(200), default='Main Warehouse')
    warehouse_location = db.Column(db.String(200))
    batch_number = db.Column(db.String(100), index=True)
    supplier_name = db.Column(db.String(200))

    # Flags set by the UI when the user overrides a computed value
    manual_quantity = db.Column(db.Boolean, default=False)
    manual_value = db.Column(db.Boolean, default=False)
    manual_yarn = db.Column(db.Boolean, default=False)

    remarks = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='Available')

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    stock_logs = db.relationship(
        'StockLog',
        backref='inventory_item',
        lazy=True,
        cascade='all, delete-orphan'
    )

    def recalculate(self):
        """Refreshes total_value and the stock-driven status."""
        self.total_value = round((self.current_quantity or 0.0) * (self.cost_per_kg or 0.0), 2)
        if (self.current_quantity or 0.0) <= 0:
            self.status = 'Out of Stock'
        elif self.status == 'Out of Stock':
            self.status = 'Available'

    def apply_movement(self, movement_type, quantity, **details):
        """
        Applies a stock movement and returns the StockLog written for it.

        Raises:
            ValueError: When the quantity is not positive or exceeds the stock
        """
        if movement_type not in STOCK_LOG_TYPES:
            raise ValueError(f"Invalid stock movement type: {movement_type}")
        if quantity is None or quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        current = self.current_quantity or 0.0
        if movement_type == 'in':
            self.current_quantity = current + quantity
        else:
            if quantity > current:
                raise ValueError(f"Insufficient stock: available {current}, requested {quantity}")
            self.current_quantity = current - quantity

        self.recalculate()

        log = StockLog(
            inventory_id=self.id,
            type=movement_type,
            quantity=quantity,
            date=details.get('date') or date.today(),
            remarks=details.get('remarks'),
            source=details.get('source'),
            usage_purpose=details.get('usage_purpose'),
            reason=details.get('reason')
        )
        db.session.add(log)
        return log

    @property
    def is_low_stock(self):
        return (self.initial_quantity or 0) > 0 and (self.current_quantity or 0) < self.initial_quantity * 0.1

    def to_dict(self):
        return {
            'id': self.id,
            'productName': self.product_name,
            'rawMaterial': self.raw_material,
            'category': self.category,
            'effectiveYarn': self.effective_yarn,
            'count': self.count,
            'unitsProduced': self.units_produced,
            'initialQuantity': self.initial_quantity,
            'currentQuantity': self.current_quantity,
            'gsm': self.gsm,
            'costPerKg': self.cost_per_kg,
            'totalValue': self.total_value,
            'location': self.location,
            'warehouseLocation': self.warehouse_location,
            'batchNumber': self.batch_number,
            'supplierName': self.supplier_name,
            'manualQuantity': self.manual_quantity,
            'manualValue': self.manual_value,
            'manualYarn': self.manual_yarn,
            'remarks': self.remarks,
            'status': self.status,
            'isLowStock': self.is_low_stock,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<InventoryItem {self.product_name} ({self.current_quantity} kg)>'


class StockLog(db.Model):
    __tablename__ = 'stock_logs'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey('inventory.id', ondelete='CASCADE'), nullable=False, index=True)
    type = db.Column(db.String(10), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    date = db.Column(db.Date, nullable=False, default=date.today)
    remarks = db.Column(db.Text)
    source = db.Column(db.String(200))          # 'in'
    usage_purpose = db.Column(db.String(200))   # 'out'
    reason = db.Column(db.String(200))          # 'spoilage'

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            'id': self.id,
            'inventoryId': self.inventory_id,
            'type': self.type,
            'quantity': self.quantity,
            'date': self.date.isoformat() if self.date else None,
            'remarks': self.remarks,
            'source': self.source,
            'usagePurpose': self.usage_purpose,
            'reason': self.reason,
            'createdAt': self.created_at.isoformat() if self.created_at else None
        }
