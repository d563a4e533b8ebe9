from datetime import datetime
from harness_mes import db


class BundleLot(db.Model):
    """Shipping bundle of completed production lots"""
    __tablename__ = 'bundle_lots'

    id = db.Column(db.Integer, primary_key=True)
    bundle_no = db.Column(db.String(100), unique=True, nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'))  # first item's product
    bundle_type = db.Column(db.String(20), default='SAME_PRODUCT')  # SAME_PRODUCT, MULTI_PRODUCT
    set_quantity = db.Column(db.Integer, default=0)  # item count
    total_qty = db.Column(db.Integer, default=0)  # sum of item quantities
    status = db.Column(db.String(20), default='CREATED')  # CREATED, SHIPPED, UNBUNDLED

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    shipped_at = db.Column(db.DateTime)

    # Relationships
    product = db.relationship('Product')
    items = db.relationship('BundleItem', backref='bundle', order_by='BundleItem.id',
                            cascade='all, delete-orphan')

    def __repr__(self):
        return f'<BundleLot {self.bundle_no} ({self.bundle_type})>'

    def to_dict(self):
        return {
            'id': self.id,
            'bundle_no': self.bundle_no,
            'product_id': self.product_id,
            'bundle_type': self.bundle_type,
            'set_quantity': self.set_quantity,
            'total_qty': self.total_qty,
            'status': self.status,
            'items': [item.to_dict() for item in self.items],
        }


class BundleItem(db.Model):
    """Production lot quantity packed in a bundle"""
    __tablename__ = 'bundle_items'

    id = db.Column(db.Integer, primary_key=True)
    bundle_lot_id = db.Column(db.Integer, db.ForeignKey('bundle_lots.id'), nullable=False, index=True)
    production_lot_id = db.Column(db.Integer, db.ForeignKey('production_lots.id'),
                                  nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Captured at bundling time
    product_code = db.Column(db.String(50))
    process_code = db.Column(db.String(10))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    production_lot = db.relationship('ProductionLot', backref='bundle_items')

    def __repr__(self):
        return f'<BundleItem {self.bundle_lot_id}: lot {self.production_lot_id} x{self.quantity}>'

    def to_dict(self):
        return {
            'id': self.id,
            'production_lot_id': self.production_lot_id,
            'quantity': self.quantity,
            'product_code': self.product_code,
            'process_code': self.process_code,
        }
