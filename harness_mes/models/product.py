from datetime import datetime
from harness_mes import db
from harness_mes.utils.codes import ProductType, extract_finished_code


class Product(db.Model):
    """Finished product or generated semi-product"""
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    spec = db.Column(db.String(200))
    description = db.Column(db.Text)

    # Taxonomy
    type = db.Column(db.String(20), default=ProductType.FINISHED.value, index=True)
    process_code = db.Column(db.String(10))  # CA, MS, MC, SB, HS for semi-products
    parent_code = db.Column(db.String(50), index=True)  # finished code for semi-products
    crimp_code = db.Column(db.String(50))  # MS only: the crimp product it strips
    circuit_no = db.Column(db.Integer)  # CA/MS only: 1-999

    bundle_qty = db.Column(db.Integer, default=100)

    # Tracking
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    production_lots = db.relationship('ProductionLot', backref='product', lazy='dynamic')

    def __repr__(self):
        return f'<Product {self.code} ({self.type})>'

    @property
    def root_code(self):
        return extract_finished_code(self.code)

    @property
    def is_finished(self):
        return self.type == ProductType.FINISHED.value

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'type': self.type,
            'process_code': self.process_code,
            'parent_code': self.parent_code,
            'crimp_code': self.crimp_code,
            'circuit_no': self.circuit_no,
        }
