from datetime import datetime
from harness_mes import db


class Material(db.Model):
    """Raw material (wire, terminal, seal, tube)"""
    __tablename__ = 'materials'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    spec = db.Column(db.String(200))
    category = db.Column(db.String(50))  # WIRE, TERMINAL, SEAL, TUBE
    unit = db.Column(db.String(20), default='EA')
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Material {self.code}>'


class ProductionLot(db.Model):
    """One run of one process; parent_lot_id links it to the lot it consumed"""
    __tablename__ = 'production_lots'

    id = db.Column(db.Integer, primary_key=True)
    lot_number = db.Column(db.String(100), unique=True, nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'))
    process_code = db.Column(db.String(10), nullable=False, index=True)
    line_code = db.Column(db.String(20))

    # Status
    status = db.Column(db.String(20), default='CREATED')  # CREATED, IN_PROGRESS, COMPLETED

    # Quantities
    planned_qty = db.Column(db.Integer, default=0)
    completed_qty = db.Column(db.Integer, default=0)
    defect_qty = db.Column(db.Integer, default=0)

    # Genealogy
    parent_lot_id = db.Column(db.Integer, db.ForeignKey('production_lots.id'), index=True)

    # Tracking
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    parent_lot = db.relationship('ProductionLot', remote_side=[id], backref='child_lots')
    lot_materials = db.relationship('LotMaterial', backref='production_lot', lazy='dynamic',
                                    order_by='LotMaterial.id')

    def __repr__(self):
        return f'<ProductionLot {self.lot_number}>'

    @property
    def is_completed(self):
        return self.status == 'COMPLETED'


class LotMaterial(db.Model):
    """Material lot consumed by a production lot"""
    __tablename__ = 'lot_materials'

    id = db.Column(db.Integer, primary_key=True)
    production_lot_id = db.Column(db.Integer, db.ForeignKey('production_lots.id'),
                                  nullable=False, index=True)
    material_id = db.Column(db.Integer, db.ForeignKey('materials.id'), nullable=False)
    material_lot_no = db.Column(db.String(100), nullable=False, index=True)
    quantity = db.Column(db.Float, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    material = db.relationship('Material', backref='lot_usages')

    def __repr__(self):
        return f'<LotMaterial {self.material_lot_no} -> {self.production_lot_id}>'
