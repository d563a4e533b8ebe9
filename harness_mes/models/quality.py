from datetime import datetime
from harness_mes import db

INSPECTION_TYPES = ('CRIMP', 'CIRCUIT', 'VISUAL')
INSPECTION_RESULTS = ('PASS', 'FAIL')


class Inspection(db.Model):
    """Inspection verdict for a lot barcode. Append-only; latest id wins."""
    __tablename__ = 'inspections'

    id = db.Column(db.Integer, primary_key=True)
    inspection_type = db.Column(db.String(20), nullable=False, default='CRIMP', index=True)
    lot_number = db.Column(db.String(100), nullable=False, index=True)  # scanned barcode
    production_lot_id = db.Column(db.Integer, db.ForeignKey('production_lots.id'))
    process_code = db.Column(db.String(10))

    result = db.Column(db.String(10), nullable=False)  # PASS, FAIL
    defect_reason = db.Column(db.String(200))  # FAIL only
    inspector = db.Column(db.String(100))
    inspected_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    production_lot = db.relationship('ProductionLot', backref='inspections')

    def __repr__(self):
        return f'<Inspection {self.inspection_type} {self.lot_number}: {self.result}>'

    @property
    def passed(self):
        return self.result == 'PASS'

    def to_dict(self):
        return {
            'id': self.id,
            'inspection_type': self.inspection_type,
            'lot_number': self.lot_number,
            'process_code': self.process_code,
            'result': self.result,
            'defect_reason': self.defect_reason,
            'inspector': self.inspector,
            'inspected_at': self.inspected_at.isoformat() if self.inspected_at else None,
        }
