from harness_mes import db


class Process(db.Model):
    """Production process reference data (CA, MS, MC ... VI)"""
    __tablename__ = 'processes'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(10), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    seq = db.Column(db.Integer, unique=True, nullable=False)  # flow order
    short_code = db.Column(db.String(1), unique=True, nullable=False)  # barcode letter
    has_material_input = db.Column(db.Boolean, default=False)
    is_inspection = db.Column(db.Boolean, default=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True)

    def __repr__(self):
        return f'<Process {self.code} ({self.seq})>'
