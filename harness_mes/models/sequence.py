from datetime import datetime
from harness_mes import db


class SequenceCounter(db.Model):
    """Last issued number per (prefix, YYMMDD). Only touched by services.sequence."""
    __tablename__ = 'sequence_counters'
    __table_args__ = (
        db.UniqueConstraint('prefix', 'date_key', name='uq_sequence_prefix_date'),
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(50), nullable=False)
    date_key = db.Column(db.String(6), nullable=False)
    last_number = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<SequenceCounter {self.prefix}/{self.date_key}: {self.last_number}>'
