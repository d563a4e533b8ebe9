"""
Error taxonomy for the lot tracking engine.

Structural operations (hierarchy creation, bundle creation, sequence issue)
raise these. Validation operations (crimp gate, SP admission) return results
instead and only reuse the kind identifiers.
"""

NOT_FOUND = 'NOT_FOUND'
INVALID_INPUT = 'INVALID_INPUT'
NOT_ADMISSIBLE = 'NOT_ADMISSIBLE'
GATE_FAILED = 'GATE_FAILED'
CONCURRENCY_UNAVAILABLE = 'CONCURRENCY_UNAVAILABLE'
TRACE_ANOMALY = 'TRACE_ANOMALY'


class MESError(Exception):
    """Base class; `kind` is stable, the message is for operators"""
    kind = 'ERROR'

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        return {'kind': self.kind, 'message': self.message, **self.details}


class NotFound(MESError):
    kind = NOT_FOUND


class ProductNotFound(NotFound):
    pass


class LotNotFound(NotFound):
    pass


class BundleNotFound(NotFound):
    pass


class InvalidInput(MESError):
    kind = INVALID_INPUT


class NotAdmissible(MESError):
    kind = NOT_ADMISSIBLE


class ConcurrencyUnavailable(MESError):
    kind = CONCURRENCY_UNAVAILABLE


class SequenceUnavailable(ConcurrencyUnavailable):
    pass


class TraceAnomaly(MESError):
    kind = TRACE_ANOMALY
