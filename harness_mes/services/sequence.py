"""
Collision-free sequence numbers per (prefix, day).

The counter row is the only state; every issue is a single transaction of
UPDATE (takes the row write lock), INSERT on first use, SELECT, COMMIT.
Nothing is cached between calls, so any number of workers may share a
store. The session is committed on success: mint numbers before adding
other pending objects to it.
"""
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from harness_mes import db
from harness_mes.errors import InvalidInput, SequenceUnavailable
from harness_mes.models import SequenceCounter
from harness_mes.utils.barcode import get_date_string

# Concurrent first-use inserts for one key; the loser retries the update
INSERT_RETRIES = 3


@dataclass
class SequenceResult:
    prefix: str
    date_key: str
    sequence: int
    formatted: str


def _key_filter(prefix, date_key):
    return (SequenceCounter.prefix == prefix, SequenceCounter.date_key == date_key)


def _increment(prefix, date_key):
    """Increment inside the current transaction and return the new value"""
    for _ in range(INSERT_RETRIES):
        result = db.session.execute(
            update(SequenceCounter)
            .where(*_key_filter(prefix, date_key))
            .values(last_number=SequenceCounter.last_number + 1, updated_at=datetime.utcnow())
        )
        if result.rowcount:
            return db.session.execute(
                select(SequenceCounter.last_number).where(*_key_filter(prefix, date_key))
            ).scalar_one()

        db.session.add(SequenceCounter(prefix=prefix, date_key=date_key, last_number=1))
        try:
            db.session.flush()
        except IntegrityError:
            # Another worker created the row first
            db.session.rollback()
            continue
        return 1

    raise SequenceUnavailable(
        f'Could not create sequence counter for {prefix}/{date_key}',
        prefix=prefix, date_key=date_key
    )


def get_next(prefix, date=None, max_value=None):
    """
    Issue the next number for a prefix

    Args:
        prefix: Counter name, usually a process code
        date: Period date (default: today)
        max_value: Largest number the caller can format (default: MAX_SEQUENCE)

    Returns:
        The issued number, starting at 1 for each new day
    """
    if not prefix or not prefix.strip():
        raise InvalidInput('Sequence prefix is required')

    prefix = prefix.strip().upper()
    date_key = get_date_string(date)
    if max_value is None:
        max_value = current_app.config['MAX_SEQUENCE']

    try:
        value = _increment(prefix, date_key)
        if value > max_value:
            db.session.rollback()
            raise InvalidInput(
                f'Sequence {prefix}/{date_key} exhausted (max {max_value})',
                prefix=prefix, date_key=date_key
            )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error('Sequence %s/%s unavailable: %s', prefix, date_key, e)
        raise SequenceUnavailable(
            f'Sequence {prefix}/{date_key} unavailable',
            prefix=prefix, date_key=date_key
        ) from e

    current_app.logger.debug('Issued sequence %s/%s #%d', prefix, date_key, value)
    return value


def get_next_bundle(prefix, date=None):
    """Bundle numbers run on their own counter, kept apart from lot numbers"""
    if not prefix or not prefix.strip():
        raise InvalidInput('Prefix is required for bundle numbering')
    padding = current_app.config['BUNDLE_SEQUENCE_PADDING']
    return get_next(f'{prefix.strip().upper()}_BUNDLE', date, max_value=10 ** padding - 1)


def get_next_sequence(prefix, date=None, padding=None):
    """Issue a number together with its zero-padded form"""
    if padding is None:
        padding = current_app.config['SEQUENCE_PADDING']
    sequence = get_next(prefix, date, max_value=10 ** padding - 1)
    return SequenceResult(
        prefix=prefix.strip().upper(),
        date_key=get_date_string(date),
        sequence=sequence,
        formatted=str(sequence).zfill(padding),
    )


def get_current_sequence(prefix, date=None):
    """Last issued number without issuing one; 0 if none yet"""
    value = db.session.execute(
        select(SequenceCounter.last_number).where(
            *_key_filter(prefix.strip().upper(), get_date_string(date))
        )
    ).scalar_one_or_none()
    return value or 0


def reset_sequence(prefix, date=None):
    """Drop the counter for a prefix and day. Returns True if one existed."""
    prefix = prefix.strip().upper()
    date_key = get_date_string(date)
    try:
        result = db.session.execute(delete(SequenceCounter).where(*_key_filter(prefix, date_key)))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise SequenceUnavailable(f'Could not reset sequence {prefix}/{date_key}') from e

    current_app.logger.info('Reset sequence %s/%s', prefix, date_key)
    return result.rowcount > 0


def cleanup_sequences(before_date, prefix=None):
    """
    Delete counters for days before a date

    Args:
        before_date: Counters strictly older than this day are removed
        prefix: Limit to one prefix

    Returns:
        Number of counters deleted
    """
    stmt = delete(SequenceCounter).where(SequenceCounter.date_key < get_date_string(before_date))
    if prefix:
        stmt = stmt.where(SequenceCounter.prefix == prefix.strip().upper())

    try:
        result = db.session.execute(stmt)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise SequenceUnavailable('Could not clean up sequences') from e

    current_app.logger.info('Removed %d old sequence counters', result.rowcount)
    return result.rowcount


def get_all_sequences(date=None):
    """Counters for one day (or all days), ordered by prefix"""
    query = SequenceCounter.query
    if date is not None:
        query = query.filter_by(date_key=get_date_string(date))
    return query.order_by(SequenceCounter.date_key, SequenceCounter.prefix).all()
