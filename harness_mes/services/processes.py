from flask import current_app
from harness_mes import db
from harness_mes.models import Process
from harness_mes.utils.processes import PROCESS_SEED_DATA


def seed_processes():
    """
    Insert any missing process definitions

    Existing rows are left alone so edits made in the database survive restarts.

    Returns:
        Number of processes inserted
    """
    existing = {code for (code,) in db.session.query(Process.code).all()}
    added = 0
    for data in PROCESS_SEED_DATA:
        if data['code'] in existing:
            continue
        db.session.add(Process(**data))
        added += 1

    if added:
        db.session.commit()
        current_app.logger.info('Seeded %d process definitions', added)
    return added


def get_all_processes(active_only=True):
    """Processes in flow order"""
    query = Process.query
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Process.seq).all()


def get_process(code):
    if not code:
        return None
    return Process.query.filter_by(code=code.upper()).first()


def get_next_process(code):
    """Next non-inspection process in flow order, or None at the end"""
    current = get_process(code)
    if current is None:
        return None
    return Process.query.filter(
        Process.seq > current.seq,
        Process.is_inspection.is_(False),
        Process.is_active.is_(True)
    ).order_by(Process.seq).first()
