from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from harness_mes import db
from harness_mes.errors import (
    ConcurrencyUnavailable, InvalidInput, LotNotFound, NotAdmissible, NotFound, ProductNotFound
)
from harness_mes.models import LotMaterial, Material, Product, ProductionLot
from harness_mes.services.crimp_gate import validate_sp_process_input
from harness_mes.services.processes import get_process
from harness_mes.services.sequence import get_next
from harness_mes.utils.barcode import generate_lot_number


def _commit(action):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error('Could not %s: %s', action, e)
        raise ConcurrencyUnavailable(f'Could not {action}') from e


def get_lot_by_number(lot_number):
    if not lot_number:
        return None
    return ProductionLot.query.filter_by(lot_number=lot_number.strip()).first()


def _get_lot_or_raise(lot_number):
    lot = get_lot_by_number(lot_number)
    if lot is None:
        raise LotNotFound(f'Lot not found: {lot_number}', lot_number=lot_number)
    return lot


def start_production_lot(process_code, product_code=None, planned_qty=0, parent_lot_number=None,
                         line_code=None, date=None):
    """
    Start a production lot

    The lot number is minted from the process's sequence counter. An SP lot
    must be fed from a parent that passes SP admission.

    Args:
        process_code: Process running the lot
        product_code: Product being made
        planned_qty: Planned quantity
        parent_lot_number: Lot consumed by this one
        line_code: Production line
        date: Production date (default: today)

    Returns:
        The new ProductionLot
    """
    process = get_process(process_code)
    if process is None:
        raise InvalidInput(f'Unknown process: {process_code}', process_code=process_code)
    if planned_qty is None or planned_qty < 0:
        raise InvalidInput('Planned quantity must not be negative', planned_qty=planned_qty)

    product = None
    if product_code:
        product = Product.query.filter_by(code=product_code).first()
        if product is None:
            raise ProductNotFound(f'Product not found: {product_code}', code=product_code)

    parent = None
    if parent_lot_number:
        parent = _get_lot_or_raise(parent_lot_number)
        if process.code == 'SP':
            admission = validate_sp_process_input(parent.lot_number)
            if not admission['is_valid']:
                raise NotAdmissible('; '.join(admission['errors']), lot_number=parent.lot_number,
                                    error_kinds=admission['error_kinds'])

    sequence = get_next(process.code, date)
    lot = ProductionLot(
        lot_number=generate_lot_number(process.code, product.code if product else None, planned_qty,
                                       sequence, date, padding=current_app.config['SEQUENCE_PADDING']),
        product_id=product.id if product else None,
        process_code=process.code,
        line_code=line_code,
        status='IN_PROGRESS',
        planned_qty=planned_qty,
        parent_lot_id=parent.id if parent else None,
        started_at=datetime.utcnow(),
    )
    db.session.add(lot)
    _commit('start production lot')

    current_app.logger.info('Started lot %s', lot.lot_number)
    return lot


def add_lot_material(lot_number, material_code, material_lot_no, quantity=0):
    """Record a material lot consumed by a production lot"""
    lot = _get_lot_or_raise(lot_number)
    if lot.is_completed:
        raise InvalidInput(f'Lot {lot.lot_number} is already completed')
    if not material_lot_no or not material_lot_no.strip():
        raise InvalidInput('Material lot number is required')

    material = Material.query.filter_by(code=material_code).first()
    if material is None:
        raise NotFound(f'Material not found: {material_code}', code=material_code)

    usage = LotMaterial(
        production_lot_id=lot.id,
        material_id=material.id,
        material_lot_no=material_lot_no.strip(),
        quantity=quantity,
    )
    db.session.add(usage)
    _commit('add lot material')
    return usage


def update_lot_quantity(lot_number, completed_qty, defect_qty=0):
    lot = _get_lot_or_raise(lot_number)
    if lot.is_completed:
        raise InvalidInput(f'Lot {lot.lot_number} is already completed')
    if completed_qty < 0 or defect_qty < 0:
        raise InvalidInput('Quantities must not be negative')

    lot.completed_qty = completed_qty
    lot.defect_qty = defect_qty
    _commit('update lot quantity')
    return lot


def complete_production_lot(lot_number, completed_qty=None):
    """Close a lot, optionally setting its final good quantity"""
    lot = _get_lot_or_raise(lot_number)
    if lot.is_completed:
        raise InvalidInput(f'Lot {lot.lot_number} is already completed')
    if completed_qty is not None:
        if completed_qty < 0:
            raise InvalidInput('Completed quantity must not be negative')
        lot.completed_qty = completed_qty

    lot.status = 'COMPLETED'
    lot.completed_at = datetime.utcnow()
    _commit('complete production lot')

    current_app.logger.info('Completed lot %s (%d pcs)', lot.lot_number, lot.completed_qty or 0)
    return lot
