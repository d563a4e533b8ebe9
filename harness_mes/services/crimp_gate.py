"""
Crimp inspection gate.

CA and MC lots must carry a passed crimp inspection before they are fed into
SP (kitting). The latest recorded verdict for a barcode wins. Nothing here
raises on an expected outcome; callers get a result dict with a message.
"""
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from harness_mes import db
from harness_mes.errors import ConcurrencyUnavailable, GATE_FAILED, NOT_ADMISSIBLE, NOT_FOUND
from harness_mes.models import Inspection, ProductionLot
from harness_mes.models.quality import INSPECTION_RESULTS
from harness_mes.utils.barcode import parse_barcode
from harness_mes.utils.processes import (
    INSPECTION_TARGET_PROCESSES, SP_ADMISSIBLE_PROCESSES, is_sp_admissible,
    requires_crimp_inspection
)

CRIMP = 'CRIMP'


def _normalize(barcode):
    return (barcode or '').strip().upper()


def _find_lot(barcode):
    if not barcode:
        return None
    return ProductionLot.query.filter(func.upper(ProductionLot.lot_number) == barcode).first()


def derive_process_code(barcode):
    """
    Process code of a barcode

    The barcode itself is authoritative; a stored lot with that number is
    the fallback for formats the parser does not know.

    Returns:
        Process code, or None if it cannot be determined
    """
    barcode = _normalize(barcode)
    parsed = parse_barcode(barcode)
    if parsed.is_valid and parsed.process_code:
        return parsed.process_code

    lot = _find_lot(barcode)
    if lot is not None:
        return lot.process_code
    return None


def get_applicable_inspection_types(process_code):
    """Inspection types that target a process (CA -> ['CRIMP'])"""
    if not process_code:
        return []
    process_code = process_code.upper()
    return [t for t, targets in INSPECTION_TARGET_PROCESSES.items() if process_code in targets]


def validate_inspection_target(inspection_type, barcode):
    """
    Check that a barcode may receive an inspection of the given type

    A crimp inspection on a barcode with no derivable process is treated as
    a CA inspection.

    Returns:
        {'is_valid', 'process_code', 'message'}
    """
    inspection_type = (inspection_type or '').upper()
    targets = INSPECTION_TARGET_PROCESSES.get(inspection_type)
    if targets is None:
        return {'is_valid': False, 'process_code': None,
                'message': f'Unknown inspection type: {inspection_type}'}

    process_code = derive_process_code(barcode)
    if process_code is None and inspection_type == CRIMP:
        process_code = 'CA'

    if process_code not in targets:
        return {
            'is_valid': False,
            'process_code': process_code,
            'message': (f'{barcode} ({process_code or "unknown process"}) is not a '
                        f'{inspection_type.lower()} inspection target; allowed: {", ".join(targets)}'),
        }
    return {'is_valid': True, 'process_code': process_code, 'message': 'OK'}


def record_crimp_inspection(barcode, result, defect_reason=None, inspector=None):
    """
    Append a crimp inspection verdict

    Args:
        barcode: Lot barcode (CA or MC)
        result: PASS or FAIL
        defect_reason: Required for FAIL
        inspector: Who inspected

    Returns:
        {'success', 'inspection_id', 'message'}
    """
    barcode = _normalize(barcode)
    if not barcode:
        return {'success': False, 'inspection_id': None, 'message': 'Barcode is required'}

    result = (result or '').strip().upper()
    if result not in INSPECTION_RESULTS:
        return {'success': False, 'inspection_id': None,
                'message': f'Result must be PASS or FAIL, got {result or "nothing"}'}

    target = validate_inspection_target(CRIMP, barcode)
    if not target['is_valid']:
        current_app.logger.warning('Crimp inspection refused: %s', target['message'])
        return {'success': False, 'inspection_id': None, 'message': target['message']}

    if result == 'FAIL' and not (defect_reason and defect_reason.strip()):
        return {'success': False, 'inspection_id': None,
                'message': 'A defect reason is required for a failed inspection'}

    lot = _find_lot(barcode)
    inspection = Inspection(
        inspection_type=CRIMP,
        lot_number=barcode,
        production_lot_id=lot.id if lot else None,
        process_code=target['process_code'],
        result=result,
        defect_reason=defect_reason.strip() if result == 'FAIL' else None,
        inspector=inspector,
    )

    try:
        db.session.add(inspection)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error('Could not record crimp inspection for %s: %s', barcode, e)
        raise ConcurrencyUnavailable(f'Could not record crimp inspection for {barcode}') from e

    current_app.logger.info('Crimp inspection %s for %s (#%d)', result, barcode, inspection.id)

    if result == 'PASS':
        message = f'Crimp inspection passed: {barcode}'
    else:
        message = f'Crimp inspection failed: {barcode} ({inspection.defect_reason})'
    return {'success': True, 'inspection_id': inspection.id, 'message': message}


def get_crimp_inspection_history(barcode):
    """Crimp inspections for a barcode, oldest first"""
    barcode = _normalize(barcode)
    if not barcode:
        return []
    return Inspection.query.filter_by(
        inspection_type=CRIMP,
        lot_number=barcode
    ).order_by(Inspection.id).all()


def check_crimp_inspection_passed(barcode):
    """
    Whether a barcode has cleared the crimp gate

    Returns:
        {'barcode', 'process_code', 'requires_crimp_inspection',
         'has_crimp_inspection', 'passed', 'inspections', 'message'}
    """
    barcode = _normalize(barcode)
    process_code = derive_process_code(barcode)
    requires = requires_crimp_inspection(process_code)
    history = get_crimp_inspection_history(barcode)

    if process_code is None:
        passed = True
        message = 'Cannot determine process; crimp inspection not required'
    elif not requires:
        passed = True
        message = f'{process_code} does not require crimp inspection'
    elif not history:
        passed = False
        message = 'Crimp inspection not performed'
    else:
        latest = history[-1]
        passed = latest.passed
        if passed:
            message = 'Crimp inspection passed'
        else:
            message = f'Crimp inspection failed: {latest.defect_reason}'

    return {
        'barcode': barcode,
        'process_code': process_code,
        'requires_crimp_inspection': requires,
        'has_crimp_inspection': bool(history),
        'passed': passed,
        'inspections': [i.to_dict() for i in history],
        'message': message,
    }


def validate_sp_process_input(barcode):
    """
    Admission check for one SP (kitting) input

    Returns:
        {'barcode', 'is_valid', 'process_code', 'requires_crimp_inspection',
         'crimp_inspection_passed', 'errors', 'error_kinds'}
    """
    check = check_crimp_inspection_passed(barcode)
    process_code = check['process_code']
    errors = []
    error_kinds = []

    if process_code is None:
        errors.append('Cannot determine process for barcode')
        error_kinds.append(NOT_FOUND)
    else:
        if not is_sp_admissible(process_code):
            errors.append(f'{process_code} is not admissible to SP; allowed: '
                          f'{", ".join(SP_ADMISSIBLE_PROCESSES)}')
            error_kinds.append(NOT_ADMISSIBLE)
        if check['requires_crimp_inspection'] and not check['passed']:
            errors.append(check['message'])
            error_kinds.append(GATE_FAILED)

    if errors:
        current_app.logger.warning('SP input %s refused: %s', check['barcode'], '; '.join(errors))

    return {
        'barcode': check['barcode'],
        'is_valid': not errors,
        'process_code': process_code,
        'requires_crimp_inspection': check['requires_crimp_inspection'],
        'crimp_inspection_passed': check['passed'],
        'errors': errors,
        'error_kinds': error_kinds,
    }


def validate_sp_process_inputs(barcodes):
    """Validate a batch of SP inputs; valid only if every input is"""
    results = [validate_sp_process_input(b) for b in barcodes]
    passed = sum(1 for r in results if r['is_valid'])
    crimp_required = [r for r in results if r['requires_crimp_inspection']]

    return {
        'is_valid': passed == len(results),
        'results': results,
        'summary': {
            'total': len(results),
            'passed': passed,
            'failed': len(results) - passed,
            'crimp_required': len(crimp_required),
            'crimp_passed': sum(1 for r in crimp_required if r['crimp_inspection_passed']),
        },
    }
