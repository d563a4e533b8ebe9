"""
Set bundle engine.

A bundle packs completed lot quantities for shipment. It is SAME_PRODUCT
when every lot shares one product and MULTI_PRODUCT otherwise; multi-product
bundle numbers carry SET in place of a product code.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from harness_mes import db
from harness_mes.errors import BundleNotFound, ConcurrencyUnavailable, InvalidInput, LotNotFound, NotFound
from harness_mes.models import BundleItem, BundleLot, ProductionLot
from harness_mes.services.sequence import get_next_bundle
from harness_mes.utils.barcode import BUNDLE_PROCESS_CODE, generate_bundle_number

SAME_PRODUCT = 'SAME_PRODUCT'
MULTI_PRODUCT = 'MULTI_PRODUCT'
SET_TOKEN = 'SET'

# Bundles in these states hold their lot quantities
HOLDING_STATUSES = ('CREATED', 'SHIPPED')


def _commit(action):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error('Bundle %s failed: %s', action, e)
        raise ConcurrencyUnavailable(f'Could not {action}') from e


def _bundle_type(product_ids):
    return SAME_PRODUCT if len(set(product_ids)) <= 1 else MULTI_PRODUCT


def _refresh_totals(bundle):
    """Keep set_quantity, total_qty and bundle_type in step with the items"""
    bundle.set_quantity = len(bundle.items)
    bundle.total_qty = sum(item.quantity for item in bundle.items)
    bundle.bundle_type = _bundle_type(item.production_lot.product_id for item in bundle.items)


def _bundled_quantities(lot_ids):
    """lot id -> quantity already held by created or shipped bundles"""
    if not lot_ids:
        return {}
    rows = (
        db.session.query(BundleItem.production_lot_id, func.sum(BundleItem.quantity))
        .join(BundleLot, BundleItem.bundle_lot_id == BundleLot.id)
        .filter(BundleItem.production_lot_id.in_(lot_ids),
                BundleLot.status.in_(HOLDING_STATUSES))
        .group_by(BundleItem.production_lot_id)
        .all()
    )
    return {lot_id: int(total or 0) for lot_id, total in rows}


def _check_quantity(lot, quantity, bundled=0):
    if lot.product_id is None:
        raise InvalidInput(f'Lot {lot.lot_number} has no product', lot_id=lot.id)
    if not lot.is_completed:
        raise InvalidInput(f'Lot {lot.lot_number} is {lot.status}, only completed lots can be bundled',
                           lot_id=lot.id, status=lot.status)
    if not isinstance(quantity, int) or quantity <= 0:
        raise InvalidInput(f'Quantity for lot {lot.lot_number} must be a positive integer',
                           lot_id=lot.id, quantity=quantity)
    available = (lot.completed_qty or 0) - bundled
    if quantity > available:
        raise InvalidInput(
            f'Quantity {quantity} exceeds available quantity {max(available, 0)} of lot {lot.lot_number}',
            lot_id=lot.id, quantity=quantity, available=max(available, 0)
        )


def _new_item(lot, quantity):
    return BundleItem(
        production_lot=lot,
        quantity=quantity,
        product_code=lot.product.code,
        process_code=lot.process_code,
    )


def _get_open_bundle(bundle_id):
    bundle = db.session.get(BundleLot, bundle_id)
    if bundle is None:
        raise BundleNotFound(f'Bundle not found: {bundle_id}', bundle_id=bundle_id)
    if bundle.status != 'CREATED':
        raise InvalidInput(f'Bundle {bundle.bundle_no} is {bundle.status}', bundle_id=bundle_id)
    return bundle


def get_available_lots_for_bundle(process_code=None):
    """
    Completed lots that still have quantity left to bundle

    Args:
        process_code: Only lots of this process (default: all)

    Returns:
        [{'lot_id', 'lot_number', 'process_code', 'product_code', 'completed_qty',
          'bundled_qty', 'available_qty'}, ...] ordered by lot id
    """
    query = ProductionLot.query.filter(
        ProductionLot.status == 'COMPLETED',
        ProductionLot.product_id.isnot(None),
    )
    if process_code:
        query = query.filter(ProductionLot.process_code == process_code.upper())
    lots = query.order_by(ProductionLot.id).all()

    bundled = _bundled_quantities([lot.id for lot in lots])
    available = []
    for lot in lots:
        held = bundled.get(lot.id, 0)
        left = (lot.completed_qty or 0) - held
        if left <= 0:
            continue
        available.append({
            'lot_id': lot.id,
            'lot_number': lot.lot_number,
            'process_code': lot.process_code,
            'product_code': lot.product.code,
            'completed_qty': lot.completed_qty or 0,
            'bundled_qty': held,
            'available_qty': left,
        })
    return available


def create_set_bundle(items, date=None):
    """
    Bundle completed lots

    Args:
        items: [{'lot_id': int, 'quantity': int}, ...]
        date: Bundle date (default: today)

    Returns:
        The new BundleLot
    """
    if not items:
        raise InvalidInput('No items to bundle')

    lot_ids = [item.get('lot_id') for item in items]
    if len(set(lot_ids)) != len(lot_ids):
        raise InvalidInput('A lot can only appear once in a bundle', lot_ids=lot_ids)

    lots = {lot.id: lot for lot in ProductionLot.query.filter(ProductionLot.id.in_(lot_ids)).all()}
    missing = [lot_id for lot_id in lot_ids if lot_id not in lots]
    if missing:
        raise NotFound(f'Some lots not found: {", ".join(str(m) for m in missing)}', missing=missing)

    ordered = [lots[lot_id] for lot_id in lot_ids]
    bundled = _bundled_quantities(lot_ids)
    for lot, item in zip(ordered, items):
        _check_quantity(lot, item.get('quantity'), bundled.get(lot.id, 0))

    bundle_type = _bundle_type(lot.product_id for lot in ordered)
    first = ordered[0]
    token = first.product.code if bundle_type == SAME_PRODUCT else SET_TOKEN

    # Mint first: the counter commits its own transaction.
    # One counter for every bundle; the number carries no process.
    sequence = get_next_bundle(BUNDLE_PROCESS_CODE, date)
    bundle = BundleLot(
        bundle_no=generate_bundle_number(token, sequence, date,
                                         padding=current_app.config['BUNDLE_SEQUENCE_PADDING']),
        product_id=first.product_id,
        bundle_type=bundle_type,
        set_quantity=len(items),
        total_qty=sum(item['quantity'] for item in items),
        status='CREATED',
    )
    db.session.add(bundle)
    with db.session.no_autoflush:
        for lot, item in zip(ordered, items):
            bundle.items.append(_new_item(lot, item['quantity']))
    _commit('create bundle')

    current_app.logger.info('Created %s bundle %s with %d lots (%d pcs)',
                            bundle_type, bundle.bundle_no, bundle.set_quantity, bundle.total_qty)
    return bundle


def add_to_bundle(bundle_id, lot_id, quantity):
    """Add a lot to an open bundle"""
    bundle = _get_open_bundle(bundle_id)
    lot = db.session.get(ProductionLot, lot_id)
    if lot is None:
        raise LotNotFound(f'Lot not found: {lot_id}', lot_id=lot_id)
    if any(item.production_lot_id == lot.id for item in bundle.items):
        raise InvalidInput(f'Lot {lot.lot_number} is already in bundle {bundle.bundle_no}')
    _check_quantity(lot, quantity, _bundled_quantities([lot.id]).get(lot.id, 0))

    with db.session.no_autoflush:
        bundle.items.append(_new_item(lot, quantity))
        _refresh_totals(bundle)
    _commit('add to bundle')

    current_app.logger.info('Added lot %s to bundle %s', lot.lot_number, bundle.bundle_no)
    return bundle


def remove_from_bundle(item_id):
    """Take one item out of an open bundle"""
    item = db.session.get(BundleItem, item_id)
    if item is None:
        raise NotFound(f'Bundle item not found: {item_id}', item_id=item_id)
    bundle = _get_open_bundle(item.bundle_lot_id)

    bundle.items.remove(item)
    _refresh_totals(bundle)
    _commit('remove from bundle')

    current_app.logger.info('Removed item %s from bundle %s', item_id, bundle.bundle_no)
    return bundle


def ship_bundle(bundle_id):
    bundle = _get_open_bundle(bundle_id)
    if not bundle.items:
        raise InvalidInput(f'Bundle {bundle.bundle_no} is empty')

    bundle.status = 'SHIPPED'
    bundle.shipped_at = datetime.utcnow()
    _commit('ship bundle')

    current_app.logger.info('Shipped bundle %s', bundle.bundle_no)
    return bundle


def unbundle_all(bundle_id):
    """
    Release every lot in an unshipped bundle

    Returns:
        {'bundle_no', 'released_lot_numbers'}
    """
    bundle = _get_open_bundle(bundle_id)
    released = [item.production_lot.lot_number for item in bundle.items]

    bundle.items.clear()
    bundle.status = 'UNBUNDLED'
    bundle.set_quantity = 0
    bundle.total_qty = 0
    _commit('unbundle')

    current_app.logger.info('Unbundled %s (%d lots released)', bundle.bundle_no, len(released))
    return {'bundle_no': bundle.bundle_no, 'released_lot_numbers': released}


# Queries

def get_bundle_by_id(bundle_id):
    return db.session.get(BundleLot, bundle_id)


def get_bundle_by_no(bundle_no):
    return BundleLot.query.filter_by(bundle_no=bundle_no).first()


def _item_views(bundle):
    views = []
    for item in bundle.items:
        lot = item.production_lot
        product = lot.product
        views.append({
            'item_id': item.id,
            'lot_id': lot.id,
            'lot_number': lot.lot_number,
            'process_code': item.process_code,
            'product_code': product.code if product else item.product_code,
            'product_name': product.name if product else None,
            'quantity': item.quantity,
        })
    return views


def get_bundle_details(bundle_no):
    """Bundle with items enriched by lot and product; None if not found"""
    bundle = get_bundle_by_no(bundle_no)
    if bundle is None:
        return None

    items = _item_views(bundle)
    return {
        'id': bundle.id,
        'bundle_no': bundle.bundle_no,
        'bundle_type': bundle.bundle_type,
        'status': bundle.status,
        'set_quantity': bundle.set_quantity,
        'items': items,
        'unique_product_count': len({item['product_code'] for item in items}),
        'total_quantity': sum(item['quantity'] for item in items),
    }


def find_item_in_bundle(bundle_no, product_code):
    """First item (in stored order) of a product in a bundle, or None"""
    details = get_bundle_details(bundle_no)
    if details is None:
        return None
    for item in details['items']:
        if item['product_code'] == product_code:
            return item
    return None


def get_products_in_bundle(bundle_id):
    """Per-product item count and quantity, in first-seen order"""
    bundle = get_bundle_by_id(bundle_id)
    if bundle is None:
        raise BundleNotFound(f'Bundle not found: {bundle_id}', bundle_id=bundle_id)

    products = {}
    for item in _item_views(bundle):
        entry = products.setdefault(item['product_code'], {
            'product_code': item['product_code'],
            'product_name': item['product_name'],
            'count': 0,
            'total_qty': 0,
        })
        entry['count'] += 1
        entry['total_qty'] += item['quantity']
    return list(products.values())


def format_set_info(bundle_id):
    """00315452-001 x 600 (6 lots) or SET x 100 (4 products)"""
    bundle = get_bundle_by_id(bundle_id)
    if bundle is None:
        raise BundleNotFound(f'Bundle not found: {bundle_id}', bundle_id=bundle_id)

    product_count = len(get_products_in_bundle(bundle_id))
    if bundle.bundle_type == MULTI_PRODUCT or product_count > 1:
        return f'SET x {bundle.total_qty} ({product_count} products)'
    code = bundle.product.code if bundle.product else '-'
    return f'{code} x {bundle.total_qty} ({bundle.set_quantity} lots)'


def get_multi_product_bundles():
    return BundleLot.query.filter_by(bundle_type=MULTI_PRODUCT).order_by(BundleLot.id).all()


def get_set_bundle_stats():
    counts = dict(
        db.session.query(BundleLot.bundle_type, func.count(BundleLot.id))
        .group_by(BundleLot.bundle_type).all()
    )
    return {
        'total_set_bundles': sum(counts.values()),
        'same_product_count': counts.get(SAME_PRODUCT, 0),
        'multi_product_count': counts.get(MULTI_PRODUCT, 0),
    }
