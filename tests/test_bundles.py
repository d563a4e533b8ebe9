from datetime import date

import pytest

from harness_mes.errors import BundleNotFound, InvalidInput, NotFound
from harness_mes.models import BundleItem
from harness_mes.services.bundles import (
    add_to_bundle, create_set_bundle, find_item_in_bundle, format_set_info,
    get_available_lots_for_bundle, get_bundle_by_id, get_bundle_by_no, get_bundle_details,
    get_multi_product_bundles, get_products_in_bundle, get_set_bundle_stats, remove_from_bundle,
    ship_bundle, unbundle_all
)

DAY = date(2024, 12, 23)


@pytest.fixture
def lots(make_product, make_lot):
    first = make_product('00315452-001', name='Crimp A #1')
    second = make_product('00315452-002', name='Crimp A #2')
    return {
        'l1': make_lot('CA-241223-0001', 'CA', product=first, completed_qty=100),
        'l2': make_lot('CA-241223-0002', 'CA', product=first, completed_qty=150),
        'l3': make_lot('CA-241223-0003', 'CA', product=second, completed_qty=80),
        'bare': make_lot('CA-241223-0004', 'CA', completed_qty=10),
    }


def test_same_product_bundle(lots):
    bundle = create_set_bundle([
        {'lot_id': lots['l1'].id, 'quantity': 100},
        {'lot_id': lots['l2'].id, 'quantity': 150},
    ], date=DAY)

    assert bundle.bundle_type == 'SAME_PRODUCT'
    assert bundle.set_quantity == 2
    assert bundle.total_qty == 250
    assert bundle.bundle_no == 'BD-00315452-001-241223-001'
    assert bundle.status == 'CREATED'
    assert [item.product_code for item in bundle.items] == ['00315452-001', '00315452-001']
    assert get_bundle_by_no(bundle.bundle_no).id == bundle.id
    assert get_bundle_by_id(bundle.id).bundle_no == bundle.bundle_no


def test_multi_product_bundle_is_tagged(lots):
    bundle = create_set_bundle([
        {'lot_id': lots['l1'].id, 'quantity': 50},
        {'lot_id': lots['l3'].id, 'quantity': 80},
    ], date=DAY)

    assert bundle.bundle_type == 'MULTI_PRODUCT'
    assert 'SET' in bundle.bundle_no
    assert bundle.product_id == lots['l1'].product_id
    assert get_multi_product_bundles() == [bundle]


def test_bundle_numbers_increase(lots):
    first = create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 10}], date=DAY)
    second = create_set_bundle([{'lot_id': lots['l2'].id, 'quantity': 10}], date=DAY)
    assert first.bundle_no.endswith('-001')
    assert second.bundle_no.endswith('-002')


def test_empty_bundle_rejected(app):
    with pytest.raises(InvalidInput) as exc_info:
        create_set_bundle([])
    assert 'No items' in exc_info.value.message


def test_missing_lots_are_all_listed(lots):
    with pytest.raises(NotFound) as exc_info:
        create_set_bundle([
            {'lot_id': 9001, 'quantity': 1},
            {'lot_id': lots['l1'].id, 'quantity': 1},
            {'lot_id': 9002, 'quantity': 1},
        ])
    assert exc_info.value.details['missing'] == [9001, 9002]
    assert exc_info.value.kind == 'NOT_FOUND'


@pytest.mark.parametrize('items', [
    [{'lot_id': 'l1', 'quantity': 0}],
    [{'lot_id': 'l1', 'quantity': 101}],
    [{'lot_id': 'l1', 'quantity': 1}, {'lot_id': 'l1', 'quantity': 1}],
    [{'lot_id': 'bare', 'quantity': 1}],
])
def test_invalid_items_rejected(lots, items):
    resolved = [{'lot_id': lots[i['lot_id']].id, 'quantity': i['quantity']} for i in items]
    with pytest.raises(InvalidInput):
        create_set_bundle(resolved)
    assert get_set_bundle_stats()['total_set_bundles'] == 0


def test_bundle_details(lots):
    bundle = create_set_bundle([
        {'lot_id': lots['l1'].id, 'quantity': 100},
        {'lot_id': lots['l3'].id, 'quantity': 30},
        {'lot_id': lots['l2'].id, 'quantity': 20},
    ])
    details = get_bundle_details(bundle.bundle_no)

    assert details['unique_product_count'] == 2
    assert details['total_quantity'] == 150
    assert [i['lot_number'] for i in details['items']] == [
        'CA-241223-0001', 'CA-241223-0003', 'CA-241223-0002'
    ]
    assert details['items'][1]['product_name'] == 'Crimp A #2'
    assert get_bundle_details('BD-NONE-241223-001') is None


def test_find_item_in_bundle(lots):
    bundle = create_set_bundle([
        {'lot_id': lots['l1'].id, 'quantity': 100},
        {'lot_id': lots['l2'].id, 'quantity': 20},
    ])
    item = find_item_in_bundle(bundle.bundle_no, '00315452-001')
    assert item['lot_number'] == 'CA-241223-0001'
    assert find_item_in_bundle(bundle.bundle_no, '00315452-002') is None
    assert find_item_in_bundle('BD-NONE-241223-001', '00315452-001') is None


def test_stats(lots):
    create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 10}])
    create_set_bundle([{'lot_id': lots['l2'].id, 'quantity': 10}])
    create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 10},
                       {'lot_id': lots['l3'].id, 'quantity': 10}])

    assert get_set_bundle_stats() == {
        'total_set_bundles': 3, 'same_product_count': 2, 'multi_product_count': 1,
    }


def test_add_and_remove_keep_totals(lots):
    bundle = create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 100}])

    add_to_bundle(bundle.id, lots['l3'].id, 80)
    assert bundle.set_quantity == 2
    assert bundle.total_qty == 180
    assert bundle.bundle_type == 'MULTI_PRODUCT'
    assert format_set_info(bundle.id) == 'SET x 180 (2 products)'

    with pytest.raises(InvalidInput):
        add_to_bundle(bundle.id, lots['l3'].id, 1)

    item = BundleItem.query.filter_by(bundle_lot_id=bundle.id, production_lot_id=lots['l3'].id).one()
    remove_from_bundle(item.id)
    assert bundle.set_quantity == 1
    assert bundle.total_qty == 100
    assert bundle.bundle_type == 'SAME_PRODUCT'
    assert format_set_info(bundle.id) == '00315452-001 x 100 (1 lots)'
    assert get_products_in_bundle(bundle.id) == [{
        'product_code': '00315452-001', 'product_name': 'Crimp A #1', 'count': 1, 'total_qty': 100,
    }]


def test_ship_and_unbundle(lots):
    shipped = create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 100}])
    ship_bundle(shipped.id)
    assert shipped.status == 'SHIPPED'
    assert shipped.shipped_at is not None
    with pytest.raises(InvalidInput):
        add_to_bundle(shipped.id, lots['l2'].id, 10)
    with pytest.raises(InvalidInput):
        unbundle_all(shipped.id)

    open_bundle = create_set_bundle([{'lot_id': lots['l2'].id, 'quantity': 10},
                                     {'lot_id': lots['l3'].id, 'quantity': 10}])
    result = unbundle_all(open_bundle.id)
    assert result['released_lot_numbers'] == ['CA-241223-0002', 'CA-241223-0003']
    assert open_bundle.status == 'UNBUNDLED'
    assert open_bundle.items == []
    assert open_bundle.total_qty == 0


def test_unknown_bundle(app):
    with pytest.raises(BundleNotFound):
        add_to_bundle(404, 1, 1)
    with pytest.raises(NotFound):
        remove_from_bundle(404)
    with pytest.raises(BundleNotFound):
        format_set_info(404)


def test_set_bundles_from_different_processes_get_distinct_numbers(lots, make_product, make_lot):
    mc_first = make_product('MC00315452', name='Manual crimp')
    mc_second = make_product('MC00315453', name='Manual crimp B')
    m1 = make_lot('MC-241223-0001', 'MC', product=mc_first, completed_qty=40)
    m2 = make_lot('MC-241223-0002', 'MC', product=mc_second, completed_qty=40)

    ca_set = create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 10},
                                {'lot_id': lots['l3'].id, 'quantity': 10}], date=DAY)
    mc_set = create_set_bundle([{'lot_id': m1.id, 'quantity': 10},
                                {'lot_id': m2.id, 'quantity': 10}], date=DAY)

    assert ca_set.bundle_no == 'BD-SET-241223-001'
    assert mc_set.bundle_no == 'BD-SET-241223-002'
    assert get_set_bundle_stats()['multi_product_count'] == 2


def test_same_product_across_processes_gets_distinct_numbers(lots, make_lot):
    product = lots['l1'].product
    mc_lot = make_lot('MC-241223-0003', 'MC', product=product, completed_qty=20)

    first = create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 10}], date=DAY)
    second = create_set_bundle([{'lot_id': mc_lot.id, 'quantity': 10}], date=DAY)
    assert first.bundle_no != second.bundle_no


def test_lot_quantity_cannot_be_bundled_twice(lots):
    create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 60}], date=DAY)
    create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 40}], date=DAY)

    with pytest.raises(InvalidInput) as exc_info:
        create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 1}], date=DAY)
    assert exc_info.value.details['available'] == 0

    other = create_set_bundle([{'lot_id': lots['l2'].id, 'quantity': 10}], date=DAY)
    with pytest.raises(InvalidInput):
        add_to_bundle(other.id, lots['l1'].id, 1)


def test_unbundled_quantity_is_released(lots):
    bundle = create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 100}])
    unbundle_all(bundle.id)

    again = create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 100}])
    assert again.total_qty == 100


@pytest.mark.parametrize('status', ['CREATED', 'IN_PROGRESS'])
def test_unfinished_lot_cannot_be_bundled(lots, make_lot, status):
    lot = make_lot('CA-241223-0009', 'CA', product=lots['l1'].product, completed_qty=50, status=status)
    with pytest.raises(InvalidInput) as exc_info:
        create_set_bundle([{'lot_id': lot.id, 'quantity': 10}])
    assert exc_info.value.details['status'] == status


def test_available_lots_for_bundle(lots, make_lot):
    make_lot('CA-241223-0009', 'CA', product=lots['l1'].product, completed_qty=50, status='IN_PROGRESS')
    make_lot('MC-241223-0001', 'MC', product=lots['l1'].product, completed_qty=30)
    create_set_bundle([{'lot_id': lots['l1'].id, 'quantity': 100},
                       {'lot_id': lots['l2'].id, 'quantity': 50}])

    available = get_available_lots_for_bundle('ca')
    assert [(a['lot_number'], a['bundled_qty'], a['available_qty']) for a in available] == [
        ('CA-241223-0002', 50, 100),
        ('CA-241223-0003', 0, 80),
    ]
    assert [a['lot_number'] for a in get_available_lots_for_bundle()] == [
        'CA-241223-0002', 'CA-241223-0003', 'MC-241223-0001',
    ]


@pytest.mark.filterwarnings('error::sqlalchemy.exc.SAWarning')
def test_bundle_items_are_built_without_session_warnings(lots, make_lot):
    mc_lot = make_lot('MC-241223-0001', 'MC', product=lots['l3'].product, completed_qty=5)
    bundle = create_set_bundle([
        {'lot_id': lots['l1'].id, 'quantity': 10},
        {'lot_id': lots['l2'].id, 'quantity': 10},
        {'lot_id': lots['l3'].id, 'quantity': 10},
    ])
    add_to_bundle(bundle.id, mc_lot.id, 5)
    assert BundleItem.query.filter_by(bundle_lot_id=bundle.id).count() == 4
