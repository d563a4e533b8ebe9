import pytest
from sqlalchemy.exc import OperationalError

from harness_mes import db
from harness_mes.errors import ConcurrencyUnavailable, InvalidInput, NotFound, ProductNotFound
from harness_mes.models import Product
from harness_mes.services.hierarchy import (
    count_semi_products, create_product_hierarchy, get_crimp_products_by_finished,
    get_semi_products_by_finished
)
from harness_mes.utils.codes import extract_finished_code

FINISHED = '00315452'


@pytest.fixture
def finished(make_product):
    return make_product(FINISHED, name='Door harness', spec='LH')


def test_crimp_only(finished):
    hierarchy = create_product_hierarchy(FINISHED, 3, ['CA'])

    assert hierarchy.finished.code == FINISHED
    assert [p.code for p in hierarchy.crimp_products] == [
        '00315452-001', '00315452-002', '00315452-003'
    ]
    assert hierarchy.semi_products.ms == []
    assert hierarchy.semi_products.mc is None
    assert hierarchy.semi_products.sb is None
    assert hierarchy.semi_products.hs is None

    for product in hierarchy.crimp_products:
        assert product.type == 'SEMI_CA'
        assert product.process_code == 'CA'
        assert product.parent_code == FINISHED
        assert extract_finished_code(product.code) == FINISHED
    assert [p.circuit_no for p in hierarchy.crimp_products] == [1, 2, 3]


def test_full_hierarchy(finished):
    hierarchy = create_product_hierarchy(FINISHED, 2, ['ca', 'MS', 'MC', 'SB', 'HS'])

    ms = hierarchy.semi_products.ms
    assert [p.code for p in ms] == ['MS00315452-001', 'MS00315452-002']
    assert [p.crimp_code for p in ms] == ['00315452-001', '00315452-002']
    assert [p.circuit_no for p in ms] == [1, 2]
    assert hierarchy.semi_products.mc.code == 'MC00315452'
    assert hierarchy.semi_products.sb.code == 'SB00315452'
    assert hierarchy.semi_products.hs.code == 'HS00315452'
    assert hierarchy.semi_products.mc.type == 'SEMI_MC'

    for product in hierarchy.all_products():
        assert product.parent_code == FINISHED
        assert product.root_code == FINISHED
    assert count_semi_products(FINISHED) == {
        'total': 7,
        'by_type': {'SEMI_CA': 2, 'SEMI_MS': 2, 'SEMI_MC': 1, 'SEMI_SB': 1, 'SEMI_HS': 1},
    }


def test_existing_products_are_returned_not_duplicated(finished):
    first = create_product_hierarchy(FINISHED, 2, ['CA', 'MC'])
    second = create_product_hierarchy(FINISHED, 2, ['CA', 'MC'])

    assert [p.id for p in first.crimp_products] == [p.id for p in second.crimp_products]
    assert first.semi_products.mc.id == second.semi_products.mc.id
    assert Product.query.count() == 4


def test_ms_without_ca_uses_stored_crimp_products(finished):
    create_product_hierarchy(FINISHED, 2, ['CA'])
    hierarchy = create_product_hierarchy(FINISHED, 2, ['MS'])

    assert hierarchy.crimp_products == []
    assert [p.code for p in hierarchy.semi_products.ms] == ['MS00315452-001', 'MS00315452-002']


def test_unknown_processes_are_ignored(finished):
    hierarchy = create_product_hierarchy(FINISHED, 1, ['CA', 'XX', 'PA'])
    assert len(hierarchy.crimp_products) == 1
    assert len(get_semi_products_by_finished(FINISHED)) == 1


def test_zero_circuits(finished):
    hierarchy = create_product_hierarchy(FINISHED, 0, ['CA', 'MC'])
    assert hierarchy.crimp_products == []
    assert hierarchy.semi_products.mc is not None


def test_missing_finished_product(app):
    with pytest.raises(ProductNotFound) as exc_info:
        create_product_hierarchy('99999999', 3, ['CA'])
    assert isinstance(exc_info.value, NotFound)
    assert exc_info.value.to_dict() == {
        'kind': 'NOT_FOUND',
        'message': 'Finished product not found: 99999999',
        'code': '99999999',
    }


@pytest.mark.parametrize('code, count', [('', 3), ('   ', 3), (FINISHED, -1), (FINISHED, 1000)])
def test_invalid_input(finished, code, count):
    with pytest.raises(InvalidInput):
        create_product_hierarchy(code, count, ['CA'])


def test_semi_product_is_not_a_root(finished):
    create_product_hierarchy(FINISHED, 1, ['CA'])
    with pytest.raises(InvalidInput):
        create_product_hierarchy('00315452-001', 1, ['CA'])


def test_store_failure_rolls_back_everything(finished, monkeypatch):
    def broken_commit():
        raise OperationalError('INSERT', {}, Exception('disk I/O error'))

    monkeypatch.setattr(db.session, 'commit', broken_commit)
    with pytest.raises(ConcurrencyUnavailable):
        create_product_hierarchy(FINISHED, 3, ['CA', 'MS', 'MC'])
    monkeypatch.undo()

    assert get_crimp_products_by_finished(FINISHED) == []
    assert Product.query.count() == 1
