import pytest

from harness_mes import create_app, db
from harness_mes.models import Material, Product, ProductionLot


@pytest.fixture
def app(tmp_path):
    # File database so worker threads get their own connections
    app = create_app('testing', {
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{tmp_path / "test.db"}',
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def make_product(app):
    def _make(code, name=None, **fields):
        product = Product(code=code, name=name or f'Product {code}', **fields)
        db.session.add(product)
        db.session.commit()
        return product
    return _make


@pytest.fixture
def make_lot(app):
    def _make(lot_number, process_code='CA', product=None, parent=None, completed_qty=0,
              status='COMPLETED'):
        lot = ProductionLot(
            lot_number=lot_number,
            process_code=process_code,
            product_id=product.id if product else None,
            parent_lot_id=parent.id if parent else None,
            completed_qty=completed_qty,
            status=status,
        )
        db.session.add(lot)
        db.session.commit()
        return lot
    return _make


@pytest.fixture
def make_material(app):
    def _make(code, name=None):
        material = Material(code=code, name=name or f'Material {code}')
        db.session.add(material)
        db.session.commit()
        return material
    return _make
