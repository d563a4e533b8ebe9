"""
Product hierarchy builder.

A finished product fans out into per-circuit crimp products (CA), one MS
product per crimp product, and single MC/SB/HS products. Every generated code
strips back to the finished code.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from harness_mes import db
from harness_mes.errors import ConcurrencyUnavailable, InvalidInput, ProductNotFound
from harness_mes.models import Product
from harness_mes.utils.codes import (
    MAX_CIRCUIT, ProductType, generate_crimp_code, generate_ms_code, generate_semi_code,
    is_valid_product_code, matches_code_format
)
from harness_mes.utils.processes import get_process_name

SINGLE_SEMI_TYPES = {
    'MC': ProductType.SEMI_MC,
    'SB': ProductType.SEMI_SB,
    'HS': ProductType.SEMI_HS,
}


@dataclass
class SemiProducts:
    ms: List[Product] = field(default_factory=list)
    mc: Optional[Product] = None
    sb: Optional[Product] = None
    hs: Optional[Product] = None


@dataclass
class ProductHierarchy:
    finished: Product
    crimp_products: List[Product] = field(default_factory=list)
    semi_products: SemiProducts = field(default_factory=SemiProducts)

    def all_products(self):
        """Every generated product, finished root excluded"""
        products = list(self.crimp_products) + list(self.semi_products.ms)
        for single in (self.semi_products.mc, self.semi_products.sb, self.semi_products.hs):
            if single is not None:
                products.append(single)
        return products

    def to_dict(self):
        semi = self.semi_products
        return {
            'finished': self.finished.to_dict(),
            'crimp_products': [p.to_dict() for p in self.crimp_products],
            'semi_products': {
                'ms': [p.to_dict() for p in semi.ms],
                'mc': semi.mc.to_dict() if semi.mc else None,
                'sb': semi.sb.to_dict() if semi.sb else None,
                'hs': semi.hs.to_dict() if semi.hs else None,
            },
        }


def _get_or_add(code, **fields):
    """Existing product by code, or a new pending one"""
    product = Product.query.filter_by(code=code).first()
    if product is None:
        product = Product(code=code, **fields)
        db.session.add(product)
    return product


def _crimp_products(finished, circuit_count, bundle_qty):
    products = []
    for circuit_no in range(1, circuit_count + 1):
        products.append(_get_or_add(
            generate_crimp_code(finished.code, circuit_no),
            name=f'Crimp {finished.name} #{circuit_no}',
            spec=finished.spec,
            type=ProductType.SEMI_CA.value,
            process_code='CA',
            parent_code=finished.code,
            circuit_no=circuit_no,
            bundle_qty=bundle_qty,
        ))
    return products


def _ms_products(finished, crimp_products, bundle_qty):
    products = []
    for crimp in crimp_products:
        products.append(_get_or_add(
            generate_ms_code(crimp.code),
            name=f'MS {crimp.name}',
            spec=crimp.spec,
            type=ProductType.SEMI_MS.value,
            process_code='MS',
            parent_code=finished.code,
            crimp_code=crimp.code,
            circuit_no=crimp.circuit_no,
            bundle_qty=bundle_qty,
        ))
    return products


def _single_semi_product(process_code, finished, bundle_qty):
    return _get_or_add(
        generate_semi_code(process_code, finished.code),
        name=f'{get_process_name(process_code)} {finished.name}',
        spec=finished.spec,
        type=SINGLE_SEMI_TYPES[process_code].value,
        process_code=process_code,
        parent_code=finished.code,
        bundle_qty=bundle_qty,
    )


def create_product_hierarchy(finished_code, circuit_count, requested_processes=('CA',), bundle_qty=None):
    """
    Create (or return) every semi-product of a finished product

    Args:
        finished_code: Code of an existing FINISHED product
        circuit_count: Number of circuits, 0-999
        requested_processes: Process codes to build for (CA, MS, MC, SB, HS)
        bundle_qty: Bundle quantity for new products (default: DEFAULT_BUNDLE_QTY)

    Returns:
        ProductHierarchy
    """
    if not is_valid_product_code(finished_code):
        raise InvalidInput('Finished product code is required')
    finished_code = finished_code.strip()

    if not isinstance(circuit_count, int) or not 0 <= circuit_count <= MAX_CIRCUIT:
        raise InvalidInput(f'Circuit count must be between 0 and {MAX_CIRCUIT}',
                           circuit_count=circuit_count)

    finished = Product.query.filter_by(code=finished_code).first()
    if finished is None:
        raise ProductNotFound(f'Finished product not found: {finished_code}', code=finished_code)
    if not finished.is_finished:
        raise InvalidInput(f'Not a finished product: {finished_code}', code=finished_code)
    if not matches_code_format(finished_code):
        current_app.logger.warning('Finished product %s does not look like a finished code', finished_code)

    if bundle_qty is None:
        bundle_qty = current_app.config['DEFAULT_BUNDLE_QTY']

    requested = {p.strip().upper() for p in requested_processes if p}
    hierarchy = ProductHierarchy(finished=finished)

    try:
        # No autoflush: pending products must not be flushed by the lookups
        with db.session.no_autoflush:
            if 'CA' in requested:
                hierarchy.crimp_products = _crimp_products(finished, circuit_count, bundle_qty)

            if 'MS' in requested:
                crimps = hierarchy.crimp_products
                if 'CA' not in requested:
                    crimps = get_crimp_products_by_finished(finished.code)
                hierarchy.semi_products.ms = _ms_products(finished, crimps, bundle_qty)

            for process_code in ('MC', 'SB', 'HS'):
                if process_code in requested:
                    setattr(hierarchy.semi_products, process_code.lower(),
                            _single_semi_product(process_code, finished, bundle_qty))

        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error('Hierarchy for %s rolled back: %s', finished_code, e)
        raise ConcurrencyUnavailable(f'Could not create hierarchy for {finished_code}',
                                     code=finished_code) from e

    current_app.logger.info(
        'Hierarchy for %s: %d crimp, %d MS, processes %s',
        finished_code, len(hierarchy.crimp_products), len(hierarchy.semi_products.ms),
        ','.join(sorted(requested)) or '-'
    )
    return hierarchy


def get_crimp_products_by_finished(finished_code):
    """Crimp products of a finished product in circuit order"""
    return Product.query.filter_by(
        type=ProductType.SEMI_CA.value,
        parent_code=finished_code,
        is_active=True
    ).order_by(Product.circuit_no).all()


def get_semi_products_by_finished(finished_code):
    return Product.query.filter_by(
        parent_code=finished_code,
        is_active=True
    ).order_by(Product.type, Product.circuit_no).all()


def count_semi_products(finished_code):
    """Returns {'total': n, 'by_type': {type: n}}"""
    by_type = {}
    for product in get_semi_products_by_finished(finished_code):
        by_type[product.type] = by_type.get(product.type, 0) + 1
    return {'total': sum(by_type.values()), 'by_type': by_type}
