"""
Lot genealogy tracer.

Backward: production lot -> the material lots it consumed and the lot it was
made from, recursively. Forward: lot -> lots made from it and the bundles it
was packed into. Links are read one level at a time with a single IN query
per relation, and the tree is assembled in memory for each request.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy.orm import joinedload

from harness_mes import db
from harness_mes.errors import InvalidInput, TraceAnomaly
from harness_mes.models import BundleItem, BundleLot, LotMaterial, ProductionLot

FORWARD = 'FORWARD'
BACKWARD = 'BACKWARD'
BOTH = 'BOTH'

PRODUCTION_LOT = 'PRODUCTION_LOT'
MATERIAL_LOT = 'MATERIAL_LOT'
BUNDLE_LOT = 'BUNDLE_LOT'

NOT_FOUND = 'NOT_FOUND'


@dataclass
class TraceNode:
    id: int
    lot_number: str
    process_code: str
    type: str
    quantity: float = 0
    status: str = ''
    date: Optional[datetime] = None
    depth: int = 0
    product_code: Optional[str] = None
    product_name: Optional[str] = None
    material_code: Optional[str] = None
    material_name: Optional[str] = None
    children: List['TraceNode'] = field(default_factory=list)

    def to_dict(self):
        return {
            'id': self.id,
            'lot_number': self.lot_number,
            'process_code': self.process_code,
            'type': self.type,
            'product_code': self.product_code,
            'product_name': self.product_name,
            'material_code': self.material_code,
            'material_name': self.material_name,
            'quantity': self.quantity,
            'status': self.status,
            'date': self.date.isoformat() if self.date else None,
            'depth': self.depth,
            'children': [child.to_dict() for child in self.children],
        }


@dataclass
class TraceResult:
    root_node: TraceNode
    total_nodes: int
    max_depth: int
    direction: str
    found: bool
    path: List[str] = field(default_factory=list)
    traced_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self):
        return {
            'root_node': self.root_node.to_dict(),
            'total_nodes': self.total_nodes,
            'max_depth': self.max_depth,
            'direction': self.direction,
            'found': self.found,
            'path': list(self.path),
            'traced_at': self.traced_at.isoformat(),
        }


# Node builders

def _lot_node(lot, depth):
    product = lot.product
    return TraceNode(
        id=lot.id,
        lot_number=lot.lot_number,
        process_code=lot.process_code,
        type=PRODUCTION_LOT,
        product_code=product.code if product else None,
        product_name=product.name if product else None,
        quantity=lot.completed_qty or 0,
        status=lot.status,
        date=lot.started_at or lot.created_at,
        depth=depth,
    )


def _material_node(lot_material, depth):
    material = lot_material.material
    return TraceNode(
        id=lot_material.id,
        lot_number=lot_material.material_lot_no,
        process_code='MATERIAL',
        type=MATERIAL_LOT,
        material_code=material.code if material else None,
        material_name=material.name if material else None,
        quantity=lot_material.quantity or 0,
        status='USED',
        date=lot_material.created_at,
        depth=depth,
    )


def _bundle_node(bundle, depth, quantity=None):
    product = bundle.product
    return TraceNode(
        id=bundle.id,
        lot_number=bundle.bundle_no,
        process_code='BD',
        type=BUNDLE_LOT,
        product_code=product.code if product else None,
        product_name=product.name if product else None,
        quantity=bundle.total_qty if quantity is None else quantity,
        status=bundle.status,
        date=bundle.created_at,
        depth=depth,
    )


def _not_found_node(lot_number, node_type=PRODUCTION_LOT):
    return TraceNode(id=0, lot_number=lot_number, process_code='', type=node_type,
                     status=NOT_FOUND, date=datetime.utcnow())


def _lots_query():
    return ProductionLot.query.options(joinedload(ProductionLot.product))


def _check_link(lot, ancestry, direction):
    if lot.id in ancestry:
        current_app.logger.error('Genealogy cycle at lot %s (%s)', lot.lot_number, direction)
        raise TraceAnomaly(f'Genealogy cycle detected at lot {lot.lot_number}',
                           lot_number=lot.lot_number, direction=direction)


def _group(rows, key):
    grouped = {}
    for row in rows:
        grouped.setdefault(key(row), []).append(row)
    return grouped


# Level expansion; each entry is (node, lot, ids of the lots on its branch)

def _expand_backward(entries):
    lot_ids = [lot.id for _, lot, _ in entries]
    materials = _group(
        LotMaterial.query.options(joinedload(LotMaterial.material))
        .filter(LotMaterial.production_lot_id.in_(lot_ids))
        .order_by(LotMaterial.id).all(),
        lambda lm: lm.production_lot_id
    )

    parent_ids = {lot.parent_lot_id for _, lot, _ in entries if lot.parent_lot_id is not None}
    parents = {}
    if parent_ids:
        parents = {p.id: p for p in _lots_query().filter(ProductionLot.id.in_(parent_ids)).all()}

    next_level = []
    for node, lot, ancestry in entries:
        for lot_material in materials.get(lot.id, []):
            node.children.append(_material_node(lot_material, node.depth + 1))

        if lot.parent_lot_id is None:
            continue
        parent = parents.get(lot.parent_lot_id)
        if parent is None:
            raise TraceAnomaly(f'Lot {lot.lot_number} links to missing parent lot {lot.parent_lot_id}',
                               lot_number=lot.lot_number, direction=BACKWARD)
        _check_link(parent, ancestry, BACKWARD)
        child = _lot_node(parent, node.depth + 1)
        node.children.append(child)
        next_level.append((child, parent, ancestry | {parent.id}))
    return next_level


def _expand_forward(entries):
    lot_ids = [lot.id for _, lot, _ in entries]
    children = _group(
        _lots_query().filter(ProductionLot.parent_lot_id.in_(lot_ids)).order_by(ProductionLot.id).all(),
        lambda child: child.parent_lot_id
    )
    bundle_items = _group(
        BundleItem.query.options(joinedload(BundleItem.bundle))
        .filter(BundleItem.production_lot_id.in_(lot_ids))
        .order_by(BundleItem.id).all(),
        lambda item: item.production_lot_id
    )

    next_level = []
    for node, lot, ancestry in entries:
        for child_lot in children.get(lot.id, []):
            _check_link(child_lot, ancestry, FORWARD)
            child = _lot_node(child_lot, node.depth + 1)
            node.children.append(child)
            next_level.append((child, child_lot, ancestry | {child_lot.id}))

        for item in bundle_items.get(lot.id, []):
            node.children.append(_bundle_node(item.bundle, node.depth + 1, item.quantity))
    return next_level


def _walk(entries, max_depth, expand):
    while entries:
        entries = [entry for entry in entries if entry[0].depth < max_depth]
        if not entries:
            break
        entries = expand(entries)


def _deepest_path(node):
    best = []
    for child in node.children:
        candidate = _deepest_path(child)
        if len(candidate) > len(best):
            best = candidate
    return [node.lot_number] + best


def _result(root, direction, found=True):
    nodes = flatten_trace_tree(root)
    return TraceResult(
        root_node=root,
        total_nodes=len(nodes),
        max_depth=max(n.depth for n in nodes),
        direction=direction,
        found=found,
        path=_deepest_path(root) if found else [],
    )


def _resolve_max_depth(max_depth):
    if max_depth is None:
        return current_app.config['TRACE_MAX_DEPTH']
    if max_depth < 0:
        raise InvalidInput('max_depth must not be negative', max_depth=max_depth)
    return max_depth


def trace_backward(lot_number, max_depth=None):
    """
    Trace what went into a lot

    Args:
        lot_number: Production lot number or bundle number
        max_depth: Deepest level expanded (default: TRACE_MAX_DEPTH)

    Returns:
        TraceResult; found is False when nothing has that number
    """
    lot_number = (lot_number or '').strip()
    max_depth = _resolve_max_depth(max_depth)

    lot = _lots_query().filter(ProductionLot.lot_number == lot_number).first()
    if lot is not None:
        root = _lot_node(lot, 0)
        _walk([(root, lot, frozenset([lot.id]))], max_depth, _expand_backward)
        return _result(root, BACKWARD)

    bundle = BundleLot.query.filter_by(bundle_no=lot_number).first()
    if bundle is not None:
        root = _bundle_node(bundle, 0)
        entries = []
        if max_depth > 0:
            for item in bundle.items:
                child = _lot_node(item.production_lot, 1)
                root.children.append(child)
                entries.append((child, item.production_lot, frozenset([item.production_lot_id])))
        _walk(entries, max_depth, _expand_backward)
        return _result(root, BACKWARD)

    current_app.logger.debug('Backward trace: %s not found', lot_number)
    return _result(_not_found_node(lot_number), BACKWARD, found=False)


def trace_forward(lot_number, max_depth=None):
    """
    Trace where a lot went

    Args:
        lot_number: Production lot number or material lot number
        max_depth: Deepest level expanded (default: TRACE_MAX_DEPTH)

    Returns:
        TraceResult; found is False when nothing has that number
    """
    lot_number = (lot_number or '').strip()
    max_depth = _resolve_max_depth(max_depth)

    lot = _lots_query().filter(ProductionLot.lot_number == lot_number).first()
    if lot is not None:
        root = _lot_node(lot, 0)
        _walk([(root, lot, frozenset([lot.id]))], max_depth, _expand_forward)
        return _result(root, FORWARD)

    usages = LotMaterial.query.options(
        joinedload(LotMaterial.material),
        joinedload(LotMaterial.production_lot).joinedload(ProductionLot.product)
    ).filter_by(material_lot_no=lot_number).order_by(LotMaterial.id).all()
    if usages:
        material = usages[0].material
        root = TraceNode(
            id=0,
            lot_number=lot_number,
            process_code='MATERIAL',
            type=MATERIAL_LOT,
            material_code=material.code if material else None,
            material_name=material.name if material else None,
            quantity=sum(u.quantity or 0 for u in usages),
            status='TRACED',
            date=usages[0].created_at,
        )
        consumers = {u.production_lot_id: u.production_lot for u in usages}
        entries = []
        if max_depth > 0:
            for consumer in consumers.values():
                child = _lot_node(consumer, 1)
                root.children.append(child)
                entries.append((child, consumer, frozenset([consumer.id])))
        _walk(entries, max_depth, _expand_forward)
        return _result(root, FORWARD)

    current_app.logger.debug('Forward trace: %s not found', lot_number)
    return _result(_not_found_node(lot_number), FORWARD, found=False)


def build_trace_tree(lot_number, direction=BACKWARD, max_depth=None):
    """One direction, or {'forward': ..., 'backward': ...} for BOTH"""
    direction = (direction or '').upper()
    if direction == FORWARD:
        return trace_forward(lot_number, max_depth)
    if direction == BACKWARD:
        return trace_backward(lot_number, max_depth)
    if direction == BOTH:
        return {
            'forward': trace_forward(lot_number, max_depth),
            'backward': trace_backward(lot_number, max_depth),
        }
    raise InvalidInput(f'Unknown trace direction: {direction}', direction=direction)


def flatten_trace_tree(result_or_node):
    """Pre-order list of the tree's nodes, each copied without children"""
    root = result_or_node.root_node if isinstance(result_or_node, TraceResult) else result_or_node
    flat = []

    def visit(node):
        flat.append(replace(node, children=[]))
        for child in node.children:
            visit(child)

    visit(root)
    return flat


def get_trace_summary(result):
    """Production, material and bundle lots found by a trace"""
    production_lots = []
    material_lots = []
    bundle_lots = []

    for node in flatten_trace_tree(result):
        if node.status == NOT_FOUND:
            continue
        if node.type == PRODUCTION_LOT:
            production_lots.append({
                'lot_number': node.lot_number,
                'process_code': node.process_code,
                'product_code': node.product_code or '',
                'quantity': node.quantity,
            })
        elif node.type == MATERIAL_LOT:
            material_lots.append({
                'lot_number': node.lot_number,
                'material_code': node.material_code or '',
                'material_name': node.material_name or '',
                'quantity': node.quantity,
            })
        else:
            bundle_lots.append({'bundle_no': node.lot_number, 'quantity': node.quantity})

    return {
        'lot_number': result.root_node.lot_number,
        'direction': result.direction,
        'production_lots': production_lots,
        'material_lots': material_lots,
        'bundle_lots': bundle_lots,
        'total_production_lots': len(production_lots),
        'total_material_lots': len(material_lots),
        'total_bundle_lots': len(bundle_lots),
    }


def find_products_by_material(material_lot_no):
    """Lots that directly consumed a material lot"""
    usages = db.session.query(LotMaterial, ProductionLot).join(
        ProductionLot, LotMaterial.production_lot_id == ProductionLot.id
    ).filter(
        LotMaterial.material_lot_no == material_lot_no
    ).order_by(LotMaterial.id).all()

    return [{
        'lot_number': lot.lot_number,
        'process_code': lot.process_code,
        'product_code': lot.product.code if lot.product else None,
        'product_name': lot.product.name if lot.product else None,
        'quantity': usage.quantity,
        'date': lot.started_at,
    } for usage, lot in usages]


def find_materials_by_product(lot_number):
    """Material lots a production lot directly consumed"""
    lot = ProductionLot.query.filter_by(lot_number=lot_number).first()
    if lot is None:
        return []

    return [{
        'material_lot_no': usage.material_lot_no,
        'material_code': usage.material.code,
        'material_name': usage.material.name,
        'quantity': usage.quantity,
        'date': usage.created_at,
    } for usage in lot.lot_materials]
