# Models package
from harness_mes.models.product import Product
from harness_mes.models.process import Process
from harness_mes.models.production import Material, ProductionLot, LotMaterial
from harness_mes.models.quality import Inspection
from harness_mes.models.bundle import BundleLot, BundleItem
from harness_mes.models.sequence import SequenceCounter

__all__ = [
    'Product',
    'Process',
    'Material', 'ProductionLot', 'LotMaterial',
    'Inspection',
    'BundleLot', 'BundleItem',
    'SequenceCounter'
]
