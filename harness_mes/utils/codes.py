"""
Product code taxonomy

| Type       | Format              | Example          |
|------------|---------------------|------------------|
| Finished   | [code]              | 00315452         |
| Crimp (CA) | [code]-[circuit]    | 00315452-001     |
| MS semi    | MS[crimp code]      | MS00315452-001   |
| MC semi    | MC[code]            | MC00315452       |
| SB semi    | SB[code]            | SB00315452       |
| HS semi    | HS[code]            | HS00315452       |

Everything here is a pure function of the code string; nothing stored about a
product is authoritative for its type, root or circuit number.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ProductType(str, Enum):
    FINISHED = 'FINISHED'
    SEMI_CA = 'SEMI_CA'
    SEMI_MS = 'SEMI_MS'
    SEMI_MC = 'SEMI_MC'
    SEMI_SB = 'SEMI_SB'
    SEMI_HS = 'SEMI_HS'


# Checked in this order; first match wins
SEMI_PREFIXES = {
    'MS': ProductType.SEMI_MS,
    'MC': ProductType.SEMI_MC,
    'SB': ProductType.SEMI_SB,
    'HS': ProductType.SEMI_HS,
}

PROCESS_FOR_TYPE = {
    ProductType.SEMI_CA: 'CA',
    ProductType.SEMI_MS: 'MS',
    ProductType.SEMI_MC: 'MC',
    ProductType.SEMI_SB: 'SB',
    ProductType.SEMI_HS: 'HS',
}

CIRCUIT_SUFFIX = re.compile(r'-(\d{3})$')

MIN_CIRCUIT = 1
MAX_CIRCUIT = 999


def _prefix_of(code):
    for prefix in SEMI_PREFIXES:
        if code.startswith(prefix):
            return prefix
    return None


def infer_product_type(code: Optional[str]) -> ProductType:
    """
    Classify a code. Never fails: blank or unrecognised input is FINISHED.
    """
    if not code:
        return ProductType.FINISHED
    prefix = _prefix_of(code)
    if prefix:
        return SEMI_PREFIXES[prefix]
    if CIRCUIT_SUFFIX.search(code):
        return ProductType.SEMI_CA
    return ProductType.FINISHED


def extract_finished_code(code: Optional[str]) -> str:
    """
    Strip semi-product decorations down to the finished (root) code.

    Stripping repeats until nothing changes so the function is idempotent
    even for codes that carry more than one decoration.
    """
    if not code:
        return code or ''
    current = code
    while True:
        stripped = current
        prefix = _prefix_of(stripped)
        if prefix and len(stripped) > len(prefix):
            stripped = stripped[len(prefix):]
        stripped = CIRCUIT_SUFFIX.sub('', stripped)
        if stripped == current or not stripped:
            return current
        current = stripped


def extract_circuit_no(code: Optional[str]) -> Optional[int]:
    """Circuit number of a CA/MS code (00315452-001 -> 1), else None"""
    if not code:
        return None
    if infer_product_type(code) not in (ProductType.SEMI_CA, ProductType.SEMI_MS):
        return None
    match = CIRCUIT_SUFFIX.search(code)
    if not match:
        return None
    circuit_no = int(match.group(1))
    return circuit_no if is_valid_circuit_range(circuit_no) else None


def is_valid_product_code(code: Optional[str]) -> bool:
    return bool(code and code.strip())


def is_valid_circuit_range(circuit_no) -> bool:
    return MIN_CIRCUIT <= circuit_no <= MAX_CIRCUIT


def matches_code_format(code: Optional[str]) -> bool:
    """Strict shape check per type; unlike classification this can say no"""
    if not is_valid_product_code(code):
        return False

    product_type = infer_product_type(code)
    if product_type == ProductType.SEMI_CA:
        return re.match(r'^.+-\d{3}$', code) is not None
    if product_type == ProductType.SEMI_MS:
        return re.match(r'^MS.+-\d{3}$', code) is not None
    if product_type in (ProductType.SEMI_MC, ProductType.SEMI_SB, ProductType.SEMI_HS):
        return re.match(r'^(MC|SB|HS).+$', code) is not None
    return '-' not in code


# Code generation

def generate_crimp_code(finished_code, circuit_no):
    """00315452, 1 -> 00315452-001"""
    return f'{finished_code}-{str(circuit_no).zfill(3)}'


def generate_ms_code(crimp_code):
    """00315452-001 -> MS00315452-001"""
    return f'MS{crimp_code}'


def generate_semi_code(prefix, finished_code):
    """MC/SB/HS + finished code"""
    return f'{prefix.upper()}{finished_code}'


@dataclass(frozen=True)
class ProductCode:
    """A raw code with its derived attributes"""
    raw: str
    type: ProductType
    root_code: str
    circuit_no: Optional[int] = None

    @classmethod
    def parse(cls, raw):
        return cls(
            raw=raw,
            type=infer_product_type(raw),
            root_code=extract_finished_code(raw),
            circuit_no=extract_circuit_no(raw),
        )

    @property
    def process_code(self):
        """Process that produces this code, None for finished products"""
        return PROCESS_FOR_TYPE.get(self.type)

    def __str__(self):
        return self.raw
