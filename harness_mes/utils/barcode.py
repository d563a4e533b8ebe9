import re
from dataclasses import dataclass
from datetime import date as date_cls, datetime
from typing import Optional

from harness_mes.utils.processes import PROCESS_SHORT_CODES, SHORT_TO_PROCESS

SEPARATORS = ('-', '_', '/')

BUNDLE_PROCESS_CODE = 'BD'

# V1 legacy: CA-241220-0001
V1_PATTERN = re.compile(r'^(?P<process>[A-Z]{2})-(?P<date>\d{6})-(?P<seq>\d{4})$')

# V2: [process]{product}Q{qty}-{short}{YYMMDD}-{seq}, optional B marks a legacy bundle
V2_PATTERN = re.compile(
    r'^(?P<product>.+)Q(?P<qty>\d+)-(?P<short>[A-Z])(?P<date>\d{6})-(?P<bundle>B?)(?P<seq>\d+)$'
)

# Legacy bundle without short code: {process}{product}Q{qty}-{YYMMDD}-{seq}
V2_BUNDLE_PATTERN = re.compile(
    r'^(?P<process>[A-Z]{2})(?P<product>.*)Q(?P<qty>\d+)-(?P<date>\d{6})-B?(?P<seq>\d+)$'
)

# BD-{product code or SET}-{YYMMDD}-{NNN}
BUNDLE_PATTERN = re.compile(r'^BD-(?P<product>.+)-(?P<date>\d{6})-(?P<seq>\d{3})$')


@dataclass
class ParsedBarcode:
    raw: str
    is_valid: bool
    version: Optional[int] = None
    process_code: Optional[str] = None
    product_code: Optional[str] = None
    quantity: Optional[int] = None
    date: Optional[str] = None
    sequence: Optional[str] = None
    is_bundle: bool = False
    error_message: Optional[str] = None


def normalize_separator(barcode):
    for sep in SEPARATORS:
        barcode = barcode.replace(sep, '-')
    return barcode


def get_date_string(value=None):
    """
    Format a date as YYMMDD

    Args:
        value: date or datetime (default: today)

    Returns:
        Six digit date string
    """
    if value is None:
        value = date_cls.today()
    return value.strftime('%y%m%d')


def parse_date_string(value):
    """YYMMDD -> date, or None when the string is not a calendar date"""
    if not value or len(value) != 6 or not value.isdigit():
        return None
    try:
        return datetime.strptime(value, '%y%m%d').date()
    except ValueError:
        return None


def is_bundle_barcode(barcode):
    if not barcode:
        return False
    return normalize_separator(barcode.strip().upper()).startswith('BD-')


def parse_barcode(barcode):
    """
    Parse a lot or bundle barcode

    Never raises; an unrecognised barcode comes back with is_valid False and
    no process code.

    Args:
        barcode: Raw scanned string

    Returns:
        ParsedBarcode
    """
    raw = (barcode or '').strip()
    if not raw:
        return ParsedBarcode(raw=raw, is_valid=False, error_message='Empty barcode')

    normalized = normalize_separator(raw.upper())

    if normalized.startswith('BD-'):
        match = BUNDLE_PATTERN.match(normalized)
        if match:
            return ParsedBarcode(
                raw=raw,
                is_valid=True,
                version=2,
                process_code=BUNDLE_PROCESS_CODE,
                product_code=match.group('product'),
                date=match.group('date'),
                sequence=match.group('seq'),
                is_bundle=True,
            )

    elif 'Q' in normalized:
        match = V2_PATTERN.match(normalized)
        if match:
            short = match.group('short')
            process_code = SHORT_TO_PROCESS.get(short, short)
            product = match.group('product')
            # Legacy form repeats the process code in front of the product
            if len(product) > 2 and product[:2] == process_code:
                product = product[2:]
            return ParsedBarcode(
                raw=raw,
                is_valid=True,
                version=2,
                process_code=process_code,
                product_code=product,
                quantity=int(match.group('qty')),
                date=match.group('date'),
                sequence=match.group('seq'),
                is_bundle=bool(match.group('bundle')),
            )

        match = V2_BUNDLE_PATTERN.match(normalized)
        if match:
            return ParsedBarcode(
                raw=raw,
                is_valid=True,
                version=2,
                process_code=match.group('process'),
                product_code=match.group('product'),
                quantity=int(match.group('qty')),
                date=match.group('date'),
                sequence=match.group('seq'),
                is_bundle=True,
            )

    else:
        match = V1_PATTERN.match(normalized)
        if match:
            return ParsedBarcode(
                raw=raw,
                is_valid=True,
                version=1,
                process_code=match.group('process'),
                date=match.group('date'),
                sequence=match.group('seq'),
            )

    return ParsedBarcode(raw=raw, is_valid=False, error_message='Unrecognised barcode format')


def get_process_code_from_barcode(barcode):
    """Process code of a barcode, or None if it does not parse"""
    parsed = parse_barcode(barcode)
    return parsed.process_code if parsed.is_valid else None


def generate_lot_number(process_code, product_code, quantity, sequence, value=None, padding=4):
    """
    Build a production lot number

    Args:
        process_code: Process producing the lot (CA, MC, ...)
        product_code: Product code, or None for a V1 number
        quantity: Planned quantity
        sequence: Number issued by the sequence counter
        value: Production date (default: today)
        padding: Sequence digits

    Returns:
        CA00315452Q100-C241223-0001, or CA-241223-0001 without a product
    """
    process_code = process_code.upper()
    date_str = get_date_string(value)
    seq_str = str(sequence).zfill(padding)

    if not product_code:
        return f'{process_code}-{date_str}-{seq_str}'

    short = PROCESS_SHORT_CODES.get(process_code, process_code[0])
    return f'{process_code}{product_code}Q{quantity}-{short}{date_str}-{seq_str}'


def generate_bundle_number(token, sequence, value=None, padding=3):
    """BD-{product code or SET}-{YYMMDD}-{NNN}"""
    return f'BD-{token}-{get_date_string(value)}-{str(sequence).zfill(padding)}'
