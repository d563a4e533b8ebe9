"""
Process reference data.

The table is static: it is seeded into the `processes` table once at startup
and read from here by the pure parsers, which must not touch the database.
"""

PROCESS_SEED_DATA = [
    {'code': 'CA', 'name': 'Auto Cut & Crimp', 'seq': 10, 'has_material_input': True,
     'is_inspection': False, 'short_code': 'C', 'description': 'Wire cutting and automatic crimping'},
    {'code': 'MS', 'name': 'Mid Strip', 'seq': 20, 'has_material_input': False,
     'is_inspection': False, 'short_code': 'S', 'description': 'Mid-span insulation strip'},
    {'code': 'MC', 'name': 'Manual Crimp', 'seq': 30, 'has_material_input': True,
     'is_inspection': False, 'short_code': 'M', 'description': 'Manual crimping and joining'},
    {'code': 'SB', 'name': 'Sub Assembly', 'seq': 40, 'has_material_input': True,
     'is_inspection': False, 'short_code': 'B', 'description': 'Grommet, seal and tube assembly'},
    {'code': 'HS', 'name': 'Heat Shrink', 'seq': 50, 'has_material_input': False,
     'is_inspection': False, 'short_code': 'H', 'description': 'Heat shrink tubing'},
    {'code': 'CQ', 'name': 'Crimp Inspection', 'seq': 60, 'has_material_input': False,
     'is_inspection': True, 'short_code': 'Q', 'description': 'Crimp quality inspection'},
    {'code': 'SP', 'name': 'Kitting', 'seq': 70, 'has_material_input': True,
     'is_inspection': False, 'short_code': 'P', 'description': 'Assembly material kitting'},
    {'code': 'PA', 'name': 'Product Assembly', 'seq': 80, 'has_material_input': True,
     'is_inspection': False, 'short_code': 'A', 'description': 'Connector and housing assembly'},
    {'code': 'CI', 'name': 'Circuit Inspection', 'seq': 90, 'has_material_input': False,
     'is_inspection': True, 'short_code': 'I', 'description': 'Circuit continuity inspection'},
    {'code': 'VI', 'name': 'Visual Inspection', 'seq': 100, 'has_material_input': False,
     'is_inspection': True, 'short_code': 'V', 'description': 'Visual appearance inspection'},
]

PROCESS_NAMES = {p['code']: p['name'] for p in PROCESS_SEED_DATA}
PROCESS_NAMES['MO'] = 'Material Issue'

# Barcode short codes; MO only ever appears on material issue labels
PROCESS_SHORT_CODES = {p['code']: p['short_code'] for p in PROCESS_SEED_DATA}
PROCESS_SHORT_CODES['MO'] = 'O'
SHORT_TO_PROCESS = {short: code for code, short in PROCESS_SHORT_CODES.items()}

CRIMP_TARGET_PROCESSES = ('CA', 'MC')
SP_ADMISSIBLE_PROCESSES = ('CA', 'MS', 'MC', 'SB', 'HS')

INSPECTION_TARGET_PROCESSES = {
    'CRIMP': CRIMP_TARGET_PROCESSES,
    'CIRCUIT': ('PA',),
    'VISUAL': ('CI',),
}


def get_process_name(code):
    """Display name for a process code, or the code itself"""
    if not code:
        return ''
    return PROCESS_NAMES.get(code.upper(), code)


def requires_crimp_inspection(process_code):
    return bool(process_code) and process_code.upper() in CRIMP_TARGET_PROCESSES


def is_sp_admissible(process_code):
    return bool(process_code) and process_code.upper() in SP_ADMISSIBLE_PROCESSES
