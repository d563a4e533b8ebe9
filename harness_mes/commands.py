"""
Command line interface

    flask --app run init-db
    flask --app run next-sequence CA
    flask --app run create-hierarchy 00315452 3 CA MS MC
    flask --app run check-crimp CAP001Q100-C241223-0001
    flask --app run trace backward PAP001Q100-A241223-0001
"""
import json

import click

from harness_mes import db
from harness_mes.errors import MESError


def _echo_json(data):
    click.echo(json.dumps(data, indent=2, default=str))


def register_commands(app):
    """Attach the engine's commands to app.cli"""

    @app.cli.command('init-db')
    def init_db():
        """Create tables and seed process reference data"""
        from harness_mes.services.processes import seed_processes
        db.create_all()
        added = seed_processes()
        click.echo(f'Database ready ({added} processes seeded)')

    @app.cli.command('seed-processes')
    def seed_processes_command():
        """Insert missing process definitions"""
        from harness_mes.services.processes import seed_processes
        click.echo(f'{seed_processes()} processes seeded')

    @app.cli.command('next-sequence')
    @click.argument('prefix')
    @click.option('--bundle', is_flag=True, help='Use the bundle counter for PREFIX')
    def next_sequence(prefix, bundle):
        """Issue the next sequence number for PREFIX"""
        from harness_mes.services.sequence import get_next, get_next_bundle
        try:
            value = get_next_bundle(prefix) if bundle else get_next(prefix)
        except MESError as e:
            raise click.ClickException(e.message)
        click.echo(value)

    @app.cli.command('create-hierarchy')
    @click.argument('finished_code')
    @click.argument('circuit_count', type=int)
    @click.argument('processes', nargs=-1)
    def create_hierarchy(finished_code, circuit_count, processes):
        """Build semi-products of FINISHED_CODE for PROCESSES (default: CA)"""
        from harness_mes.services.hierarchy import create_product_hierarchy
        try:
            hierarchy = create_product_hierarchy(finished_code, circuit_count, processes or ('CA',))
        except MESError as e:
            raise click.ClickException(e.message)
        _echo_json(hierarchy.to_dict())

    @app.cli.command('check-crimp')
    @click.argument('barcode')
    def check_crimp(barcode):
        """Show the crimp gate status of BARCODE"""
        from harness_mes.services.crimp_gate import check_crimp_inspection_passed
        _echo_json(check_crimp_inspection_passed(barcode))

    @app.cli.command('validate-sp')
    @click.argument('barcodes', nargs=-1)
    def validate_sp(barcodes):
        """Validate BARCODES as SP inputs; exits 1 if any is refused"""
        from harness_mes.services.crimp_gate import validate_sp_process_inputs
        result = validate_sp_process_inputs(barcodes)
        _echo_json(result)
        if not result['is_valid']:
            raise click.exceptions.Exit(1)

    @app.cli.command('trace')
    @click.argument('direction', type=click.Choice(['forward', 'backward', 'both'], case_sensitive=False))
    @click.argument('lot_number')
    @click.option('--max-depth', type=int, default=None, help='Deepest level to expand')
    def trace(direction, lot_number, max_depth):
        """Print the genealogy tree of LOT_NUMBER"""
        from harness_mes.services.lot_trace import build_trace_tree
        try:
            result = build_trace_tree(lot_number, direction, max_depth)
        except MESError as e:
            raise click.ClickException(e.message)

        if isinstance(result, dict):
            _echo_json({key: value.to_dict() for key, value in result.items()})
        else:
            _echo_json(result.to_dict())

    @app.cli.command('bundle-stats')
    def bundle_stats():
        """Count bundles by type"""
        from harness_mes.services.bundles import get_set_bundle_stats
        _echo_json(get_set_bundle_stats())
