import json

from harness_mes.models import Process
from harness_mes.services.crimp_gate import record_crimp_inspection
from harness_mes.services.processes import get_all_processes, get_next_process, get_process


def test_processes_are_seeded(app):
    codes = [p.code for p in Process.query.order_by(Process.seq).all()]
    assert codes == ['CA', 'MS', 'MC', 'SB', 'HS', 'CQ', 'SP', 'PA', 'CI', 'VI']
    assert [p.code for p in get_all_processes()] == codes
    assert get_process('cq').is_inspection is True


def test_next_process_skips_inspections(app):
    assert get_next_process('HS').code == 'SP'
    assert get_next_process('SP').code == 'PA'
    assert get_next_process('PA') is None
    assert get_next_process('XX') is None


def test_init_db_is_repeatable(runner):
    result = runner.invoke(args=['init-db'])
    assert result.exit_code == 0
    assert '0 processes seeded' in result.output


def test_next_sequence(runner):
    assert runner.invoke(args=['next-sequence', 'CA']).output.strip() == '1'
    assert runner.invoke(args=['next-sequence', 'CA']).output.strip() == '2'
    assert runner.invoke(args=['next-sequence', 'CA', '--bundle']).output.strip() == '1'


def test_create_hierarchy(runner, make_product):
    make_product('00315452')
    result = runner.invoke(args=['create-hierarchy', '00315452', '2', 'CA', 'MC'])
    assert result.exit_code == 0

    data = json.loads(result.output)
    assert [p['code'] for p in data['crimp_products']] == ['00315452-001', '00315452-002']
    assert data['semi_products']['mc']['code'] == 'MC00315452'


def test_create_hierarchy_unknown_product(runner):
    result = runner.invoke(args=['create-hierarchy', '99999999', '2'])
    assert result.exit_code == 1
    assert 'not found' in result.output


def test_check_crimp(runner):
    record_crimp_inspection('CAP001Q100-C241223-0001', 'PASS')
    result = runner.invoke(args=['check-crimp', 'CAP001Q100-C241223-0001'])
    assert json.loads(result.output)['passed'] is True


def test_validate_sp_exit_code(runner):
    ok = runner.invoke(args=['validate-sp', 'MSP001Q100-S241223-0001'])
    assert ok.exit_code == 0
    refused = runner.invoke(args=['validate-sp', 'PAP001Q100-A241223-0001'])
    assert refused.exit_code == 1
    assert json.loads(refused.output)['summary']['failed'] == 1


def test_trace_missing_lot(runner):
    result = runner.invoke(args=['trace', 'backward', 'NO-SUCH-LOT'])
    assert result.exit_code == 0
    assert json.loads(result.output)['found'] is False


def test_bundle_stats(runner):
    result = runner.invoke(args=['bundle-stats'])
    assert json.loads(result.output) == {
        'total_set_bundles': 0, 'same_product_count': 0, 'multi_product_count': 0,
    }
