"""
Integration tests for `manage.py ehr_sync`.

用 call_command 直接调用，stdout 收进 StringIO 检查输出。
"""
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from tests.conftest import IntakeFactory, PatientFactory, TenantSettingFactory
from ehr.models import PatientMapping, SyncLog


TENANT = 'clinic-a'


def run(*args):
    out = StringIO()
    call_command('ehr_sync', *args, stdout=out)
    return out.getvalue()


@pytest.fixture
def csv_tenant(db):
    TenantSettingFactory(tenant_id=TENANT, key='provider', value='csv')


@pytest.mark.django_db
def test_not_configured_raises():
    with pytest.raises(CommandError, match='not configured'):
        run('--tenant', TENANT, '--test-connection')


def test_test_connection(csv_tenant):
    output = run('--tenant', TENANT, '--test-connection')
    assert '[csv] CSV adapter ready' in output


def test_requires_ids_or_all(csv_tenant):
    with pytest.raises(CommandError, match='--all'):
        run('--tenant', TENANT)


def test_push_given_ids(csv_tenant):
    PatientFactory(patient_id='P001')

    output = run('--tenant', TENANT, 'P001', 'NOPE')

    assert 'success=1 error=0 skipped=1' in output
    assert 'patient=P001' in output
    assert PatientMapping.objects.filter(tenant_id=TENANT, patient_id='P001').exists()
    assert SyncLog.objects.count() == 2


def test_push_all(csv_tenant):
    PatientFactory(patient_id='P001')
    PatientFactory(patient_id='P002')
    PatientFactory(patient_id='P003', tenant_id='clinic-b')

    output = run('--tenant', TENANT, '--all')

    assert 'Syncing 2 patient(s): csv push patient' in output
    assert 'success=2 error=0 skipped=0' in output


def test_pull_unmapped_is_skipped(csv_tenant):
    PatientFactory(patient_id='P001')

    output = run('--tenant', TENANT, '--direction', 'pull', 'P001')

    assert 'skipped' in output
    assert 'success=0 error=0 skipped=1' in output


def test_karte_push_after_patient_push(csv_tenant):
    IntakeFactory(patient=PatientFactory(patient_id='P001'), note='所見')
    run('--tenant', TENANT, 'P001')

    output = run('--tenant', TENANT, '--resource', 'karte', 'P001')

    assert 'Pushed 1 karte(s).' in output
    assert 'success=1' in output
