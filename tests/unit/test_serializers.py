"""Unit tests for ehr/serializers.py — 输出格式化。"""
import pytest

from ehr.adapters.types import (
    EhrPatient,
    EhrProvider,
    ResourceType,
    SyncDirection,
    SyncResult,
    SyncStatus,
)
from ehr.serializers import (
    serialize_ehr_patient,
    serialize_sync_log,
    serialize_sync_result,
    serialize_sync_results,
)
from tests.conftest import SyncLogFactory


def make_result(status=SyncStatus.SUCCESS, **kwargs):
    return SyncResult(
        provider=EhrProvider.ORCA,
        direction=SyncDirection.PUSH,
        resource_type=ResourceType.PATIENT,
        status=status,
        **kwargs,
    )


class TestSyncResult:

    def test_enums_become_strings(self):
        body = serialize_sync_result(make_result(patient_id='P001', external_id='00012'))
        assert body == {
            'provider': 'orca',
            'direction': 'push',
            'resource_type': 'patient',
            'status': 'success',
            'patient_id': 'P001',
            'external_id': '00012',
            'detail': None,
        }

    def test_summary_counts(self):
        body = serialize_sync_results([
            make_result(),
            make_result(SyncStatus.ERROR, detail='boom'),
            make_result(SyncStatus.SKIPPED),
            make_result(SyncStatus.SKIPPED),
        ])
        assert body['count'] == 4
        assert body['summary'] == {'success': 1, 'error': 1, 'skipped': 2}
        assert body['results'][1]['detail'] == 'boom'

    def test_empty(self):
        assert serialize_sync_results([]) == {
            'count': 0,
            'summary': {'success': 0, 'error': 0, 'skipped': 0},
            'results': [],
        }


def test_serialize_ehr_patient():
    body = serialize_ehr_patient(EhrPatient(external_id='1', name='山田', sex='男'))
    assert body['external_id'] == '1'
    assert body['sex'] == '男'
    assert body['tel'] is None


@pytest.mark.django_db
def test_serialize_sync_log():
    log = SyncLogFactory(patient_id='P001', detail='ok')
    body = serialize_sync_log(log)

    assert body['id'] == log.id
    assert body['patient_id'] == 'P001'
    assert body['status'] == 'success'
    assert body['created_at'] == log.created_at.isoformat()
