"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
外部 HTTP 一律用 httpx.MockTransport 替身，不发真实请求。
"""
import pytest
from django.test import Client

import factory
from ehr.models import Intake, Patient, PatientMapping, SyncLog, TenantSetting


TENANT = 'clinic-a'


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class PatientFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Patient

    patient_id = factory.Sequence(lambda n: f'P{1000 + n}')
    tenant_id = TENANT
    name = '山田 太郎'
    name_kana = 'ヤマダ タロウ'
    sex = '男'
    birthday = '1975-06-20'
    tel = '09012345678'


class IntakeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Intake

    patient = factory.SubFactory(PatientFactory)
    tenant_id = factory.SelfAttribute('patient.tenant_id')
    note = '頭痛あり。経過観察。'
    status = 'OK'
    answers = factory.LazyFunction(dict)


class PatientMappingFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = PatientMapping

    tenant_id = TENANT
    provider = 'csv'
    patient_id = factory.Sequence(lambda n: f'P{1000 + n}')
    external_id = factory.Sequence(lambda n: f'EXT{n:04d}')


class SyncLogFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = SyncLog

    tenant_id = TENANT
    provider = 'csv'
    direction = 'push'
    resource_type = 'patient'
    status = 'success'


class TenantSettingFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = TenantSetting

    tenant_id = TENANT
    category = 'ehr'
    key = 'provider'
    value = 'csv'


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client():
    """Django test client for integration tests."""
    return Client()


@pytest.fixture
def sample_patient_csv():
    """两名患者的 CSV，电话号码故意写成带连字符 / 缺开头 0 的形式。"""
    return (
        '"患者ID","氏名","氏名カナ","性別","生年月日","電話番号","郵便番号","住所"\r\n'
        '"C001","佐藤 花子","サトウ ハナコ","女","1980-01-02","090-1111-2222","1000001","東京都千代田区"\r\n'
        '"C002","鈴木 一郎","","男","1990-03-04","8012345678","",""\r\n'
    )
