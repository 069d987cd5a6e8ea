"""create_adapter：按租户设置 ehr.provider 选择 Adapter。"""
import pytest

from ehr.adapters import create_adapter
from ehr.adapters.csvfile import CsvAdapter
from ehr.adapters.factory import build_fhir_config, build_orca_config
from ehr.adapters.fhir import FhirAdapter
from ehr.adapters.orca import OrcaAdapter
from ehr.tenant_settings import get_setting, set_setting
from tests.conftest import TenantSettingFactory


@pytest.mark.django_db
class TestCreateAdapter:

    def test_unset_provider_returns_none(self):
        assert create_adapter('clinic-a') is None

    def test_empty_provider_returns_none(self):
        TenantSettingFactory(key='provider', value='')
        assert create_adapter('clinic-a') is None

    def test_unknown_provider_returns_none(self):
        TenantSettingFactory(key='provider', value='epic')
        assert create_adapter('clinic-a') is None

    def test_csv(self):
        TenantSettingFactory(key='provider', value='csv')
        assert isinstance(create_adapter('clinic-a'), CsvAdapter)

    def test_orca(self):
        TenantSettingFactory(key='provider', value='orca')
        TenantSettingFactory(key='orca_host', value='orca.local')
        TenantSettingFactory(key='orca_port', value='8080')
        TenantSettingFactory(key='orca_is_web', value='true')

        adapter = create_adapter('clinic-a')

        assert isinstance(adapter, OrcaAdapter)
        assert adapter.base_url == 'http://orca.local:8080/api'

    def test_fhir(self):
        TenantSettingFactory(key='provider', value='fhir')
        TenantSettingFactory(key='fhir_base_url', value='https://fhir.example/r4')
        TenantSettingFactory(key='fhir_token', value='t0k')

        adapter = create_adapter('clinic-a')

        assert isinstance(adapter, FhirAdapter)
        assert adapter.config.base_url == 'https://fhir.example/r4'
        assert adapter.config.token == 't0k'

    def test_settings_are_per_tenant(self):
        TenantSettingFactory(tenant_id='clinic-b', key='provider', value='csv')
        assert create_adapter('clinic-a') is None
        assert isinstance(create_adapter('clinic-b'), CsvAdapter)


@pytest.mark.django_db
class TestConfigBuilders:

    def test_orca_defaults(self):
        config = build_orca_config('clinic-a')
        assert config.host == 'localhost'
        assert config.port == 8000
        assert config.user == ''
        assert config.is_web is False

    def test_non_numeric_port_falls_back_to_default(self):
        set_setting('ehr', 'provider', 'orca', 'clinic-a')
        set_setting('ehr', 'orca_port', '80a', 'clinic-a')

        assert build_orca_config('clinic-a').port == 8000
        adapter = create_adapter('clinic-a')
        assert adapter.base_url == 'http://localhost:8000'

    def test_fhir_defaults(self):
        config = build_fhir_config('clinic-a')
        assert config.base_url == ''
        assert config.auth_type == 'bearer'
        assert config.token is None

    def test_fhir_basic(self):
        set_setting('ehr', 'fhir_auth_type', 'basic', 'clinic-a')
        set_setting('ehr', 'fhir_username', 'u', 'clinic-a')
        set_setting('ehr', 'fhir_password', 'p', 'clinic-a')

        config = build_fhir_config('clinic-a')

        assert (config.auth_type, config.username, config.password) == ('basic', 'u', 'p')


@pytest.mark.django_db
def test_set_setting_overwrites():
    set_setting('ehr', 'provider', 'csv', 'clinic-a')
    set_setting('ehr', 'provider', 'orca', 'clinic-a')
    assert get_setting('ehr', 'provider', 'clinic-a') == 'orca'
