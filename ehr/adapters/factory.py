"""
工厂函数：根据租户设置 ehr.provider 返回对应的 Adapter 实例。

Adapter 只有 ORCA / CSV / FHIR 三种，这里对 EhrProvider 做一次 match。
连接参数也从同一租户的设置里读，services.py 因此完全不知道 provider 细节。
"""

import logging

from ..tenant_settings import get_setting
from .base import BaseEhrAdapter
from .types import EhrProvider, FhirConfig, OrcaConfig

logger = logging.getLogger(__name__)

SETTINGS_CATEGORY = "ehr"
DEFAULT_ORCA_HOST = "localhost"
DEFAULT_ORCA_PORT = 8000


def _setting(key, tenant_id):
    return get_setting(SETTINGS_CATEGORY, key, tenant_id)


def _orca_port(tenant_id) -> int:
    raw = _setting("orca_port", tenant_id)
    if not raw:
        return DEFAULT_ORCA_PORT
    try:
        return int(raw)
    except ValueError:
        logger.warning("[ehr] 租户 %r 的 orca_port 不是数字: %r，使用默认 %d",
                       tenant_id, raw, DEFAULT_ORCA_PORT)
        return DEFAULT_ORCA_PORT


def build_orca_config(tenant_id) -> OrcaConfig:
    return OrcaConfig(
        host=_setting("orca_host", tenant_id) or DEFAULT_ORCA_HOST,
        port=_orca_port(tenant_id),
        user=_setting("orca_user", tenant_id) or "",
        password=_setting("orca_password", tenant_id) or "",
        is_web=_setting("orca_is_web", tenant_id) == "true",
    )


def build_fhir_config(tenant_id) -> FhirConfig:
    return FhirConfig(
        base_url=_setting("fhir_base_url", tenant_id) or "",
        auth_type=_setting("fhir_auth_type", tenant_id) or "bearer",
        token=_setting("fhir_token", tenant_id),
        username=_setting("fhir_username", tenant_id),
        password=_setting("fhir_password", tenant_id),
    )


def create_adapter(tenant_id) -> BaseEhrAdapter | None:
    """
    返回该租户的 Adapter；未设置 provider（= 未启用同步）或 provider 未知时返回 None。
    """
    raw = _setting("provider", tenant_id)
    if not raw:
        return None

    try:
        provider = EhrProvider(raw)
    except ValueError:
        logger.warning("[ehr] 租户 %r 的 provider 设置未知: %r", tenant_id, raw)
        return None

    # 延迟导入，避免 adapters 之间的循环依赖
    from .csvfile import CsvAdapter
    from .fhir import FhirAdapter
    from .orca import OrcaAdapter

    match provider:
        case EhrProvider.ORCA:
            return OrcaAdapter(build_orca_config(tenant_id))
        case EhrProvider.CSV:
            return CsvAdapter()
        case EhrProvider.FHIR:
            return FhirAdapter(build_fhir_config(tenant_id))
