"""租户设置读写。所有调用都显式传 tenant_id，不存在全局 / 隐式租户。"""

from .models import TenantSetting


def get_setting(category, key, tenant_id):
    """返回设置值；未设置或为空字符串时返回 None。"""
    value = (
        TenantSetting.objects
        .filter(tenant_id=tenant_id, category=category, key=key)
        .values_list('value', flat=True)
        .first()
    )
    return value or None


def set_setting(category, key, value, tenant_id):
    setting, _ = TenantSetting.objects.update_or_create(
        tenant_id=tenant_id,
        category=category,
        key=key,
        defaults={'value': value},
    )
    return setting
