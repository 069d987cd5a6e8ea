"""
Response serializers — 同步结果 / ORM 对象 → JSON-able dict。

只负责「输出格式化」，不做任何解析或校验。
"""

from dataclasses import asdict


def serialize_sync_result(result):
    """SyncResult → dict，枚举字段输出为字符串值。"""
    return {
        'provider': result.provider.value,
        'direction': result.direction.value,
        'resource_type': result.resource_type.value,
        'status': result.status.value,
        'patient_id': result.patient_id,
        'external_id': result.external_id,
        'detail': result.detail,
    }


def serialize_sync_results(results):
    """批量结果加上按 status 的计数。"""
    items = [serialize_sync_result(r) for r in results]
    summary = {'success': 0, 'error': 0, 'skipped': 0}
    for item in items:
        summary[item['status']] += 1
    return {
        'count': len(items),
        'summary': summary,
        'results': items,
    }


def serialize_sync_log(log):
    return {
        'id': log.id,
        'tenant_id': log.tenant_id,
        'provider': log.provider,
        'direction': log.direction,
        'resource_type': log.resource_type,
        'patient_id': log.patient_id,
        'external_id': log.external_id,
        'status': log.status,
        'detail': log.detail,
        'created_at': log.created_at.isoformat(),
    }


def serialize_ehr_patient(patient):
    return asdict(patient)
