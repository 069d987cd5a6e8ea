"""
电子病历连携的管理 API。

View 层只做三件事：取租户、校验参数、调用 services / adapter。
错误一律 raise BaseAppException 子类，由 unified_exception_handler 统一格式化。
"""

import logging

from django.http import HttpResponse
from django.utils import timezone
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .adapters import ResourceType, SyncDirection, create_adapter
from .exceptions import BlockError, ValidationError
from .serializers import (
    serialize_ehr_patient,
    serialize_sync_log,
    serialize_sync_result,
    serialize_sync_results,
)

logger = logging.getLogger(__name__)

TENANT_HEADER = 'HTTP_X_TENANT_ID'
MAX_LOG_LIMIT = 500

SYNC_ACTIONS = ('push_patient', 'pull_patient', 'push_karte', 'pull_karte', 'batch')


# ── helpers ───────────────────────────────────────────────────────────────

def get_tenant_id(request):
    tenant_id = request.META.get(TENANT_HEADER, '').strip()
    if not tenant_id:
        raise ValidationError('X-Tenant-ID header is required.', code='TENANT_REQUIRED')
    return tenant_id


def get_adapter(tenant_id):
    adapter = create_adapter(tenant_id)
    if adapter is None:
        raise BlockError(
            'EHR integration is not configured for this tenant.',
            code='EHR_NOT_CONFIGURED',
        )
    return adapter


def require(data, field):
    value = data.get(field)
    if not value:
        raise ValidationError(
            f"'{field}' is required.",
            code='MISSING_FIELD',
            detail={'field': field},
        )
    return value


def parse_enum(enum_cls, value, field):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field}: {value!r}.",
            code=f'INVALID_{field.upper()}',
            detail={'allowed': [member.value for member in enum_cls]},
        )


def parse_int(value, field, default):
    if value in (None, ''):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{field}' must be an integer.", code='INVALID_PAGINATION')
    if number < 0:
        raise ValidationError(f"'{field}' must not be negative.", code='INVALID_PAGINATION')
    return number


# ── Views ─────────────────────────────────────────────────────────────────

class TestConnectionView(APIView):
    """POST /api/ehr/test-connection/"""

    def post(self, request):
        tenant_id = get_tenant_id(request)
        adapter = get_adapter(tenant_id)
        result = adapter.test_connection()
        logger.info("[ehr] test_connection tenant=%s provider=%s ok=%s",
                    tenant_id, adapter.provider.value, result.ok)
        return Response({
            'provider': adapter.provider.value,
            'ok': result.ok,
            'message': result.message,
        })


class PatientSearchView(APIView):
    """GET /api/ehr/patients/?name=&tel=&birthday= - 直接检索外部病历"""

    def get(self, request):
        tenant_id = get_tenant_id(request)
        adapter = get_adapter(tenant_id)
        patients = adapter.search_patients(
            name=request.query_params.get('name') or None,
            tel=request.query_params.get('tel') or None,
            birthday=request.query_params.get('birthday') or None,
        )
        return Response({
            'provider': adapter.provider.value,
            'count': len(patients),
            'patients': [serialize_ehr_patient(p) for p in patients],
        })


class SyncView(APIView):
    """POST /api/ehr/sync/ - 单个患者或批量同步"""

    def post(self, request):
        tenant_id = get_tenant_id(request)
        data = request.data
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object.', code='INVALID_BODY')
        action = data.get('action')
        if action not in SYNC_ACTIONS:
            raise ValidationError(
                f"Invalid action: {action!r}.",
                code='INVALID_ACTION',
                detail={'allowed': list(SYNC_ACTIONS)},
            )

        adapter = get_adapter(tenant_id)

        if action == 'batch':
            patient_ids = data.get('patient_ids')
            if not isinstance(patient_ids, list) or not patient_ids:
                raise ValidationError(
                    "'patient_ids' must be a non-empty list.",
                    code='MISSING_FIELD',
                    detail={'field': 'patient_ids'},
                )
            direction = parse_enum(SyncDirection, data.get('direction', 'push'), 'direction')
            results = services.sync_batch(patient_ids, direction, adapter, tenant_id)
            return Response(serialize_sync_results(results))

        if action == 'pull_patient':
            result = services.pull_patient(require(data, 'external_id'), adapter, tenant_id)
        else:
            operation = getattr(services, action)
            result = operation(require(data, 'patient_id'), adapter, tenant_id)

        return Response(serialize_sync_result(result))


class SyncLogListView(APIView):
    """GET /api/ehr/logs/?limit=&offset= - 新的在前"""

    def get(self, request):
        tenant_id = get_tenant_id(request)
        limit = min(parse_int(request.query_params.get('limit'), 'limit', 50), MAX_LOG_LIMIT)
        offset = parse_int(request.query_params.get('offset'), 'offset', 0)

        logs = services.get_sync_logs(tenant_id=tenant_id, limit=limit, offset=offset)
        return Response({
            'count': len(logs),
            'limit': limit,
            'offset': offset,
            'logs': [serialize_sync_log(log) for log in logs],
        })


class CsvImportView(APIView):
    """POST /api/ehr/import-csv/ {type, csv}"""

    def post(self, request):
        tenant_id = get_tenant_id(request)
        resource = parse_enum(ResourceType, request.data.get('type'), 'type')
        csv_text = require(request.data, 'csv')
        if not isinstance(csv_text, str):
            raise ValidationError("'csv' must be a string.", code='INVALID_CSV')

        results = services.import_csv(csv_text, resource, tenant_id)
        return Response(serialize_sync_results(results))


class CsvExportView(APIView):
    """GET /api/ehr/export-csv/?type=patient|karte - 下载 CSV"""

    def get(self, request):
        tenant_id = get_tenant_id(request)
        resource = parse_enum(ResourceType, request.query_params.get('type', 'patient'), 'type')

        content = services.export_csv(resource, tenant_id)
        filename = f"ehr_{resource.value}_{timezone.localdate().strftime('%Y%m%d')}.csv"

        response = HttpResponse(content, content_type='text/csv; charset=utf-8')
        response['Content-Disposition'] = f'attachment; filename="{filename}"'
        return response
