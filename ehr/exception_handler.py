"""
统一异常处理器。

挂到 DRF 的 EXCEPTION_HANDLER setting 上（见 config/settings.py）。
所有响应（无论成功还是失败）前端都能用同一套逻辑判断：
  response.type === 'validation_error' / 'block' / 'upstream_error'  → 出问题了
  没有 type 字段  → 成功

统一错误响应格式：
{
    "type":    "validation_error" | "block" | "upstream_error",
    "code":    "TENANT_REQUIRED",
    "message": "X-Tenant-ID header is required.",
    "detail":  { ... }  // 可选
}
"""

import logging

from django.http import JsonResponse
from rest_framework.exceptions import ParseError, UnsupportedMediaType
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler as drf_default_handler

from .exceptions import BaseAppException

logger = logging.getLogger(__name__)


def _error_response(error_type, code, message, detail=None, status=400):
    body = {'type': error_type, 'code': code, 'message': message}
    if detail is not None:
        body['detail'] = detail
    return JsonResponse(body, status=status)


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    优先级：
    1. BaseAppException 及其子类 → 统一格式；外部系统错误（5xx）额外记 warning
    2. 请求体不是合法 JSON / Content-Type 不对 → validation_error
    3. DRF 自带的 ValidationError → 转成统一格式
    4. 其他异常 → 交给 DRF 默认处理
    """
    view = context.get('view')

    if isinstance(exc, BaseAppException):
        if exc.http_status >= 500:
            logger.warning("[ehr] %s → %s %s: %s",
                           type(view).__name__ if view else '-', exc.http_status, exc.code, exc.message)
        return _error_response(exc.type, exc.code, exc.message, exc.detail, exc.http_status)

    # 同步 API 的 body 只接受 JSON
    if isinstance(exc, ParseError):
        return _error_response('validation_error', 'MALFORMED_JSON', 'Request body is not valid JSON.',
                               detail=str(exc.detail))
    if isinstance(exc, UnsupportedMediaType):
        return _error_response('validation_error', 'UNSUPPORTED_MEDIA_TYPE',
                               'Request body must be application/json.', status=415)

    if isinstance(exc, DRFValidationError):
        return _error_response('validation_error', 'VALIDATION_ERROR', 'Request validation failed',
                               detail=exc.detail)

    return drf_default_handler(exc, context)
