"""
Unit tests for exception classes and unified_exception_handler.

不需要数据库，纯 Python 测试：
1. BaseAppException 默认值
2. 各子类的默认 type / code / http_status
3. 构造时覆盖 code / http_status
4. EhrApiError 的 message / detail 格式
5. unified_exception_handler 把异常转成正确的 JsonResponse（含 body 解析失败）
"""
import json
import pytest
from rest_framework.exceptions import (
    NotFound,
    ParseError,
    UnsupportedMediaType,
    ValidationError as DRFValidationError,
)

from ehr.exceptions import (
    BaseAppException,
    ValidationError,
    BlockError,
    EhrApiError,
)
from ehr.exception_handler import unified_exception_handler


# -------------------------------------------------------------------
# Exception classes
# -------------------------------------------------------------------

class TestBaseAppException:

    def test_defaults(self):
        exc = BaseAppException('something broke')
        assert exc.message == 'something broke'
        assert exc.type == 'error'
        assert exc.code == 'UNKNOWN_ERROR'
        assert exc.http_status == 500
        assert exc.detail is None

    def test_override_code_and_status(self):
        exc = BaseAppException('bad', code='CUSTOM_CODE', http_status=418)
        assert exc.code == 'CUSTOM_CODE'
        assert exc.http_status == 418

    def test_detail_preserved(self):
        exc = BaseAppException('bad', detail={'key': 'value'})
        assert exc.detail == {'key': 'value'}


class TestValidationError:

    def test_defaults(self):
        exc = ValidationError('bad input')
        assert exc.type == 'validation_error'
        assert exc.code == 'VALIDATION_ERROR'
        assert exc.http_status == 400

    def test_custom_code(self):
        exc = ValidationError('tenant missing', code='TENANT_REQUIRED')
        assert exc.code == 'TENANT_REQUIRED'
        assert exc.http_status == 400  # status 没变


class TestBlockError:

    def test_defaults(self):
        exc = BlockError('blocked')
        assert exc.type == 'block'
        assert exc.code == 'BUSINESS_BLOCK'
        assert exc.http_status == 409

    def test_override_http_status(self):
        exc = BlockError('not found', code='PATIENT_NOT_FOUND', http_status=404)
        assert exc.http_status == 404


class TestEhrApiError:

    def test_message_and_status(self):
        exc = EhrApiError('FHIR', 404, '{"resourceType":"OperationOutcome"}')
        assert exc.message == 'FHIR API error: 404'
        assert str(exc) == 'FHIR API error: 404'
        assert exc.type == 'upstream_error'
        assert exc.code == 'EHR_API_ERROR'
        assert exc.http_status == 502
        assert exc.status_code == 404

    def test_body_truncated_in_detail(self):
        exc = EhrApiError('ORCA', 500, 'x' * 2000)
        assert exc.body == 'x' * 2000
        assert len(exc.detail['body']) == 500
        assert exc.detail['status_code'] == 500


# -------------------------------------------------------------------
# unified_exception_handler
# -------------------------------------------------------------------

class TestUnifiedExceptionHandler:

    def test_block_error_returns_409(self):
        exc = BlockError('not configured', code='EHR_NOT_CONFIGURED', detail={'tenant': 't1'})
        response = unified_exception_handler(exc, {})

        assert response.status_code == 409
        body = json.loads(response.content)
        assert body['type'] == 'block'
        assert body['code'] == 'EHR_NOT_CONFIGURED'
        assert body['detail']['tenant'] == 't1'

    def test_validation_error_returns_400(self):
        response = unified_exception_handler(ValidationError('bad input'), {})

        assert response.status_code == 400
        body = json.loads(response.content)
        assert body['type'] == 'validation_error'

    def test_no_detail_field_when_none(self):
        response = unified_exception_handler(BlockError('blocked'), {})

        body = json.loads(response.content)
        assert 'detail' not in body

    def test_ehr_api_error_returns_502(self):
        response = unified_exception_handler(EhrApiError('ORCA', 503, 'down'), {})

        assert response.status_code == 502
        body = json.loads(response.content)
        assert body['type'] == 'upstream_error'
        assert body['message'] == 'ORCA API error: 503'

    def test_drf_validation_error_converted(self):
        response = unified_exception_handler(DRFValidationError({'csv': ['required']}), {})

        assert response.status_code == 400
        body = json.loads(response.content)
        assert body['code'] == 'VALIDATION_ERROR'
        assert body['detail'] == {'csv': ['required']}

    def test_parse_error_becomes_malformed_json(self):
        response = unified_exception_handler(ParseError('JSON parse error'), {})

        assert response.status_code == 400
        body = json.loads(response.content)
        assert body['type'] == 'validation_error'
        assert body['code'] == 'MALFORMED_JSON'
        assert 'JSON parse error' in body['detail']

    def test_unsupported_media_type_returns_415(self):
        response = unified_exception_handler(UnsupportedMediaType('text/plain'), {})

        assert response.status_code == 415
        body = json.loads(response.content)
        assert body['code'] == 'UNSUPPORTED_MEDIA_TYPE'

    def test_other_drf_exception_falls_back_to_default(self):
        response = unified_exception_handler(NotFound(), {})
        assert response.status_code == 404

    def test_non_api_exception_returns_none(self):
        """非 API 异常交回 DRF，由 DRF 继续冒泡。"""
        assert unified_exception_handler(RuntimeError('unexpected'), {}) is None
