"""
统一异常体系。

所有业务异常继承 BaseAppException，包含：
- type:        错误类型标识（validation_error / block / upstream_error）
- code:        业务错误码（TENANT_REQUIRED / EHR_NOT_CONFIGURED / EHR_API_ERROR / ...）
- message:     人类可读的描述
- detail:      可选的附加信息（dict / list / None）
- http_status: HTTP 状态码

View 层只需 raise，exception_handler 统一捕获并格式化响应。
同步编排层（services.py）则把异常吞成 SyncResult(status="error")，不会向外抛。
"""


class BaseAppException(Exception):
    """所有业务异常的基类。"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """输入验证失败。view 层抛出，400。"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class BlockError(BaseAppException):
    """业务规则阻止操作（例如租户未配置电子病历连携）。409。"""

    type = 'block'
    code = 'BUSINESS_BLOCK'
    http_status = 409


class EhrApiError(BaseAppException):
    """
    外部电子病历服务器返回非 2xx。

    写路径（push_patient / push_karte）直接抛出；
    读路径（get_patient / search_patients / get_karte_list）在 Adapter 内部吞掉。
    """

    type = 'upstream_error'
    code = 'EHR_API_ERROR'
    http_status = 502

    def __init__(self, provider, status_code, body=''):
        self.status_code = status_code
        self.body = body
        super().__init__(
            message=f"{provider} API error: {status_code}",
            detail={'status_code': status_code, 'body': body[:500]},
        )
