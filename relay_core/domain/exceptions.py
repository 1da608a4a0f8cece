"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在编排层做统一捕获与日志记录。

注意：取消（asyncio.CancelledError）不属于业务错误，任何地方都不应包装它。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 可读错误信息。
        http_status: 上游返回的 HTTP 状态码（如有），默认 400。
        extra: 其他补充字段（例如 provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """上游 Provider 返回非 2xx 状态码时抛出。"""


class EmptyResponseError(BusinessError):
    """上游响应体无法解析为 JSON，或解析后找不到可用回复。"""


class ValidationError(BusinessError):
    """参数或配置校验失败（缺少密钥、非法 role 等），按 code 区分。"""
