"""统一业务异常模型。

传输层、会话存储抛出的错误都继承自 BusinessError，
由 TurnPipeline 在边界处统一转换为纯文本错误提示，UI 层不会看到结构化异常。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息，会原样拼进助手消息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、turn_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误：连接失败、DNS/TLS 错误或超时，发生在收到任何片段之前。"""


class StreamReadError(NetworkError):
    """读取事件流过程中的 I/O 错误。

    已经产出的片段仍然有效，TurnPipeline 会把错误提示追加在部分内容之后。
    """

    def __init__(self, message: str, fragments: int = 0, **extra):
        super().__init__(code="STREAM_READ_ERROR", message=message, fragments=fragments, **extra)
        self.fragments = fragments


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 状态码时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误。本项目每轮只尝试一次，不做重试。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class NotifyError(BusinessError):
    """会话日志已完成修改，但至少一个重绘回调抛出了异常。

    所有回调都已被调用过；first_error 保留第一个失败的原始异常。
    """

    def __init__(self, failed: int, first_error: BaseException):
        super().__init__(
            code="LISTENER_FAILED",
            message=f"{failed} listener(s) failed: {first_error!r}",
            failed=failed,
        )
        self.failed = failed
        self.first_error = first_error
