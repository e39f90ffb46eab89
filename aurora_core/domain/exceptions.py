"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在编排层或 API 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、provider 等）。
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
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误，核心层不做自动重试。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class ConversationNotFoundError(BusinessError):
    """指定的会话 ID 不存在。"""

    def __init__(self, conversation_id: str):
        super().__init__(
            code="CONVERSATION_NOT_FOUND",
            message=f"Conversation not found: {conversation_id}",
            http_status=404,
            conversation_id=conversation_id,
        )


class ConversationBusyError(BusinessError):
    """同一会话已有一轮对话正在处理。

    与其他失败区分开：调用方可以稍后重试，核心层不会自动重试。
    """

    def __init__(self, conversation_id: str):
        super().__init__(
            code="CONVERSATION_BUSY",
            message="Conversation is already being processed",
            http_status=409,
            conversation_id=conversation_id,
        )


class ToolInvocationError(BusinessError):
    """工具参数非法或工具内部失败；只在工具注册表内部使用，不会冒泡到对话层。"""

    def __init__(self, tool_name: str, message: str):
        super().__init__(code="TOOL_INVOCATION_ERROR", message=message, tool_name=tool_name)


class ModelInvocationError(BusinessError):
    """调用语言模型失败，本轮对话中止。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="MODEL_INVOCATION_ERROR", message=message, http_status=502, **extra)


class PersistenceError(BusinessError):
    """会话存储读写失败。"""

    def __init__(self, code: str, message: str, **extra):
        super().__init__(code=code, message=message, http_status=500, **extra)
