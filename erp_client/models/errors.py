"""
错误类型与异常定义

本模块定义 erp-client 的错误分类体系和自定义异常类。
所有交付给调用方的失败都被规范化为 ApiError，UI 层无需再做防御性分支。

错误分类设计:
    ┌──────────────┬────────────┬───────────────────────────────────────┐
    │ 错误类型      │ 来源       │ 处理策略                              │
    ├──────────────┼────────────┼───────────────────────────────────────┤
    │ NETWORK      │ 网络       │ 退避重试 → 耗尽后入队                 │
    │ TIMEOUT      │ 网络       │ 退避重试 → 耗尽后入队                 │
    │ SERVER       │ HTTP 5xx   │ 退避重试 → 耗尽后入队                 │
    │ RATE_LIMITED │ HTTP 429   │ 退避重试 → 耗尽后直接抛出 (不入队)    │
    │ UNAUTHORIZED │ HTTP 401   │ 清除凭证 + 会话失效信号，不重试       │
    │ FORBIDDEN    │ HTTP 403   │ 终止                                  │
    │ NOT_FOUND    │ HTTP 404   │ 终止                                  │
    │ VALIDATION   │ HTTP 422   │ 终止                                  │
    │ CLIENT       │ 其他 4xx   │ 终止                                  │
    │              │ 本地异常   │ 终止 (如请求体无法序列化为 JSON)      │
    └──────────────┴────────────┴───────────────────────────────────────┘

异常层次结构:
    Exception
    └── ErpClientError (基础异常)
        ├── ConfigError (配置错误)
        ├── StoreError (持久化存储错误)
        ├── HTTPStatusError (非 2xx 响应，内部使用，由分发引擎转换)
        └── ApiError (交付给调用方的规范化错误)

使用示例:
    from erp_client.models.errors import ApiError, ErrorKind

    try:
        await client.post("/orders", {"customer": "ACME"})
    except ApiError as e:
        if e.queued:
            ...  # 已持久化，联网后自动重放
        elif e.kind == ErrorKind.VALIDATION:
            ...
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """
    错误类型枚举

    继承自 str 使得枚举值可以直接写入日志和 JSON。
    """

    NETWORK = "network_error"
    TIMEOUT = "timeout"
    SERVER = "server_error"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation_error"
    CLIENT = "client_error"

    def __str__(self) -> str:
        return self.value

    @property
    def is_network(self) -> bool:
        """是否为网络层面的失败 (没有拿到 HTTP 响应)"""
        return self in (ErrorKind.NETWORK, ErrorKind.TIMEOUT)


class ErpClientError(Exception):
    """
    erp-client 基础异常类

    Attributes:
        message: 错误消息文本
        details: 附加的错误详情字典 (可选)
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | 详情: {self.details}"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


class ConfigError(ErpClientError):
    """
    配置错误

    常见场景:
        - 配置文件不存在或 YAML 语法错误
        - 重试参数不是正整数
        - 不支持的存储/连通性类型
    """

    pass


class StoreError(ErpClientError):
    """
    持久化存储错误

    SQLite / 文件后端的底层异常 (sqlite3.Error, OSError, JSON 损坏)
    统一包装为此异常。
    """

    pass


class HTTPStatusError(ErpClientError):
    """
    非 2xx HTTP 响应

    由分发引擎在单次尝试中抛出，随后交给错误分类器处理，
    不会直接到达调用方。

    Attributes:
        status: HTTP 状态码
        data: 已解码的响应体 (JSON 对象或文本)
        headers: 响应头
    """

    def __init__(
        self,
        status: int,
        data: Any = None,
        headers: dict[str, str] | None = None,
    ):
        self.status = status
        self.data = data
        self.headers = headers or {}
        super().__init__(f"HTTP {status}")

    @property
    def server_message(self) -> str | None:
        """服务端在响应体中给出的 message 字段"""
        if isinstance(self.data, dict):
            message = self.data.get("message")
            if isinstance(message, str) and message:
                return message
        return None


class ApiError(ErpClientError):
    """
    规范化 API 错误

    调用方收到的唯一异常类型。

    Attributes:
        kind: 错误分类 (ErrorKind)
        status: 原始 HTTP 状态码 (网络错误时为 None)
        is_network_error: 是否源于网络层 (区别于 HTTP 响应)
        queued: 请求是否已写入持久化队列等待重放
        request_id: 对应的本地请求 ID
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        status: int | None = None,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ):
        self.kind = kind
        self.status = status
        self.is_network_error = kind.is_network
        self.queued = False
        self.request_id = request_id
        super().__init__(message, details)

    def to_dict(self) -> dict[str, Any]:
        """序列化为 JSON 友好的字典"""
        return {
            "message": self.message,
            "kind": self.kind.value,
            "status": self.status,
            "isNetworkError": self.is_network_error,
            "queued": self.queued,
            "requestId": self.request_id,
        }
