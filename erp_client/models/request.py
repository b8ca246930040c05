"""
请求与队列记录数据模型

采用 dataclass 实现，所有模型都与具体 HTTP 栈解耦。

模型清单:
    OutgoingRequest: 一个逻辑请求 (一次调用，跨越所有内联重试与重放)
    ApiResponse: 成功响应 (2xx，包含幂等重放响应)
    QueuedRequest: 持久化队列中的一条记录 (不可变，更新时生成新实例)
    RetryPolicy: 重试策略参数 (客户端生命周期内不可变)
    ClientState: 客户端运行状态 (在线 / 暂停)

持久化格式 (QueuedRequest.to_dict):
    {
        "id": "req-1718000000000-k3j9x0a1b",
        "method": "POST",
        "url": "/orders",
        "data": {...},
        "headers": {"Idempotency-Key": "erp-post-..."},
        "params": null,
        "idempotencyKey": "erp-post-1718000000000-a8d7f6s5q",
        "createdAt": 1718000000000,
        "tries": 1,
        "lastError": "Network error"
    }
"""

from dataclasses import dataclass, field, replace
from time import time
from typing import Any

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

IDEMPOTENCY_HEADER = "Idempotency-Key"
IDEMPOTENCY_STATUS_HEADER = "X-Idempotency-Status"
AUTHORIZATION_HEADER = "Authorization"

# 持久化时不保存的请求头，重放时由分发引擎重新装饰
_VOLATILE_HEADERS = frozenset({AUTHORIZATION_HEADER.lower()})


def now_ms() -> int:
    """当前时间 (epoch 毫秒)"""
    return int(time() * 1000)


@dataclass
class OutgoingRequest:
    """
    逻辑请求

    request_id 与 idempotency_key 在首次分发前确定，
    此后所有内联重试与队列重放都复用同一对值。

    Attributes:
        method: HTTP 方法 (大写)
        url: 相对 base_url 的路径或绝对 URL
        request_id: 本地唯一请求 ID
        data: 请求体 (JSON 可序列化对象)
        params: 查询参数
        headers: 调用方附加的请求头
        idempotency_key: 幂等键 (仅变更类请求)
    """

    method: str
    url: str
    request_id: str
    data: Any = None
    params: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    idempotency_key: str | None = None

    def __post_init__(self):
        self.method = self.method.upper()

    @property
    def is_mutating(self) -> bool:
        return self.method in MUTATING_METHODS


@dataclass
class ApiResponse:
    """
    成功响应

    Attributes:
        status: HTTP 状态码 (2xx)
        data: 解码后的响应体
        headers: 响应头
        replayed: 服务端是否以幂等重放方式返回 (X-Idempotency-Status: replay)
    """

    status: int
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    replayed: bool = False


@dataclass(frozen=True)
class QueuedRequest:
    """
    持久化队列记录

    记录一旦创建，idempotency_key 永不改变；tries 只增不减。
    处理器通过 bump() 生成更新后的新记录并立即写回存储。

    Attributes:
        id: 记录 ID (等于原始请求的 request_id)
        method: HTTP 方法
        url: 请求路径
        data: 请求体
        headers: 请求头 (含 Idempotency-Key，不含 Authorization)
        params: 查询参数
        idempotency_key: 幂等键
        created_at: 入队时间 (epoch 毫秒)
        tries: 已投递次数 (入队时为 1)
        last_error: 最近一次失败原因
    """

    id: str
    method: str
    url: str
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] | None = None
    idempotency_key: str | None = None
    created_at: int = field(default_factory=now_ms)
    tries: int = 1
    last_error: str | None = None

    @classmethod
    def from_request(
        cls, request: OutgoingRequest, last_error: str | None = None
    ) -> "QueuedRequest":
        """从逻辑请求创建队列记录 (tries=1)"""
        headers = {
            key: value
            for key, value in request.headers.items()
            if key.lower() not in _VOLATILE_HEADERS
        }
        if request.idempotency_key:
            headers[IDEMPOTENCY_HEADER] = request.idempotency_key

        return cls(
            id=request.request_id,
            method=request.method,
            url=request.url,
            data=request.data,
            headers=headers,
            params=request.params,
            idempotency_key=request.idempotency_key,
            tries=1,
            last_error=last_error,
        )

    def to_request(self) -> OutgoingRequest:
        """还原为逻辑请求，用于重放 (保留原始 ID 与幂等键)"""
        return OutgoingRequest(
            method=self.method,
            url=self.url,
            request_id=self.id,
            data=self.data,
            params=self.params,
            headers=dict(self.headers),
            idempotency_key=self.idempotency_key,
        )

    def bump(self, last_error: str) -> "QueuedRequest":
        """记录一次失败的重放: tries + 1 并更新 last_error"""
        return replace(self, tries=self.tries + 1, last_error=last_error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "method": self.method,
            "url": self.url,
            "data": self.data,
            "headers": dict(self.headers),
            "params": self.params,
            "idempotencyKey": self.idempotency_key,
            "createdAt": self.created_at,
            "tries": self.tries,
            "lastError": self.last_error,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "QueuedRequest":
        return cls(
            id=payload["id"],
            method=payload["method"],
            url=payload["url"],
            data=payload.get("data"),
            headers=dict(payload.get("headers") or {}),
            params=payload.get("params"),
            idempotency_key=payload.get("idempotencyKey"),
            created_at=int(payload.get("createdAt") or now_ms()),
            tries=int(payload.get("tries", 1)),
            last_error=payload.get("lastError"),
        )


@dataclass(frozen=True)
class RetryPolicy:
    """
    重试策略参数

    Attributes:
        max_retries: 最大重试次数 (内联重试与队列重放共用此上限)
        base_delay_ms: 基础退避时长 (毫秒)
        max_delay_ms: 退避时长上限 (毫秒)
        jitter: 是否附加 0~10% 随机抖动
    """

    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000
    jitter: bool = True


@dataclass
class ClientState:
    """
    客户端运行状态

    每个客户端实例只构造一次，由分发引擎、队列处理器和控制面共享引用。
    """

    is_online: bool = True
    is_paused: bool = False

    @property
    def can_replay(self) -> bool:
        """是否允许处理持久化队列"""
        return self.is_online and not self.is_paused
