"""
分发引擎

负责单个逻辑请求的网络尝试与内联重试:

    dispatch(request)
        │
        ├─ attempt(request, 0) ──成功──→ ApiResponse
        │        │失败
        │        ▼
        │   classify → RetryStrategy.decide(kind, retry_index, paused)
        │        │
        │        ├─ RETRY: sleep(delay(retry_index)) → attempt(request, retry_index + 1)
        │        ├─ INVALIDATE_SESSION: 清除凭证 + auth.session_invalidated → 抛出 ApiError
        │        └─ QUEUE / FAIL: 抛出 ApiError (是否入队由客户端决定)
        │
        └─ 调用方只会收到 ApiResponse 或 ApiError

请求装饰:
    - Authorization: Bearer <token>  (每次尝试重新从凭证存储读取)
    - Idempotency-Key: <key>         (仅变更类请求；首次分发时生成，之后原样复用)

并发:
    多个 dispatch() 之间相互独立，没有全局串行化；
    只有内联重试耗尽的请求才会经由持久化队列串行重放。
"""

import asyncio
import logging
from typing import Awaitable, Callable

from ..models.errors import ApiError, HTTPStatusError
from ..models.request import (
    AUTHORIZATION_HEADER,
    IDEMPOTENCY_HEADER,
    IDEMPOTENCY_STATUS_HEADER,
    ApiResponse,
    ClientState,
    OutgoingRequest,
)
from .clients.base import BaseTransport
from .credentials import CredentialStore
from .identity import DEFAULT_KEY_PREFIX, new_idempotency_key
from .notifier import SESSION_INVALIDATED, Notifier, emit
from .retry import RetryAction, RetryStrategy, classify, to_api_error

Sleeper = Callable[[float], Awaitable[None]]


def _header(headers: dict[str, str], name: str) -> str | None:
    """大小写不敏感地读取响应头"""
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


class DispatchEngine:
    """
    分发引擎

    Attributes:
        transport: HTTP 传输层
        strategy: 重试策略
        state: 共享的客户端状态
        credentials: 凭证存储 (可选)
        notifier: 通知器 (可选)
        timeout: 单次尝试超时 (秒)
        key_prefix: 幂等键命名空间前缀
    """

    def __init__(
        self,
        transport: BaseTransport,
        strategy: RetryStrategy,
        state: ClientState,
        credentials: CredentialStore | None = None,
        notifier: Notifier | None = None,
        timeout: float = 15.0,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.transport = transport
        self.strategy = strategy
        self.state = state
        self.credentials = credentials
        self.notifier = notifier
        self.timeout = timeout
        self.key_prefix = key_prefix
        self._sleep = sleep
        self._logger = logging.getLogger("erp_client.dispatch")

    def decorate(self, request: OutgoingRequest) -> dict[str, str]:
        """
        构造本次尝试的请求头

        变更类请求若还没有幂等键，会在这里生成并写回 request，
        之后的所有尝试都复用同一个键。
        """
        headers = dict(request.headers)

        token = self.credentials.get_token() if self.credentials else None
        if token:
            headers[AUTHORIZATION_HEADER] = f"Bearer {token}"
        else:
            headers.pop(AUTHORIZATION_HEADER, None)

        if request.is_mutating:
            if not request.idempotency_key:
                request.idempotency_key = new_idempotency_key(
                    request.method, request.url, self.key_prefix
                )
            headers[IDEMPOTENCY_HEADER] = request.idempotency_key
        else:
            headers.pop(IDEMPOTENCY_HEADER, None)

        return headers

    async def attempt(self, request: OutgoingRequest, retry_index: int) -> ApiResponse:
        """
        执行一次网络尝试

        Raises:
            HTTPStatusError: 非 2xx 响应
            aiohttp.ClientError / asyncio.TimeoutError: 传输层失败
        """
        headers = self.decorate(request)
        self._logger.debug(
            f"{request.method} {request.url} (尝试 #{retry_index}, "
            f"幂等键: {request.idempotency_key or '-'})"
        )

        response = await self.transport.send(
            request.method,
            request.url,
            headers=headers,
            json_data=request.data,
            params=request.params,
            timeout=self.timeout,
        )

        if not response.ok:
            raise HTTPStatusError(response.status, response.data, response.headers)

        replayed = (
            _header(response.headers, IDEMPOTENCY_STATUS_HEADER) or ""
        ).lower() == "replay"
        if replayed:
            self._logger.info(
                f"服务端识别为幂等重放: {request.method} {request.url} "
                f"(幂等键: {request.idempotency_key})"
            )

        return ApiResponse(
            status=response.status,
            data=response.data,
            headers=response.headers,
            replayed=replayed,
        )

    async def dispatch(self, request: OutgoingRequest) -> ApiResponse:
        """
        分发逻辑请求，按策略执行内联重试

        Returns:
            ApiResponse

        Raises:
            ApiError: 终止错误或内联重试耗尽
        """
        retry_index = 0
        while True:
            try:
                return await self.attempt(request, retry_index)
            except Exception as exc:
                kind = classify(exc)
                decision = self.strategy.decide(
                    kind, retry_index, paused=self.state.is_paused
                )

                if decision.action == RetryAction.RETRY:
                    self._logger.warning(
                        f"{request.method} {request.url} 失败 ({kind}): {exc}，"
                        f"{decision.delay_ms}ms 后重试 "
                        f"(第 {retry_index + 1}/{self.strategy.policy.max_retries} 次)"
                    )
                    await self._sleep(decision.delay_ms / 1000)
                    retry_index += 1
                    continue

                error = to_api_error(exc, request.request_id)
                error.details["attempts"] = retry_index + 1

                if decision.action == RetryAction.INVALIDATE_SESSION:
                    self._invalidate_session(request)

                self._log_failure(request, error, exc)
                raise error from exc

    def _invalidate_session(self, request: OutgoingRequest) -> None:
        self._logger.warning(f"未授权访问 {request.url}，清除凭证")
        if self.credentials is not None:
            self.credentials.invalidate()
        emit(
            self.notifier,
            SESSION_INVALIDATED,
            requestId=request.request_id,
            url=request.url,
        )

    def _log_failure(
        self, request: OutgoingRequest, error: ApiError, exc: BaseException
    ) -> None:
        status = error.status if error.status is not None else "-"
        if isinstance(exc, HTTPStatusError) and exc.status < 500:
            self._logger.info(
                f"{request.method} {request.url} 终止: HTTP {status} ({error.kind})"
            )
        else:
            self._logger.error(
                f"{request.method} {request.url} 失败: {error.kind} (HTTP {status}), "
                f"共尝试 {error.details.get('attempts')} 次"
            )
