"""
弹性请求客户端

调用方唯一需要接触的入口，组合以下组件:

    ┌──────────────────────────────────────────────────────────────┐
    │                      ResilientClient                          │
    │  get / post / put / patch / delete / request                  │
    │  pause / resume / flush_queue / clear_queue / get_status      │
    ├──────────────┬───────────────────┬───────────────────────────┤
    │ DispatchEngine│  QueueProcessor   │  ConnectivitySource        │
    │ (内联重试)    │  (持久化队列重放)  │  (离线⇄在线信号)           │
    ├──────────────┴───────────────────┴───────────────────────────┤
    │ BaseTransport (aiohttp)   DurableStore (sqlite / file / memory)│
    └──────────────────────────────────────────────────────────────┘

调用流程:
    1. 生成 request_id，变更类请求生成 (或沿用调用方提供的) 幂等键
    2. DispatchEngine 执行尝试与内联重试
    3. 失败时: 变更类请求 + 可排队错误 + 未暂停 → 写入持久化队列，
       ApiError.queued = True，并发出 request.queued 通知
    4. 无论是否入队，调用方都会收到 ApiError

排队条件只对变更类请求生效: GET 失败没有需要保存的副作用，直接返回错误。

暂停语义:
    pause() 之后失败的请求既不内联重试也不自动入队，错误直接返回给调用方；
    已经在途的调用照常完成。resume() 恢复并执行一次队列处理。

生命周期:
    async with ResilientClient(config, ...) as client:
        await client.post("/orders", {"sku": "A-1"})

    start() 订阅连通性信号，并重放上次会话遗留的队列记录。
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..config.client import ClientConfig
from ..config.settings import get_nested
from ..models.errors import ApiError, ConfigError, StoreError
from ..models.request import (
    ApiResponse,
    ClientState,
    OutgoingRequest,
    QueuedRequest,
)
from ..store.base import DurableStore
from ..store.factory import create_store
from ..store.memory import MemoryStore
from ..store.queue import (
    DEFAULT_DEAD_LETTER_NAMESPACE,
    DEFAULT_QUEUE_NAMESPACE,
    DeadLetterStore,
    DurableQueueStore,
)
from .clients.base import BaseTransport
from .clients.http_client import AiohttpTransport
from .connectivity import (
    ConnectivitySource,
    HealthProbeConnectivity,
    ManualConnectivity,
)
from .credentials import CredentialStore, EnvCredentialStore
from .dispatcher import DispatchEngine
from .identity import new_request_id
from .notifier import (
    NETWORK_OFFLINE,
    NETWORK_ONLINE,
    QUEUE_CLEARED,
    REQUEST_QUEUED,
    SYNC_PAUSED,
    SYNC_RESUMED,
    LoggingNotifier,
    Notifier,
    emit,
)
from .queue.processor import QueueProcessor, ReplayReport
from .retry import RetryStrategy

# GET 查询参数中视为 "无值" 的取值
_EMPTY_QUERY_VALUES = frozenset({"", "undefined", "null"})


def sanitize_url(url: str) -> str:
    """
    清理 URL 查询串

    删除值为空、"undefined" 或 "null" 的参数，相对 URL 与绝对 URL 均适用。

    Example:
        >>> sanitize_url("/orders?status=&page=2&q=undefined")
        '/orders?page=2'
    """
    if "?" not in url:
        return url

    parts = urlsplit(url)
    pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if value not in _EMPTY_QUERY_VALUES
    ]
    return urlunsplit(parts._replace(query=urlencode(pairs)))


def sanitize_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    """删除值为 None / 空串 / "undefined" / "null" 的查询参数"""
    if params is None:
        return None
    return {
        key: value
        for key, value in params.items()
        if value is not None
        and not (isinstance(value, str) and value in _EMPTY_QUERY_VALUES)
    }


class ResilientClient:
    """
    弹性请求客户端

    Attributes:
        config: 客户端构造配置
        state: 运行状态 (在线 / 暂停)，由所有组件共享
        transport: HTTP 传输层
        store: 持久化存储后端
        queue: 持久化请求队列
        dead_letters: 死信存储 (禁用时为 None)
        dispatcher: 分发引擎
        processor: 队列处理器
        connectivity: 连通性信号源
        credentials: 凭证存储
        notifier: 通知器
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: BaseTransport | None = None,
        store: DurableStore | None = None,
        connectivity: ConnectivitySource | None = None,
        credentials: CredentialStore | None = None,
        notifier: Notifier | None = None,
        dead_letters_enabled: bool = True,
        queue_namespace: str = DEFAULT_QUEUE_NAMESPACE,
        dead_letter_namespace: str = DEFAULT_DEAD_LETTER_NAMESPACE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.config = config or ClientConfig()
        self.state = ClientState()

        self.transport = transport or AiohttpTransport(
            self.config.base_url, timeout=self.config.timeout
        )
        self.store = store if store is not None else MemoryStore()
        self.connectivity = connectivity or ManualConnectivity()
        self.credentials = credentials
        self.notifier = notifier if notifier is not None else LoggingNotifier()

        self.strategy = RetryStrategy(self.config.retry, rng=rng)
        self.queue = DurableQueueStore(self.store, queue_namespace)
        self.dead_letters = (
            DeadLetterStore(self.store, dead_letter_namespace)
            if dead_letters_enabled
            else None
        )

        self.dispatcher = DispatchEngine(
            self.transport,
            self.strategy,
            self.state,
            credentials=self.credentials,
            notifier=self.notifier,
            timeout=self.config.timeout,
            key_prefix=self.config.idempotency_prefix,
            sleep=sleep,
        )
        self.processor = QueueProcessor(
            self.queue,
            self.dispatcher,
            self.state,
            self.config.retry,
            dead_letters=self.dead_letters,
            notifier=self.notifier,
        )

        self._started = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._background: set[asyncio.Task] = set()
        self._logger = logging.getLogger("erp_client.client")

    # ==================== 生命周期 ====================

    async def start(self) -> ReplayReport:
        """
        启动客户端

        订阅连通性信号并启动信号源，然后重放上次会话遗留的队列记录。
        重复调用只会执行重放。
        """
        if not self._started:
            self.connectivity.subscribe(self._on_connectivity_change)
            self._loop = asyncio.get_running_loop()
            await self.connectivity.start()
            self.state.is_online = self.connectivity.is_online
            self._started = True
            self._logger.info(
                f"客户端已启动 | base_url: {self.config.base_url}, "
                f"在线: {self.state.is_online}"
            )

        return await self.processor.process_queue()

    async def close(self) -> None:
        """停止信号源、等待后台重放任务结束并释放传输层与存储"""
        if self._started:
            self.connectivity.unsubscribe(self._on_connectivity_change)
            await self.connectivity.stop()
            self._started = False

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        await self.transport.close()
        await self.store.close()
        self._logger.info("客户端已关闭")

    async def __aenter__(self) -> "ResilientClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _on_connectivity_change(self, online: bool) -> None:
        was_online = self.state.is_online
        self.state.is_online = online

        if online == was_online:
            return

        emit(self.notifier, NETWORK_ONLINE if online else NETWORK_OFFLINE)
        if online:
            self._schedule_replay()

    def _schedule_replay(self) -> None:
        """
        安排一次后台重放

        信号可能来自其他线程 (没有运行中的事件循环)，
        此时通过 call_soon_threadsafe 交回 start() 所在的事件循环。
        """
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and (self._loop is None or running is self._loop):
            self._spawn_replay()
            return

        if self._loop is None or self._loop.is_closed():
            self._logger.warning("[队列] 客户端尚未在事件循环中启动，跳过联网后的自动重放")
            return
        self._loop.call_soon_threadsafe(self._spawn_replay)

    def _spawn_replay(self) -> None:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self.processor.process_queue())
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(f"[队列] 后台重放任务失败: {exc}", exc_info=exc)

    # ==================== HTTP 动词 ====================

    async def request(
        self,
        method: str,
        url: str,
        data: Any = None,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> ApiResponse:
        """
        发送一个逻辑请求

        Args:
            method: HTTP 方法
            url: 相对 base_url 的路径或绝对 URL
            data: JSON 请求体
            params: 查询参数
            headers: 附加请求头
            idempotency_key: 调用方指定的幂等键 (仅变更类请求生效)

        Returns:
            ApiResponse

        Raises:
            ApiError: 请求失败；queued 为 True 表示已写入持久化队列
        """
        method = method.upper()
        if method == "GET":
            url = sanitize_url(url)
            params = sanitize_params(params)

        request = OutgoingRequest(
            method=method,
            url=url,
            request_id=new_request_id(),
            data=data,
            params=params,
            headers=dict(headers or {}),
        )
        if request.is_mutating:
            request.idempotency_key = idempotency_key

        try:
            return await self.dispatcher.dispatch(request)
        except ApiError as e:
            if self._should_queue(request, e):
                await self._enqueue(request, e)
            raise

    def _should_queue(self, request: OutgoingRequest, error: ApiError) -> bool:
        return (
            request.is_mutating
            and self.strategy.is_queueable(error.kind)
            and not self.state.is_paused
        )

    async def _enqueue(self, request: OutgoingRequest, error: ApiError) -> None:
        record = QueuedRequest.from_request(request, last_error=error.message)
        try:
            await self.queue.append(record)
            queue_length = await self.queue.count()
        except StoreError as e:
            self._logger.error(f"[队列] 写入持久化队列失败，请求未入队: {e}")
            return

        error.queued = True
        self._logger.warning(
            f"[队列] 请求已入队: {record.method} {record.url} "
            f"(幂等键: {record.idempotency_key}, 队列长度: {queue_length})"
        )
        emit(
            self.notifier,
            REQUEST_QUEUED,
            id=record.id,
            method=record.method,
            url=record.url,
            queueLength=queue_length,
        )

    async def get(self, url: str, *, params: dict[str, Any] | None = None,
                  headers: dict[str, str] | None = None) -> Any:
        response = await self.request("GET", url, params=params, headers=headers)
        return response.data

    async def post(self, url: str, data: Any = None, **kwargs: Any) -> Any:
        response = await self.request("POST", url, data, **kwargs)
        return response.data

    async def put(self, url: str, data: Any = None, **kwargs: Any) -> Any:
        response = await self.request("PUT", url, data, **kwargs)
        return response.data

    async def patch(self, url: str, data: Any = None, **kwargs: Any) -> Any:
        response = await self.request("PATCH", url, data, **kwargs)
        return response.data

    async def delete(self, url: str, data: Any = None, **kwargs: Any) -> Any:
        response = await self.request("DELETE", url, data, **kwargs)
        return response.data

    async def health_check(self) -> bool:
        """请求一次健康检查端点 (不重试)，HTTP 200 返回 True"""
        try:
            response = await self.transport.send(
                "GET", self.config.health_path, timeout=self.config.timeout
            )
        except Exception as e:
            self._logger.warning(f"健康检查失败: {e}")
            return False
        return response.status == 200

    # ==================== 控制面 ====================

    def pause(self) -> None:
        """暂停同步 (幂等)"""
        if self.state.is_paused:
            return
        self.state.is_paused = True
        self._logger.info("[控制] 同步已暂停")
        emit(self.notifier, SYNC_PAUSED)

    async def resume(self) -> ReplayReport | None:
        """
        恢复同步 (幂等)

        从暂停状态恢复时执行一次队列处理并返回其结果；
        本来就处于活动状态时什么也不做，返回 None。
        """
        if not self.state.is_paused:
            return None
        self.state.is_paused = False
        self._logger.info("[控制] 同步已恢复")
        emit(self.notifier, SYNC_RESUMED)
        return await self.processor.process_queue()

    async def flush_queue(self) -> ReplayReport:
        """立即执行一次队列处理 (暂停或离线时跳过)"""
        return await self.processor.process_queue()

    async def get_queue(self) -> list[QueuedRequest]:
        """队列只读快照"""
        return await self.queue.list()

    async def clear_queue(self) -> int:
        """清空队列 (无条件，破坏性操作)，返回删除的记录数"""
        removed = await self.queue.clear()
        self._logger.warning(f"[控制] 队列已清空，删除 {removed} 条记录")
        emit(self.notifier, QUEUE_CLEARED, removed=removed)
        return removed

    async def get_status(self) -> dict[str, Any]:
        return {
            "isOnline": self.state.is_online,
            "isPaused": self.state.is_paused,
            "queueLength": await self.queue.count(),
        }

    # ==================== 死信 ====================

    async def get_dead_letters(self) -> list[QueuedRequest]:
        if self.dead_letters is None:
            return []
        return await self.dead_letters.list()

    async def clear_dead_letters(self) -> int:
        if self.dead_letters is None:
            return 0
        removed = await self.dead_letters.clear()
        self._logger.warning(f"[控制] 死信已清空，删除 {removed} 条记录")
        return removed

    async def requeue_dead_letter(self, record_id: str) -> QueuedRequest | None:
        """
        把死信记录移回请求队列

        记录保留原始 ID 与幂等键，tries 重置为 1。

        Returns:
            重新入队的记录，记录不存在时返回 None
        """
        if self.dead_letters is None:
            return None

        record = await self.dead_letters.get(record_id)
        if record is None:
            return None

        restored = QueuedRequest.from_dict({**record.to_dict(), "tries": 1})
        await self.queue.append(restored)
        await self.dead_letters.remove_by_id(record_id)
        self._logger.info(
            f"[控制] 死信重新入队: {restored.method} {restored.url} ({restored.id})"
        )
        return restored


def build_client(
    config: dict[str, Any], notifier: Notifier | None = None
) -> ResilientClient:
    """
    根据完整配置字典构建客户端

    Args:
        config: 与 DEFAULT_CONFIG 合并后的配置
        notifier: 通知器，None 时使用 LoggingNotifier

    Raises:
        ConfigError: 配置不合法
    """
    client_config = ClientConfig.from_config(config)
    transport = AiohttpTransport(client_config.base_url, timeout=client_config.timeout)

    connectivity_type = str(
        get_nested(config, "connectivity", "type", default="probe")
    ).lower()
    if connectivity_type == "probe":
        connectivity: ConnectivitySource = HealthProbeConnectivity(
            transport,
            health_path=client_config.health_path,
            interval=float(get_nested(config, "connectivity", "probe_interval", default=15)),
            timeout=float(get_nested(config, "connectivity", "probe_timeout", default=5)),
        )
    elif connectivity_type == "manual":
        connectivity = ManualConnectivity()
    else:
        raise ConfigError(
            f"不支持的连通性类型: {connectivity_type}",
            details={"supported": ["probe", "manual"]},
        )

    return ResilientClient(
        client_config,
        transport=transport,
        store=create_store(config),
        connectivity=connectivity,
        credentials=EnvCredentialStore(
            get_nested(config, "auth", "token_env", default="ERP_API_TOKEN")
        ),
        notifier=notifier,
        dead_letters_enabled=bool(
            get_nested(config, "dead_letter", "enabled", default=True)
        ),
        queue_namespace=get_nested(
            config, "store", "namespace", default=DEFAULT_QUEUE_NAMESPACE
        ),
        dead_letter_namespace=get_nested(
            config, "dead_letter", "namespace", default=DEFAULT_DEAD_LETTER_NAMESPACE
        ),
    )
