"""
队列处理器

重放持久化队列中的请求。只有在 在线 且 未暂停 时才会执行。

处理流程 (单次 pass):
    1. 获取 pass 锁 (同一时刻只有一个 pass 修改队列)
    2. 对当前队列做快照，按插入顺序逐条处理
    3. 每条记录以全新的内联重试预算重放，复用原始幂等键
         成功 → 从队列删除
         失败 → tries + 1、更新 last_error 并立即写回
                tries > max_retries → 驱逐 (写入死信存储)
    4. 中途暂停或离线 → 停止本次 pass，剩余记录保持不变

触发时机:
    离线→在线切换、resume()、flush_queue()、客户端启动 (重放上次会话遗留)

顺序保证:
    单个 pass 内按插入顺序尝试；但前面的记录失败保留、后面的记录成功删除，
    跨 pass 不保证严格 FIFO。契约是 至少一次 + 尽力有序，
    幂等键保证服务端能识别重复投递。
"""

import asyncio
import logging
from dataclasses import dataclass, field

from ...models.errors import ApiError
from ...models.request import ClientState, QueuedRequest, RetryPolicy
from ...store.queue import DeadLetterStore, DurableQueueStore
from ..dispatcher import DispatchEngine
from ..notifier import QUEUE_SYNCED, RECORD_DROPPED, Notifier, emit


@dataclass
class ReplayReport:
    """
    单次 pass 的处理结果

    Attributes:
        skipped: 是否因暂停/离线而未执行
        attempted: 尝试重放的记录数
        delivered: 成功投递并删除的记录 ID
        failed: 失败后保留在队列中的记录 ID
        dropped: 重试耗尽被驱逐的记录 ID
        remaining: pass 结束时队列长度
    """

    skipped: bool = False
    attempted: int = 0
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    remaining: int = 0

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "attempted": self.attempted,
            "delivered": list(self.delivered),
            "failed": list(self.failed),
            "dropped": list(self.dropped),
            "remaining": self.remaining,
        }


class QueueProcessor:
    """
    队列处理器

    Attributes:
        queue: 持久化请求队列
        dispatcher: 分发引擎
        state: 共享的客户端状态
        policy: 重试策略 (max_retries 同时作为重放次数上限)
        dead_letters: 死信存储 (None 表示直接丢弃)
        notifier: 通知器
    """

    def __init__(
        self,
        queue: DurableQueueStore,
        dispatcher: DispatchEngine,
        state: ClientState,
        policy: RetryPolicy,
        dead_letters: DeadLetterStore | None = None,
        notifier: Notifier | None = None,
    ):
        self.queue = queue
        self.dispatcher = dispatcher
        self.state = state
        self.policy = policy
        self.dead_letters = dead_letters
        self.notifier = notifier
        self._pass_lock = asyncio.Lock()
        self._logger = logging.getLogger("erp_client.queue")

    @property
    def is_processing(self) -> bool:
        return self._pass_lock.locked()

    async def process_queue(self) -> ReplayReport:
        """
        执行一次队列处理 pass

        Returns:
            ReplayReport
        """
        if not self.state.can_replay:
            self._logger.debug(
                f"[队列] 跳过处理 (在线: {self.state.is_online}, 暂停: {self.state.is_paused})"
            )
            return ReplayReport(skipped=True, remaining=await self.queue.count())

        async with self._pass_lock:
            return await self._run_pass()

    async def _run_pass(self) -> ReplayReport:
        report = ReplayReport()
        records = await self.queue.list()
        if not records:
            return report

        self._logger.info(f"[队列] 开始处理 {len(records)} 条待重放请求")

        for record in records:
            if not self.state.can_replay:
                self._logger.info("[队列] 客户端已暂停或离线，中止本次处理")
                break

            report.attempted += 1
            try:
                response = await self.dispatcher.dispatch(record.to_request())
            except ApiError as e:
                await self._handle_failure(record, e, report)
            else:
                await self.queue.remove_by_id(record.id)
                report.delivered.append(record.id)
                suffix = " (服务端幂等重放)" if response.replayed else ""
                self._logger.info(
                    f"[队列] 重放成功: {record.method} {record.url}{suffix}"
                )

        report.remaining = await self.queue.count()

        if report.delivered and report.remaining == 0:
            emit(self.notifier, QUEUE_SYNCED, delivered=len(report.delivered))

        self._logger.info(
            f"[队列] 处理完成 | 成功: {len(report.delivered)}, 失败: {len(report.failed)}, "
            f"驱逐: {len(report.dropped)}, 剩余: {report.remaining}"
        )
        return report

    async def _handle_failure(
        self, record: QueuedRequest, error: ApiError, report: ReplayReport
    ) -> None:
        updated = record.bump(error.message)

        if updated.tries > self.policy.max_retries:
            await self._evict(updated)
            report.dropped.append(record.id)
            return

        await self.queue.update(updated)
        report.failed.append(record.id)
        self._logger.warning(
            f"[队列] 重放失败: {record.method} {record.url} "
            f"(第 {updated.tries} 次, {error.kind}): {error.message}"
        )

    async def _evict(self, record: QueuedRequest) -> None:
        """驱逐重试耗尽的记录: 先写死信再删除，保证记录不会凭空消失"""
        if self.dead_letters is not None:
            await self.dead_letters.append(record)

        await self.queue.remove_by_id(record.id)
        self._logger.warning(
            f"[队列] 驱逐记录 {record.id}: {record.method} {record.url} "
            f"已尝试 {record.tries} 次, 最后错误: {record.last_error}"
        )
        emit(
            self.notifier,
            RECORD_DROPPED,
            id=record.id,
            method=record.method,
            url=record.url,
            tries=record.tries,
            lastError=record.last_error,
        )
