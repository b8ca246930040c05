"""
持久化请求队列与死信存储

在 DurableStore 之上按命名空间保存 QueuedRequest，每条记录占用一个键:

    <namespace>:<record.id>  →  QueuedRequest.to_dict()

单条记录的写入是原子的，处理器更新某条记录时不会重写整个队列，
进程在重放过程中崩溃最多丢失当前记录的最新一次更新。

类清单:
    DurableQueueStore
        - append(record) / list() / update(record) / remove_by_id(id) / clear() / count()
    DeadLetterStore (DurableQueueStore 子类)
        重试耗尽被驱逐的记录，供人工检查或重新入队
"""

import logging

from ..models.request import QueuedRequest
from .base import DurableStore

DEFAULT_QUEUE_NAMESPACE = "api-request-queue"
DEFAULT_DEAD_LETTER_NAMESPACE = "api-dead-letters"


class DurableQueueStore:
    """
    持久化请求队列

    Attributes:
        store: 底层键值存储
        namespace: 键命名空间
    """

    def __init__(self, store: DurableStore, namespace: str = DEFAULT_QUEUE_NAMESPACE):
        self.store = store
        self.namespace = namespace
        self._logger = logging.getLogger("erp_client.queue")

    @property
    def _prefix(self) -> str:
        return f"{self.namespace}:"

    def _key(self, record_id: str) -> str:
        return f"{self._prefix}{record_id}"

    async def append(self, record: QueuedRequest) -> None:
        """追加记录到队尾 (相同 ID 重复追加时覆盖，位置不变)"""
        await self.store.set(self._key(record.id), record.to_dict())

    async def list(self) -> list[QueuedRequest]:
        """按插入顺序返回全部记录"""
        records: list[QueuedRequest] = []
        for key, payload in await self.store.items(self._prefix):
            try:
                records.append(QueuedRequest.from_dict(payload))
            except (KeyError, TypeError, ValueError) as e:
                self._logger.warning(f"[队列] 跳过无法解析的记录 {key}: {e}")
        return records

    async def get(self, record_id: str) -> QueuedRequest | None:
        payload = await self.store.get(self._key(record_id))
        if payload is None:
            return None
        return QueuedRequest.from_dict(payload)

    async def update(self, record: QueuedRequest) -> bool:
        """
        写回已存在的记录

        记录已被移除 (例如期间执行了 clear) 时不会重新写入。

        Returns:
            是否写入成功
        """
        key = self._key(record.id)
        if await self.store.get(key) is None:
            return False
        await self.store.set(key, record.to_dict())
        return True

    async def remove_by_id(self, record_id: str) -> bool:
        """
        删除记录

        Returns:
            记录删除前是否存在
        """
        key = self._key(record_id)
        existed = await self.store.get(key) is not None
        await self.store.delete(key)
        return existed

    async def clear(self) -> int:
        """清空命名空间，返回删除的记录数"""
        return await self.store.delete_prefix(self._prefix)

    async def count(self) -> int:
        return len(await self.store.items(self._prefix))


class DeadLetterStore(DurableQueueStore):
    """
    死信存储

    保存重试耗尽后被驱逐的记录，保留最终的 tries 与 last_error。
    """

    def __init__(
        self, store: DurableStore, namespace: str = DEFAULT_DEAD_LETTER_NAMESPACE
    ):
        super().__init__(store, namespace)
