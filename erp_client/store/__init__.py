"""
持久化存储模块

本模块提供持久化键值存储后端以及建立在其上的请求队列与死信存储。
队列是客户端中唯一跨重启保留的实体。

模块结构:
    - DurableStore: 键值存储抽象基类 (get/set/delete/items)
    - MemoryStore / SQLiteStore / JsonFileStore: 具体后端
    - DurableQueueStore: 持久化请求队列 (append/list/update/remove_by_id/clear)
    - DeadLetterStore: 重试耗尽记录的死信存储
    - create_store(config): 按配置创建后端

使用示例:
    from erp_client.store import SQLiteStore, DurableQueueStore

    queue = DurableQueueStore(SQLiteStore("./data/erp_queue.db"))
    await queue.append(record)
    for record in await queue.list():
        ...
"""

from .base import DurableStore
from .factory import create_store
from .file import JsonFileStore
from .memory import MemoryStore
from .queue import (
    DEFAULT_DEAD_LETTER_NAMESPACE,
    DEFAULT_QUEUE_NAMESPACE,
    DeadLetterStore,
    DurableQueueStore,
)
from .sqlite import SQLiteStore

__all__ = [
    "DurableStore",
    "MemoryStore",
    "SQLiteStore",
    "JsonFileStore",
    "DurableQueueStore",
    "DeadLetterStore",
    "DEFAULT_QUEUE_NAMESPACE",
    "DEFAULT_DEAD_LETTER_NAMESPACE",
    "create_store",
]
