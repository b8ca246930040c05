"""
持久化键值存储抽象基类

DurableStore 是队列层唯一依赖的持久化能力，任何具备以下语义的
键值机制 (嵌入式数据库、文件、系统级存储) 都可以实现它:

    - get(key) / set(key, value) / delete(key)
    - items(prefix): 按首次写入顺序列出指定前缀下的全部键值
    - 单键写入是原子的: 重启后要么能读到完整值，要么不存在

值必须是 JSON 可序列化对象。所有方法都是协程，阻塞型后端
应通过 asyncio.to_thread 执行 I/O。
"""

from abc import ABC, abstractmethod
from typing import Any


class DurableStore(ABC):
    """
    持久化键值存储接口

    接口契约:
        - items() 的顺序为键首次写入的顺序，覆盖写不改变位置
        - delete() 对不存在的键是空操作
        - 底层故障抛出 StoreError
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """读取键值，不存在返回 None"""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """原子写入键值"""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """删除键"""
        pass

    @abstractmethod
    async def items(self, prefix: str = "") -> list[tuple[str, Any]]:
        """按写入顺序列出前缀下的全部 (key, value)"""
        pass

    async def delete_prefix(self, prefix: str) -> int:
        """
        删除前缀下的全部键

        Returns:
            删除的键数量
        """
        entries = await self.items(prefix)
        for key, _ in entries:
            await self.delete(key)
        return len(entries)

    async def close(self) -> None:
        """释放底层资源"""
        return None
