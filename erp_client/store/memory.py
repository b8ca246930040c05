"""
内存键值存储

进程内实现，不跨进程持久化。用于测试和无需离线能力的场景；
同一实例可在多个客户端之间复用以模拟重启。
"""

import copy
from typing import Any

from .base import DurableStore


class MemoryStore(DurableStore):
    """基于 dict 的存储 (dict 保持插入顺序)"""

    def __init__(self):
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Any | None:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def items(self, prefix: str = "") -> list[tuple[str, Any]]:
        return [
            (key, copy.deepcopy(value))
            for key, value in self._data.items()
            if key.startswith(prefix)
        ]

    def __len__(self) -> int:
        return len(self._data)
