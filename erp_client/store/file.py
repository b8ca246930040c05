"""
JSON 文件键值存储实现

整个存储保存为一个 JSON 对象文件。每次写入先写临时文件并 fsync，
再用 os.replace 原子替换目标文件，因此崩溃后文件要么是旧版本，
要么是新版本，不会出现截断的 JSON。

适用于没有 SQLite 的环境或需要人工查看队列内容的场景；
每次写入都重写整个文件，队列规模应保持在数千条以内。
"""

import asyncio
import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from ..models.errors import StoreError
from .base import DurableStore


class JsonFileStore(DurableStore):
    """
    JSON 文件存储

    Attributes:
        file_path: 存储文件路径
    """

    def __init__(self, file_path: str | Path):
        self.file_path = Path(file_path)
        self._lock = threading.Lock()
        self._cache: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._cache is not None:
            return self._cache

        if not self.file_path.exists():
            self._cache = {}
            return self._cache

        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(
                f"存储文件不是合法 JSON: {e}", details={"path": str(self.file_path)}
            ) from e
        except OSError as e:
            raise StoreError(
                f"读取存储文件失败: {e}", details={"path": str(self.file_path)}
            ) from e

        if not isinstance(data, dict):
            raise StoreError(
                "存储文件格式错误: 根节点必须是对象",
                details={"path": str(self.file_path)},
            )

        logging.debug(f"JSON 存储已加载: {self.file_path} ({len(data)} 个键)")
        self._cache = data
        return self._cache

    def _flush(self, data: dict[str, Any]) -> None:
        """原子写入: 临时文件 + fsync + os.replace"""
        directory = self.file_path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.file_path.name}.", suffix=".tmp", dir=directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.file_path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreError(
                f"写入存储文件失败: {e}", details={"path": str(self.file_path)}
            ) from e

    def _mutate(self, key: str, value: Any | None, delete: bool) -> None:
        with self._lock:
            current = self._load()
            updated = dict(current)
            if delete:
                if key not in updated:
                    return
                del updated[key]
            else:
                updated[key] = value
            self._flush(updated)
            # 落盘成功后才更新缓存
            self._cache = updated

    def _get_sync(self, key: str) -> Any | None:
        with self._lock:
            value = self._load().get(key)
        return copy.deepcopy(value)

    def _items_sync(self, prefix: str) -> list[tuple[str, Any]]:
        with self._lock:
            snapshot = [
                (key, value)
                for key, value in self._load().items()
                if key.startswith(prefix)
            ]
        return copy.deepcopy(snapshot)

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: Any) -> None:
        # 先验证可序列化，避免写入一半才失败
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StoreError(f"值无法序列化为 JSON: {e}", details={"key": key}) from e
        await asyncio.to_thread(self._mutate, key, value, False)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._mutate, key, None, True)

    async def items(self, prefix: str = "") -> list[tuple[str, Any]]:
        return await asyncio.to_thread(self._items_sync, prefix)
