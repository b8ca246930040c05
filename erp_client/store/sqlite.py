"""
SQLite 键值存储实现

默认的持久化后端。每个键一行，单条语句在自动提交模式下执行，
写入要么完整落盘要么不存在，进程崩溃不会产生半条记录。

特点:
- Python 标准库自带，无需额外安装
- WAL 模式，崩溃恢复安全
- ON CONFLICT DO UPDATE 覆盖写保留 rowid，items() 按 rowid 排序即为首次写入顺序
- 阻塞 I/O 通过 asyncio.to_thread 执行，不阻塞事件循环

表结构:
    CREATE TABLE kv_store (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL      -- JSON
    )
"""

import asyncio
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from ..models.errors import StoreError
from .base import DurableStore

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class SQLiteStore(DurableStore):
    """
    SQLite 键值存储

    单连接 + 线程锁: asyncio.to_thread 可能在不同工作线程上执行，
    连接以 check_same_thread=False 打开，由 _lock 串行化访问。

    Attributes:
        db_path: 数据库文件路径
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                if self.db_path.parent and not self.db_path.parent.exists():
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)

                conn = sqlite3.connect(
                    str(self.db_path),
                    check_same_thread=False,
                    timeout=30.0,  # 锁等待超时
                    isolation_level=None,  # 自动提交模式
                )
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=FULL")
                conn.execute(_SCHEMA)
            except (sqlite3.Error, OSError) as e:
                raise StoreError(
                    f"打开 SQLite 存储失败: {e}", details={"path": str(self.db_path)}
                ) from e

            self._conn = conn
            logging.debug(f"SQLite 存储已打开: {self.db_path}")
        return self._conn

    def _execute(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute(sql, params)
                rows = cursor.fetchall()
                cursor.close()
                return rows
            except sqlite3.Error as e:
                raise StoreError(f"SQLite 操作失败: {e}", details={"sql": sql}) from e

    # ==================== 同步实现 ====================

    def _get_sync(self, key: str) -> Any | None:
        rows = self._execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        if not rows:
            return None
        return _decode(rows[0][0], key)

    def _set_sync(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(f"值无法序列化为 JSON: {e}", details={"key": key}) from e
        self._execute(
            "INSERT INTO kv_store (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, payload),
        )

    def _delete_sync(self, key: str) -> None:
        self._execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def _items_sync(self, prefix: str) -> list[tuple[str, Any]]:
        rows = self._execute(
            "SELECT key, value FROM kv_store "
            "WHERE substr(key, 1, ?) = ? ORDER BY rowid",
            (len(prefix), prefix),
        )
        return [(key, _decode(value, key)) for key, value in rows]

    def _close_sync(self) -> None:
        with self._lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                    logging.debug(f"SQLite 存储已关闭: {self.db_path}")
                except sqlite3.Error as e:
                    logging.warning(f"关闭 SQLite 连接时出错: {e}")
                finally:
                    self._conn = None

    # ==================== 异步接口 ====================

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    async def items(self, prefix: str = "") -> list[tuple[str, Any]]:
        return await asyncio.to_thread(self._items_sync, prefix)

    async def close(self) -> None:
        await asyncio.to_thread(self._close_sync)


def _decode(raw: str, key: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise StoreError(f"存储值不是合法 JSON: {e}", details={"key": key}) from e
