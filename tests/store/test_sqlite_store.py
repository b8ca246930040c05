"""
SQLite 存储单元测试

被测模块: erp_client/store/sqlite.py (SQLiteStore)

测试类/函数清单:
    TestSQLiteStore                            SQLite 存储测试
        test_set_get_delete                    验证基本读写删除
        test_items_insertion_order             验证按首次写入顺序列出，更新不改变位置
        test_prefix_isolation                  验证前缀隔离与 delete_prefix
        test_persists_across_instances         验证重新打开后数据仍在
        test_wal_mode                          验证启用 WAL 日志模式
        test_unserializable_value              验证不可序列化的值抛出 StoreError
        test_corrupt_value                     验证损坏的 JSON 值抛出 StoreError
"""

import sqlite3

import pytest

from erp_client.models.errors import StoreError
from erp_client.store.sqlite import SQLiteStore


@pytest.mark.asyncio
class TestSQLiteStore:
    """SQLite 存储测试"""

    @pytest.fixture
    def db_path(self, tmp_path):
        return tmp_path / "nested" / "queue.db"

    async def test_set_get_delete(self, db_path):
        store = SQLiteStore(db_path)
        await store.set("q:1", {"id": "1", "tries": 1})

        assert await store.get("q:1") == {"id": "1", "tries": 1}
        await store.delete("q:1")
        assert await store.get("q:1") is None
        await store.close()

    async def test_items_insertion_order(self, db_path):
        store = SQLiteStore(db_path)
        for key in ("q:c", "q:a", "q:b"):
            await store.set(key, {"key": key})
        await store.set("q:c", {"key": "q:c", "tries": 2})

        items = await store.items("q:")
        assert [key for key, _ in items] == ["q:c", "q:a", "q:b"]
        assert items[0][1]["tries"] == 2
        await store.close()

    async def test_prefix_isolation(self, db_path):
        store = SQLiteStore(db_path)
        await store.set("queue:1", 1)
        await store.set("queue:2", 2)
        await store.set("dead:1", 3)

        assert await store.delete_prefix("queue:") == 2
        assert await store.items("queue:") == []
        assert await store.items("dead:") == [("dead:1", 3)]
        await store.close()

    async def test_persists_across_instances(self, db_path):
        first = SQLiteStore(db_path)
        await first.set("q:1", {"idempotencyKey": "erp-post-1-abc"})
        await first.close()

        second = SQLiteStore(db_path)
        assert await second.get("q:1") == {"idempotencyKey": "erp-post-1-abc"}
        await second.close()

    async def test_wal_mode(self, db_path):
        store = SQLiteStore(db_path)
        await store.set("k", "v")
        await store.close()

        conn = sqlite3.connect(str(db_path))
        try:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        finally:
            conn.close()
        assert mode.lower() == "wal"

    async def test_unserializable_value(self, db_path):
        store = SQLiteStore(db_path)
        with pytest.raises(StoreError):
            await store.set("k", object())
        await store.close()

    async def test_corrupt_value(self, db_path):
        store = SQLiteStore(db_path)
        await store.set("k", "ok")
        await store.close()

        conn = sqlite3.connect(str(db_path))
        conn.execute("UPDATE kv_store SET value = '{broken' WHERE key = 'k'")
        conn.commit()
        conn.close()

        reopened = SQLiteStore(db_path)
        with pytest.raises(StoreError):
            await reopened.get("k")
        await reopened.close()
