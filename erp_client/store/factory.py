"""
持久化存储工厂模块

根据配置中的 store.type 创建对应的 DurableStore 实例，
解耦存储后端的创建和使用。

支持的存储类型:
    - sqlite: SQLite 数据库文件 (默认)
        - 标准库实现，WAL 模式
        - 单键原子写入
    - file: JSON 文件
        - 临时文件 + os.replace 原子替换
        - 便于人工查看
    - memory: 进程内存储
        - 不跨进程持久化，用于测试

配置示例:
    store:
      type: sqlite
      path: ./data/erp_queue.db
      namespace: api-request-queue

扩展指南:
    添加新后端:
    1. 在 erp_client/store/ 下实现 DurableStore 子类
    2. 添加 _create_xxx_store() 辅助函数
    3. 在 create_store() 中添加分支
"""

import logging
from typing import Any

from ..models.errors import ConfigError
from .base import DurableStore
from .file import JsonFileStore
from .memory import MemoryStore
from .sqlite import SQLiteStore

DEFAULT_SQLITE_PATH = "./data/erp_queue.db"
DEFAULT_FILE_PATH = "./data/erp_queue.json"


def _normalize_nonempty_str(value: Any) -> str | None:
    """
    规范化配置值为非空字符串。

    - None / bool / 空白字符串 -> None
    - 其他类型 -> str(value).strip()
    """
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text if text else None


def create_store(config: dict[str, Any]) -> DurableStore:
    """
    根据配置创建持久化存储

    Args:
        config: 完整配置字典，读取其中的 store 配置节

    Returns:
        DurableStore 实例

    Raises:
        ConfigError: 存储类型不支持
    """
    store_cfg = config.get("store") or {}
    store_type = (_normalize_nonempty_str(store_cfg.get("type")) or "sqlite").lower()
    path = _normalize_nonempty_str(store_cfg.get("path"))

    if store_type == "sqlite":
        return _create_sqlite_store(path)
    if store_type == "file":
        return _create_file_store(path)
    if store_type == "memory":
        logging.warning("使用内存存储，队列不会在重启后保留")
        return MemoryStore()

    raise ConfigError(
        f"不支持的存储类型: {store_type}",
        details={"supported": ["sqlite", "file", "memory"]},
    )


def _create_sqlite_store(path: str | None) -> SQLiteStore:
    db_path = path or DEFAULT_SQLITE_PATH
    logging.info(f"使用 SQLite 存储: {db_path}")
    return SQLiteStore(db_path)


def _create_file_store(path: str | None) -> JsonFileStore:
    file_path = path or DEFAULT_FILE_PATH
    logging.info(f"使用 JSON 文件存储: {file_path}")
    return JsonFileStore(file_path)
