"""
pytest fixtures - 测试共享资源

Fixtures 是 pytest 的核心概念，用于:
1. 提供测试数据
2. 设置/清理测试环境
3. 在多个测试间共享资源

本文件提供:
    ScriptedTransport   按脚本依次返回响应或抛出异常的传输层
    respond()           构造 TransportResponse 的快捷函数
    no_sleep            记录退避时长但不真正等待的 sleep 替身
"""

import asyncio
import random
import sys
from pathlib import Path
from typing import Any

import pytest

# 确保可以导入 erp_client 模块
sys.path.insert(0, str(Path(__file__).parent.parent))

from erp_client.config.client import ClientConfig
from erp_client.core.client import ResilientClient
from erp_client.core.clients.base import BaseTransport, TransportResponse
from erp_client.core.connectivity import ManualConnectivity
from erp_client.core.credentials import StaticCredentialStore
from erp_client.core.notifier import RecordingNotifier
from erp_client.models.request import RetryPolicy
from erp_client.store.memory import MemoryStore


def respond(status: int = 200, data: Any = None, headers: dict | None = None):
    """构造传输层响应"""
    return TransportResponse(status=status, headers=headers or {}, data=data)


class ScriptedTransport(BaseTransport):
    """
    脚本化传输层

    script 中的元素按调用顺序消费:
        - TransportResponse: 直接返回
        - Exception 实例: 抛出
    脚本耗尽后返回 default。
    """

    def __init__(self, script=None, default=None):
        self.script = list(script or [])
        self.default = default if default is not None else respond(200, {"ok": True})
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def push(self, *items) -> None:
        self.script.extend(items)

    async def send(
        self,
        method,
        url,
        *,
        headers=None,
        json_data=None,
        params=None,
        timeout=None,
    ):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": dict(headers or {}),
                "json": json_data,
                "params": params,
                "timeout": timeout,
            }
        )
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def keys(self) -> list[str | None]:
        """每次调用携带的 Idempotency-Key"""
        return [call["headers"].get("Idempotency-Key") for call in self.calls]


class SleepRecorder:
    """记录退避时长的 sleep 替身"""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


# ==================== 基础 Fixtures ====================


@pytest.fixture
def policy() -> RetryPolicy:
    """默认重试策略 (关闭抖动，便于断言)"""
    return RetryPolicy(max_retries=3, base_delay_ms=1000, max_delay_ms=10000, jitter=False)


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def no_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def recorder() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def connectivity() -> ManualConnectivity:
    return ManualConnectivity()


@pytest.fixture
def credentials() -> StaticCredentialStore:
    return StaticCredentialStore("test-token")


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_client(transport, memory_store, connectivity, credentials, recorder, no_sleep, policy):
    """
    客户端工厂

    默认共享同一组 fixture (传输层、存储、信号源等)，关键字参数可覆盖任意一项。
    """

    def _make(**overrides) -> ResilientClient:
        config = overrides.pop("config", None) or ClientConfig(
            base_url="http://erp.test/api", retry=policy
        )
        options = {
            "transport": transport,
            "store": memory_store,
            "connectivity": connectivity,
            "credentials": credentials,
            "notifier": recorder,
            "sleep": no_sleep,
            "rng": random.Random(7),
        }
        options.update(overrides)
        return ResilientClient(config, **options)

    return _make


# ==================== 配置 Fixtures ====================


@pytest.fixture
def sample_config() -> dict:
    """提供示例配置字典"""
    return {
        "global": {
            "log": {
                "level": "info",
                "format": "text",
                "output": "console",
            },
        },
        "client": {
            "base_url": "http://erp.test/api",
            "timeout_ms": 5000,
            "idempotency_prefix": "erp",
            "retry": {
                "max_retries": 2,
                "base_delay_ms": 500,
                "max_delay_ms": 4000,
                "jitter": False,
            },
        },
        "store": {"type": "memory"},
        "connectivity": {"type": "manual"},
    }


@pytest.fixture
def temp_config_file(tmp_path, sample_config) -> Path:
    """创建临时配置文件"""
    import yaml

    config_path = tmp_path / "config.yaml"
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(sample_config, f)
    return config_path
