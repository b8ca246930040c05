"""
弹性请求客户端集成测试

被测模块: erp_client/core/client.py (ResilientClient, sanitize_url, build_client)

使用脚本化传输层与内存/SQLite 存储，覆盖从调用到入队、重放的完整链路。

测试类/函数清单:
    TestVerbs                                  HTTP 动词测试
        test_get_returns_body                  验证 get() 返回解码后的响应体
        test_get_query_sanitized               验证 GET 删除空值查询参数
        test_post_carries_idempotency_key      验证 post() 携带幂等键
        test_caller_idempotency_key            验证调用方指定的幂等键
    TestQueueing                               自动入队测试
        test_timeout_exhausted_then_flush      验证超时耗尽后入队，flush 后队列清空
        test_server_error_queued_flag          验证 5xx 耗尽后 ApiError.queued 且发出通知
        test_terminal_error_never_queues       验证 DELETE 404 不入队且返回 404
        test_get_failure_not_queued            验证 GET 失败不入队
        test_paused_failure_not_queued         验证暂停时失败不入队
        test_queued_record_strips_authorization 验证入队记录不保存 Authorization
        test_rate_limited_surfaced_not_queued  验证 429 内联重试耗尽后直接抛出且不入队
    TestControlSurface                         控制面测试
        test_pause_idempotent_resume_once      验证 pause 幂等，resume 触发一次处理
        test_resume_when_active_is_noop        验证未暂停时 resume 不做任何事
        test_flush_honours_pause               验证 flush 在暂停时跳过
        test_clear_queue                       验证 clear_queue 无条件清空
        test_get_status                        验证状态字段
    TestConnectivity                           连通性联动测试
        test_online_transition_triggers_replay 验证离线→在线触发后台重放
        test_offline_blocks_replay             验证离线时 flush 跳过
        test_online_signal_from_worker_thread  验证其他线程发出的联网信号同样触发重放
    TestAiohttpBackend                         真实 aiohttp 传输层测试 (aiohttp.web 测试服务器)
        test_undecodable_success_body          验证 2xx 响应体无法按 UTF-8 解码时仍视为成功且只投递一次
        test_unserializable_body_is_client_error 验证无法序列化的请求体是终止的本地错误，不重试不入队
    TestDurability                             持久化测试
        test_restart_with_shared_store         验证重建客户端后记录保持原 ID 与幂等键
        test_restart_with_sqlite               验证 SQLite 存储跨实例保留记录
        test_start_replays_leftovers           验证 start() 重放上次会话遗留
    TestDeadLetters                            死信测试
        test_requeue_dead_letter               验证死信重新入队 tries=1 且保留幂等键
        test_requeue_missing                   验证不存在的死信返回 None
        test_dead_letters_disabled             验证禁用死信时相关操作为空操作
    TestSanitize                               查询清理测试
        test_sanitize_url                      验证 URL 查询串清理
        test_sanitize_params                   验证 params 字典清理
    TestBuildClient                            工厂测试
        test_build_from_config                 验证按配置构建客户端
        test_unknown_connectivity              验证未知连通性类型报错
        test_default_config                    验证默认构造配置
"""

import asyncio
import contextlib
import re
from datetime import datetime

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from erp_client.config.client import ClientConfig
from erp_client.core.client import (
    ResilientClient,
    build_client,
    sanitize_params,
    sanitize_url,
)
from erp_client.core.clients import AiohttpTransport
from erp_client.core.connectivity import ManualConnectivity
from erp_client.core.notifier import (
    NETWORK_OFFLINE,
    NETWORK_ONLINE,
    QUEUE_CLEARED,
    REQUEST_QUEUED,
    SYNC_PAUSED,
    SYNC_RESUMED,
)
from erp_client.models.errors import ApiError, ConfigError, ErrorKind
from erp_client.models.request import QueuedRequest
from erp_client.store.sqlite import SQLiteStore
from tests.conftest import ScriptedTransport, respond

KEY_PATTERN = re.compile(r"^erp-post-\d+-[a-z0-9]{9}$")


@contextlib.asynccontextmanager
async def serve_orders(body: bytes, content_type: str):
    """启动只接受 POST /api/orders 的 aiohttp 测试服务器，返回 (base_url, 请求体列表)"""
    received = []

    async def create_order(request):
        received.append(await request.read())
        return web.Response(status=201, body=body, content_type=content_type)

    app = web.Application()
    app.router.add_post("/api/orders", create_order)
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/api")), received
    finally:
        await server.close()


@pytest.mark.asyncio
class TestVerbs:
    """HTTP 动词测试"""

    async def test_get_returns_body(self, make_client, transport):
        transport.push(respond(200, [{"id": 1}]))
        client = make_client()

        assert await client.get("/orders") == [{"id": 1}]
        assert transport.calls[0]["method"] == "GET"

    async def test_get_query_sanitized(self, make_client, transport):
        client = make_client()
        await client.get(
            "/orders?status=&page=2&q=undefined&tag=null",
            params={"carrier": None, "lane": "north"},
        )

        call = transport.calls[0]
        assert call["url"] == "/orders?page=2"
        assert call["params"] == {"lane": "north"}

    async def test_post_carries_idempotency_key(self, make_client, transport):
        client = make_client()
        await client.post("/orders", {"sku": "A-1"})

        key = transport.calls[0]["headers"]["Idempotency-Key"]
        assert KEY_PATTERN.match(key)
        assert transport.calls[0]["json"] == {"sku": "A-1"}

    async def test_caller_idempotency_key(self, make_client, transport):
        client = make_client()
        await client.patch("/orders/1", {"qty": 2}, idempotency_key="my-key")
        assert transport.keys() == ["my-key"]


@pytest.mark.asyncio
class TestQueueing:
    """自动入队测试"""

    async def test_timeout_exhausted_then_flush(self, make_client, transport):
        transport.push(*[asyncio.TimeoutError() for _ in range(4)])
        client = make_client()

        with pytest.raises(ApiError) as exc_info:
            await client.post("/orders", {"sku": "A-1"})

        error = exc_info.value
        assert error.kind == ErrorKind.TIMEOUT
        assert error.is_network_error is True
        assert error.queued is True

        records = await client.get_queue()
        assert len(records) == 1
        assert records[0].tries == 1
        assert records[0].idempotency_key == transport.keys()[0]

        transport.push(respond(200, {"id": 1}))
        report = await client.flush_queue()

        assert report.delivered == [records[0].id]
        assert (await client.get_status())["queueLength"] == 0
        assert transport.keys()[-1] == records[0].idempotency_key

    async def test_server_error_queued_flag(self, make_client, transport, recorder):
        transport.default = respond(503)
        client = make_client()

        with pytest.raises(ApiError) as exc_info:
            await client.put("/orders/1", {"qty": 3})

        assert exc_info.value.queued is True
        assert exc_info.value.status == 503
        assert REQUEST_QUEUED in recorder.codes
        queued_event = recorder.events[-1]
        assert queued_event.data["queueLength"] == 1
        assert queued_event.data["method"] == "PUT"

    async def test_terminal_error_never_queues(self, make_client, transport):
        transport.push(respond(404, {"message": "missing"}))
        client = make_client()

        with pytest.raises(ApiError) as exc_info:
            await client.delete("/orders/7")

        assert exc_info.value.status == 404
        assert exc_info.value.queued is False
        assert await client.get_queue() == []

    async def test_get_failure_not_queued(self, make_client, transport):
        transport.default = respond(500)
        client = make_client()

        with pytest.raises(ApiError) as exc_info:
            await client.get("/orders")

        assert exc_info.value.queued is False
        assert await client.get_queue() == []

    async def test_paused_failure_not_queued(self, make_client, transport):
        transport.default = respond(503)
        client = make_client()
        client.pause()

        with pytest.raises(ApiError) as exc_info:
            await client.post("/orders", {"sku": "B"})

        assert exc_info.value.queued is False
        assert await client.get_queue() == []
        # 暂停时不做内联重试
        assert len(transport.calls) == 1

    async def test_queued_record_strips_authorization(self, make_client, transport):
        transport.default = respond(502)
        client = make_client()

        with pytest.raises(ApiError):
            await client.post(
                "/orders",
                {"sku": "C"},
                headers={"X-Trace": "t-1", "Authorization": "Bearer stale"},
            )

        record = (await client.get_queue())[0]
        assert "Authorization" not in record.headers
        assert record.headers["X-Trace"] == "t-1"
        assert record.headers["Idempotency-Key"] == record.idempotency_key

    async def test_rate_limited_surfaced_not_queued(self, make_client, transport, no_sleep):
        transport.default = respond(429)
        client = make_client()

        with pytest.raises(ApiError) as exc_info:
            await client.post("/orders", {"sku": "D"})

        error = exc_info.value
        assert error.kind == ErrorKind.RATE_LIMITED
        assert error.status == 429
        assert error.queued is False
        assert len(transport.calls) == 4
        assert len(no_sleep.delays) == 3
        assert await client.get_queue() == []


@pytest.mark.asyncio
class TestControlSurface:
    """控制面测试"""

    async def test_pause_idempotent_resume_once(self, make_client, recorder):
        client = make_client()
        calls = []
        original = client.processor.process_queue

        async def counting_process_queue():
            calls.append(True)
            return await original()

        client.processor.process_queue = counting_process_queue

        client.pause()
        client.pause()
        assert client.state.is_paused is True
        assert recorder.codes.count(SYNC_PAUSED) == 1

        await client.resume()
        assert client.state.is_paused is False
        assert len(calls) == 1
        assert recorder.codes.count(SYNC_RESUMED) == 1

    async def test_resume_when_active_is_noop(self, make_client, recorder):
        client = make_client()
        assert await client.resume() is None
        assert SYNC_RESUMED not in recorder.codes

    async def test_flush_honours_pause(self, make_client, memory_store, transport):
        client = make_client()
        await client.queue.append(
            QueuedRequest(id="req-1", method="POST", url="/orders", idempotency_key="k-1")
        )
        client.pause()

        report = await client.flush_queue()

        assert report.skipped is True
        assert transport.calls == []

        report = await client.resume()
        assert report.delivered == ["req-1"]

    async def test_clear_queue(self, make_client, recorder):
        client = make_client()
        for index in range(3):
            await client.queue.append(
                QueuedRequest(id=f"req-{index}", method="POST", url="/orders")
            )
        client.pause()

        assert await client.clear_queue() == 3
        assert await client.get_queue() == []
        assert QUEUE_CLEARED in recorder.codes

    async def test_get_status(self, make_client):
        client = make_client()
        await client.queue.append(QueuedRequest(id="req-1", method="POST", url="/x"))
        client.pause()

        assert await client.get_status() == {
            "isOnline": True,
            "isPaused": True,
            "queueLength": 1,
        }


@pytest.mark.asyncio
class TestConnectivity:
    """连通性联动测试"""

    async def test_online_transition_triggers_replay(
        self, make_client, connectivity, transport, recorder
    ):
        client = make_client()
        await client.start()

        connectivity.set_online(False)
        assert client.state.is_online is False
        await client.queue.append(
            QueuedRequest(id="req-1", method="POST", url="/orders", idempotency_key="k-1")
        )

        connectivity.set_online(True)
        await client.close()

        assert await client.get_queue() == []
        assert transport.keys() == ["k-1"]
        assert recorder.codes[:2] == [NETWORK_OFFLINE, NETWORK_ONLINE]

    async def test_offline_blocks_replay(self, make_client, transport):
        client = make_client(connectivity=ManualConnectivity(initial=False))
        await client.start()
        await client.queue.append(QueuedRequest(id="req-1", method="POST", url="/orders"))

        report = await client.flush_queue()

        assert report.skipped is True
        assert transport.calls == []
        await client.close()

    async def test_online_signal_from_worker_thread(self, make_client, connectivity, transport):
        client = make_client()
        await client.start()

        connectivity.set_online(False)
        await client.queue.append(
            QueuedRequest(id="req-1", method="POST", url="/orders", idempotency_key="k-1")
        )

        # 工作线程里没有运行中的事件循环
        await asyncio.to_thread(connectivity.set_online, True)
        await asyncio.sleep(0)
        await client.close()

        assert client.state.is_online is True
        assert await client.get_queue() == []
        assert transport.keys() == ["k-1"]


@pytest.mark.asyncio
class TestAiohttpBackend:
    """真实 aiohttp 传输层测试"""

    async def test_undecodable_success_body(self, make_client):
        async with serve_orders(b"\xff\xfe ok", "text/plain") as (base_url, received):
            client = make_client(transport=AiohttpTransport(base_url, timeout=5))
            data = await client.post("/orders", {"a": 1})
            queue = await client.get_queue()
            await client.close()

        assert len(received) == 1
        assert data.endswith(" ok")
        assert "\ufffd" in data
        assert queue == []

    async def test_unserializable_body_is_client_error(self, make_client, no_sleep):
        async with serve_orders(b"{}", "application/json") as (base_url, received):
            client = make_client(transport=AiohttpTransport(base_url, timeout=5))
            with pytest.raises(ApiError) as exc_info:
                await client.post("/orders", {"when": datetime(2024, 1, 1)})
            queue = await client.get_queue()
            await client.close()

        error = exc_info.value
        assert error.kind == ErrorKind.CLIENT
        assert error.is_network_error is False
        assert error.queued is False
        assert error.details["attempts"] == 1
        assert "TypeError" in error.details["cause"]
        assert received == []
        assert no_sleep.delays == []
        assert queue == []


@pytest.mark.asyncio
class TestDurability:
    """持久化测试"""

    async def test_restart_with_shared_store(self, make_client, memory_store):
        failing = ScriptedTransport(default=respond(500))
        first = make_client(transport=failing)

        with pytest.raises(ApiError):
            await first.post("/orders", {"sku": "D"})
        before = (await first.get_queue())[0]

        second = make_client(transport=ScriptedTransport(), store=memory_store)
        after = await second.get_queue()

        assert len(after) == 1
        assert after[0].id == before.id
        assert after[0].idempotency_key == before.idempotency_key

    async def test_restart_with_sqlite(self, make_client, tmp_path):
        db_path = tmp_path / "queue.db"
        first = make_client(
            transport=ScriptedTransport(default=respond(503)),
            store=SQLiteStore(db_path),
        )
        with pytest.raises(ApiError):
            await first.post("/orders", {"sku": "E"})
        before = (await first.get_queue())[0]
        await first.close()

        second = make_client(transport=ScriptedTransport(), store=SQLiteStore(db_path))
        after = await second.get_queue()
        await second.close()

        assert [(r.id, r.idempotency_key, r.tries) for r in after] == [
            (before.id, before.idempotency_key, 1)
        ]

    async def test_start_replays_leftovers(self, make_client, memory_store):
        first = make_client(transport=ScriptedTransport(default=respond(500)))
        with pytest.raises(ApiError):
            await first.post("/orders", {"sku": "F"})

        replay_transport = ScriptedTransport()
        second = make_client(transport=replay_transport, store=memory_store)
        report = await second.start()

        assert len(report.delivered) == 1
        assert await second.get_queue() == []
        await second.close()


@pytest.mark.asyncio
class TestDeadLetters:
    """死信测试"""

    async def test_requeue_dead_letter(self, make_client):
        client = make_client()
        await client.dead_letters.append(
            QueuedRequest(
                id="req-9",
                method="POST",
                url="/orders",
                idempotency_key="k-9",
                tries=4,
                last_error="Server error - please try again later",
            )
        )

        restored = await client.requeue_dead_letter("req-9")

        assert restored.tries == 1
        assert restored.idempotency_key == "k-9"
        assert [r.id for r in await client.get_queue()] == ["req-9"]
        assert await client.get_dead_letters() == []

    async def test_requeue_missing(self, make_client):
        client = make_client()
        assert await client.requeue_dead_letter("nope") is None

    async def test_dead_letters_disabled(self, make_client):
        client = make_client(dead_letters_enabled=False)
        assert client.dead_letters is None
        assert await client.get_dead_letters() == []
        assert await client.clear_dead_letters() == 0


class TestSanitize:
    """查询清理测试"""

    def test_sanitize_url(self):
        assert sanitize_url("/orders") == "/orders"
        assert sanitize_url("/orders?a=1&b=&c=undefined&d=null") == "/orders?a=1"
        assert (
            sanitize_url("http://erp.test/api/orders?page=&size=20")
            == "http://erp.test/api/orders?size=20"
        )
        assert sanitize_url("/orders?a=") == "/orders"

    def test_sanitize_params(self):
        assert sanitize_params(None) is None
        assert sanitize_params({"a": None, "b": 0, "c": "", "d": "x"}) == {"b": 0, "d": "x"}


class TestBuildClient:
    """工厂测试"""

    def test_build_from_config(self, sample_config):
        client = build_client(sample_config)

        assert isinstance(client, ResilientClient)
        assert isinstance(client.connectivity, ManualConnectivity)
        assert client.config.retry.max_retries == 2
        assert client.config.timeout == 5.0
        assert client.dead_letters is not None

    def test_unknown_connectivity(self, sample_config):
        sample_config["connectivity"] = {"type": "carrier-pigeon"}
        with pytest.raises(ConfigError):
            build_client(sample_config)

    def test_default_config(self):
        client = ResilientClient(ClientConfig(), transport=ScriptedTransport())
        assert client.config.base_url == "http://127.0.0.1:3000/api"
        assert client.config.retry.max_retries == 3
