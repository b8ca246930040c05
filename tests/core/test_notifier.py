"""
通知器与凭证存储单元测试

被测模块:
    erp_client/core/notifier.py (emit, RecordingNotifier, FanoutNotifier)
    erp_client/core/credentials.py (StaticCredentialStore, EnvCredentialStore)

测试类/函数清单:
    TestNotifier                               通知器测试
        test_recording_bounded                 验证记录器按 maxlen 截断
        test_emit_swallows_notifier_errors     验证通知器异常不向外传播
        test_fanout_isolates_failures          验证扇出通知器单个失败不影响其他
        test_notification_to_dict              验证通知序列化
    TestCredentials                            凭证存储测试
        test_static_invalidate_notifies        验证 invalidate 清除令牌并调用回调
        test_env_store                         验证环境变量令牌读取与清除
"""

from erp_client.core.credentials import EnvCredentialStore, StaticCredentialStore
from erp_client.core.notifier import (
    REQUEST_QUEUED,
    FanoutNotifier,
    Notification,
    Notifier,
    RecordingNotifier,
    emit,
)


class BrokenNotifier(Notifier):
    def notify(self, notification):
        raise RuntimeError("sink down")


class TestNotifier:
    """通知器测试"""

    def test_recording_bounded(self):
        recorder = RecordingNotifier(maxlen=3)
        for index in range(5):
            emit(recorder, REQUEST_QUEUED, queueLength=index)

        assert [e.data["queueLength"] for e in recorder.events] == [2, 3, 4]
        assert len(recorder.recent(2)) == 2
        assert recorder.recent(0) == []

    def test_emit_swallows_notifier_errors(self):
        emit(BrokenNotifier(), REQUEST_QUEUED)
        emit(None, REQUEST_QUEUED)

    def test_fanout_isolates_failures(self):
        recorder = RecordingNotifier()
        emit(FanoutNotifier(BrokenNotifier(), recorder), REQUEST_QUEUED, id="req-1")
        assert recorder.codes == [REQUEST_QUEUED]

    def test_notification_to_dict(self):
        payload = Notification(code="sync.paused", data={"a": 1}, timestamp=1.5).to_dict()
        assert payload == {"code": "sync.paused", "data": {"a": 1}, "timestamp": 1.5}


class TestCredentials:
    """凭证存储测试"""

    def test_static_invalidate_notifies(self):
        store = StaticCredentialStore("abc")
        calls = []
        store.add_listener(lambda: calls.append("relogin"))

        assert store.get_token() == "abc"
        store.invalidate()

        assert store.get_token() is None
        assert calls == ["relogin"]

    def test_env_store(self, monkeypatch):
        monkeypatch.setenv("ERP_TEST_TOKEN", "env-token")
        store = EnvCredentialStore("ERP_TEST_TOKEN")

        assert store.get_token() == "env-token"
        store.invalidate()
        assert store.get_token() is None
