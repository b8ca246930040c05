"""
通知端口

核心逻辑只发出结构化的 {code, data} 通知，不负责任何面向用户的文案；
UI / 监控组件根据 code 自行渲染 (例如弹出"已排队，联网后自动同步")。

通知代码:
    request.queued             {id, method, url, queueLength}
    queue.synced               {delivered}
    queue.record_dropped       {id, method, url, tries, lastError}
    queue.cleared              {removed}
    sync.paused                {}
    sync.resumed               {}
    auth.session_invalidated   {requestId, url}
    network.online             {}
    network.offline            {}

实现清单:
    LoggingNotifier     写入日志 (默认)
    RecordingNotifier   保存最近 N 条通知，供控制面 /api/events 与测试读取
    FanoutNotifier      转发给多个通知器
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from time import time
from typing import Any

REQUEST_QUEUED = "request.queued"
QUEUE_SYNCED = "queue.synced"
RECORD_DROPPED = "queue.record_dropped"
QUEUE_CLEARED = "queue.cleared"
SYNC_PAUSED = "sync.paused"
SYNC_RESUMED = "sync.resumed"
SESSION_INVALIDATED = "auth.session_invalidated"
NETWORK_ONLINE = "network.online"
NETWORK_OFFLINE = "network.offline"


@dataclass(frozen=True)
class Notification:
    """
    结构化通知

    Attributes:
        code: 通知代码
        data: 附加数据
        timestamp: 发出时间戳 (秒)
    """

    code: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "data": dict(self.data), "timestamp": self.timestamp}


class Notifier(ABC):
    """通知器接口"""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        pass


class LoggingNotifier(Notifier):
    """把通知写入日志"""

    def __init__(self, logger_name: str = "erp_client.events"):
        self._logger = logging.getLogger(logger_name)

    def notify(self, notification: Notification) -> None:
        self._logger.info(f"[通知] {notification.code} {notification.data}")


class RecordingNotifier(Notifier):
    """
    记录最近的通知

    Attributes:
        maxlen: 最多保留的通知条数
    """

    def __init__(self, maxlen: int = 200):
        self.maxlen = maxlen
        self._events: deque[Notification] = deque(maxlen=maxlen)

    def notify(self, notification: Notification) -> None:
        self._events.append(notification)

    @property
    def events(self) -> list[Notification]:
        return list(self._events)

    @property
    def codes(self) -> list[str]:
        return [event.code for event in self._events]

    def recent(self, limit: int = 50) -> list[Notification]:
        if limit <= 0:
            return []
        return list(self._events)[-limit:]

    def clear(self) -> None:
        self._events.clear()


def emit(notifier: Notifier | None, code: str, **data: Any) -> None:
    """发出通知，通知器自身的异常只记录日志，不影响请求流程"""
    if notifier is None:
        return
    try:
        notifier.notify(Notification(code=code, data=data))
    except Exception as e:
        logging.warning(f"发送通知 {code} 失败: {e}")


class FanoutNotifier(Notifier):
    """转发给多个通知器，单个通知器失败不影响其他通知器"""

    def __init__(self, *notifiers: Notifier):
        self.notifiers = list(notifiers)

    def notify(self, notification: Notification) -> None:
        for notifier in self.notifiers:
            try:
                notifier.notify(notification)
            except Exception as e:
                logging.warning(f"通知器 {type(notifier).__name__} 执行失败: {e}")
