"""
凭证存储端口

客户端只读取外部管理的 Bearer 凭证，不负责登录或会话生命周期。
收到 401 时调用 invalidate(): 清除持有的凭证并通知已注册的认证组件
(例如强制重新登录)。

实现清单:
    StaticCredentialStore   进程内保存的令牌，可由认证组件随时 set_token()
    EnvCredentialStore      从环境变量读取令牌 (默认 ERP_API_TOKEN)
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Callable

SessionListener = Callable[[], None]


class CredentialStore(ABC):
    """
    凭证存储接口
    """

    def __init__(self):
        self._listeners: list[SessionListener] = []

    @abstractmethod
    def get_token(self) -> str | None:
        """返回当前 Bearer 令牌，未登录返回 None"""
        pass

    @abstractmethod
    def _clear(self) -> None:
        pass

    def add_listener(self, listener: SessionListener) -> None:
        """注册会话失效回调"""
        self._listeners.append(listener)

    def invalidate(self) -> None:
        """清除凭证并发出会话失效信号"""
        self._clear()
        logging.info("[认证] 凭证已清除，通知认证组件会话失效")

        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logging.error(f"[认证] 会话失效回调执行失败: {e}", exc_info=True)


class StaticCredentialStore(CredentialStore):
    """进程内令牌"""

    def __init__(self, token: str | None = None):
        super().__init__()
        self._token = token

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token

    def _clear(self) -> None:
        self._token = None


class EnvCredentialStore(CredentialStore):
    """
    环境变量令牌

    Attributes:
        variable: 环境变量名
    """

    def __init__(self, variable: str = "ERP_API_TOKEN"):
        super().__init__()
        self.variable = variable

    def get_token(self) -> str | None:
        token = os.environ.get(self.variable, "").strip()
        return token or None

    def _clear(self) -> None:
        os.environ.pop(self.variable, None)
