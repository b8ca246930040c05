"""
连通性信号源

客户端不自行判断网络状态，而是订阅一个 ConnectivitySource，
由它在 离线 ⇄ 在线 切换时通知订阅者。离线→在线会触发一次队列重放。

实现清单:
    ManualConnectivity
        由运维/测试代码调用 set_online() 驱动
    HealthProbeConnectivity
        后台任务定期 GET 健康检查端点，200 视为在线

订阅约定:
    - 回调签名: listener(is_online: bool) -> None (同步)
    - 只在状态发生变化时通知
    - 单个回调抛出的异常会被记录，不影响其他订阅者
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

from .clients.base import BaseTransport

ConnectivityListener = Callable[[bool], None]


class ConnectivitySource(ABC):
    """
    连通性信号源抽象基类

    Attributes:
        is_online: 当前是否在线
    """

    def __init__(self, initial: bool = True):
        self._online = initial
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, online: bool) -> None:
        """更新状态，仅在发生切换时通知订阅者"""
        if online == self._online:
            return
        self._online = online
        logging.info(f"[网络] 状态切换: {'在线' if online else '离线'}")

        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as e:
                logging.error(f"[网络] 连通性回调执行失败: {e}", exc_info=True)

    @abstractmethod
    async def start(self) -> None:
        """开始产生信号"""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """停止产生信号"""
        pass


class ManualConnectivity(ConnectivitySource):
    """手动驱动的连通性信号源"""

    def set_online(self, online: bool) -> None:
        self._publish(bool(online))

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None


class HealthProbeConnectivity(ConnectivitySource):
    """
    健康检查探测

    每隔 interval 秒请求一次 health_path，HTTP 200 视为在线，
    其他状态码、网络错误或超时视为离线。

    Attributes:
        transport: 用于探测的传输层
        health_path: 健康检查路径
        interval: 探测间隔 (秒)
        timeout: 单次探测超时 (秒)
    """

    def __init__(
        self,
        transport: BaseTransport,
        health_path: str = "/health",
        interval: float = 15.0,
        timeout: float = 5.0,
        initial: bool = True,
    ):
        super().__init__(initial)
        self.transport = transport
        self.health_path = health_path
        self.interval = interval
        self.timeout = timeout
        self._task: asyncio.Task | None = None

    async def probe(self) -> bool:
        """执行一次探测并发布结果"""
        try:
            response = await self.transport.send(
                "GET", self.health_path, timeout=self.timeout
            )
            online = response.status == 200
        except Exception as e:
            logging.debug(f"[网络] 健康检查失败: {e}")
            online = False

        self._publish(online)
        return online

    async def _run(self) -> None:
        while True:
            await self.probe()
            await asyncio.sleep(self.interval)

    async def start(self) -> None:
        if self._task is None or self._task.done():
            await self.probe()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
