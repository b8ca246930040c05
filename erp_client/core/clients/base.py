"""
HTTP 传输层抽象基类

分发引擎只要求"发送一个 HTTP 请求，得到响应或异常"，
具体 HTTP 栈通过继承 BaseTransport 接入。

类/函数清单:
    TransportResponse (dataclass):
        status, headers, data: 任意状态码的原始响应
    BaseTransport (ABC 抽象基类):
        - send(method, url, headers, json_data, params, timeout) -> TransportResponse  [抽象方法]
        - close() -> None

接口契约:
    - 任意 HTTP 状态码都以 TransportResponse 返回，不因 4xx/5xx 抛异常
    - 网络错误抛出 aiohttp.ClientError / OSError 等异常
    - 超时抛出 asyncio.TimeoutError

设计目的:
    - 分发引擎与 HTTP 栈解耦
    - 便于单元测试 (可注入脚本化的 Mock 实现)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class TransportResponse:
    """
    传输层原始响应

    Attributes:
        status: HTTP 状态码
        headers: 响应头
        data: 解码后的响应体 (JSON 对象、文本或 None)
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class BaseTransport(ABC):
    """
    HTTP 传输层抽象基类
    """

    @abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json_data: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> TransportResponse:
        """
        发送单次 HTTP 请求

        Args:
            method: HTTP 方法
            url: 相对路径或绝对 URL
            headers: 请求头
            json_data: JSON 请求体
            params: 查询参数
            timeout: 本次请求超时 (秒)

        Returns:
            TransportResponse

        Raises:
            aiohttp.ClientError: 网络连接错误
            asyncio.TimeoutError: 请求超时
        """
        pass

    async def close(self) -> None:
        """释放连接资源"""
        return None
