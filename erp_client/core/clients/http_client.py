"""
aiohttp 传输层实现

与 ERP REST 后端通信的默认传输层。只负责单次请求，
重试、分类与排队由分发引擎处理。

请求约定:
    - 相对路径拼接到 base_url (如 "/orders" → "http://host/api/orders")
    - 请求体以 JSON 发送
    - 每次尝试使用独立的 ClientTimeout(total=timeout)

响应解码:
    - Content-Type 为 JSON 时解析为 Python 对象
    - 其他类型返回文本，空响应体返回 None
    - JSON 解析失败时回退为文本
    - 按响应声明的字符集解码 (缺省 UTF-8)，无法解码的字节替换为 U+FFFD，
      已被服务端接受的 2xx 响应不会因为响应体编码问题变成失败

错误处理:
    - 任何 HTTP 状态码都返回 TransportResponse
    - 连接超时: 抛出 asyncio.TimeoutError
    - 网络错误: 抛出 aiohttp.ClientError

使用示例:
    transport = AiohttpTransport("http://localhost:3000/api", timeout=15)
    response = await transport.send("GET", "/orders")
    await transport.close()
"""

import asyncio
import json
import logging
import time
from typing import Any

import aiohttp

from .base import BaseTransport, TransportResponse


def join_url(base_url: str, url: str) -> str:
    """拼接 base_url 与相对路径，绝对 URL 原样返回"""
    if "://" in url or not base_url:
        return url
    return base_url.rstrip("/") + "/" + url.lstrip("/")


class AiohttpTransport(BaseTransport):
    """
    aiohttp 传输层

    Attributes:
        base_url: API 根地址
        timeout: 默认超时 (秒)
        default_headers: 每个请求都附带的请求头
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        default_headers: dict[str, str] | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_headers = {"Content-Type": "application/json"}
        if default_headers:
            self.default_headers.update(default_headers)

        self._session: aiohttp.ClientSession | None = None
        self._session_loop: asyncio.AbstractEventLoop | None = None
        self._logger = logging.getLogger("erp_client.transport")

    async def _get_session(self) -> aiohttp.ClientSession:
        """获取或创建 HTTP 会话"""
        current_loop = asyncio.get_running_loop()

        # asyncio.run() 每次都会创建新事件循环，旧 loop 上的会话不能复用
        if self._session and not self._session.closed:
            if self._session_loop is current_loop:
                return self._session

            self._logger.warning("检测到事件循环切换，重建 HTTP 会话")
            try:
                await self._session.close()
            except Exception as e:  # pragma: no cover - 兜底清理
                self._logger.warning(f"关闭旧会话失败（将继续重建）: {e}")
            finally:
                self._session = None
                self._session_loop = None

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.default_headers)
            self._session_loop = current_loop
        return self._session

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
        full_url = join_url(self.base_url, url)
        request_timeout = aiohttp.ClientTimeout(total=timeout or self.timeout)
        session = await self._get_session()

        start_time = time.time()
        async with session.request(
            method,
            full_url,
            headers=headers,
            json=json_data,
            params=params,
            timeout=request_timeout,
        ) as resp:
            status = resp.status
            response_headers = dict(resp.headers)
            body_text = _read_text(await resp.read(), resp.charset)

        elapsed = time.time() - start_time
        self._logger.debug(f"{method} {full_url} → {status} ({elapsed:.2f}s)")

        return TransportResponse(
            status=status,
            headers=response_headers,
            data=_decode_body(body_text, response_headers),
        )

    async def close(self) -> None:
        """关闭 HTTP 会话"""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._session_loop = None


def _read_text(raw: bytes, charset: str | None) -> str:
    try:
        return raw.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def _decode_body(body_text: str, headers: dict[str, str]) -> Any:
    if not body_text:
        return None

    content_type = ""
    for key, value in headers.items():
        if key.lower() == "content-type":
            content_type = value.lower()
            break

    if "json" in content_type:
        try:
            return json.loads(body_text)
        except json.JSONDecodeError:
            return body_text
    return body_text
