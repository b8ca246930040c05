"""
HTTP 传输层模块

采用抽象基类设计，分发引擎只依赖 BaseTransport 接口。

模块结构:
    - BaseTransport: 抽象基类，定义 send/close 接口
    - TransportResponse: 原始响应 (status, headers, data)
    - AiohttpTransport: 基于 aiohttp 的默认实现
    - join_url: base_url 与相对路径拼接

设计模式:
    采用策略模式 (Strategy Pattern)，测试中可注入脚本化传输层。

使用示例:
    from erp_client.core.clients import AiohttpTransport

    transport = AiohttpTransport("http://localhost:3000/api", timeout=15)
"""

from .base import BaseTransport, TransportResponse
from .http_client import AiohttpTransport, join_url

__all__ = ["BaseTransport", "TransportResponse", "AiohttpTransport", "join_url"]
