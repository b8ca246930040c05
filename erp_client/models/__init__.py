"""
数据模型与异常定义模块

本模块提供 erp-client 的核心数据模型和异常类定义。

模块内容:
    数据模型 (request.py):
        - OutgoingRequest: 逻辑请求
        - ApiResponse: 成功响应
        - QueuedRequest: 持久化队列记录
        - RetryPolicy: 重试策略参数
        - ClientState: 客户端运行状态

    异常类 (errors.py):
        - ErpClientError: 基础异常类
        - ConfigError: 配置错误
        - StoreError: 持久化存储错误
        - HTTPStatusError: 非 2xx 响应 (内部使用)
        - ApiError: 调用方可见的规范化错误

    枚举:
        - ErrorKind: 错误分类

异常层次结构:
    Exception
    └── ErpClientError (基础异常)
        ├── ConfigError (配置错误)
        ├── StoreError (存储错误)
        ├── HTTPStatusError (HTTP 状态错误)
        └── ApiError (调用方可见错误)

使用示例:
    from erp_client.models import ApiError, ErrorKind

    try:
        await client.post("/orders", payload)
    except ApiError as e:
        if e.queued:
            ...  # 已写入持久化队列，稍后自动重放
"""

from .errors import (
    ApiError,
    ConfigError,
    ErpClientError,
    ErrorKind,
    HTTPStatusError,
    StoreError,
)
from .request import (
    ApiResponse,
    ClientState,
    OutgoingRequest,
    QueuedRequest,
    RetryPolicy,
)

__all__ = [
    "ErrorKind",
    "ErpClientError",
    "ConfigError",
    "StoreError",
    "HTTPStatusError",
    "ApiError",
    "OutgoingRequest",
    "ApiResponse",
    "QueuedRequest",
    "RetryPolicy",
    "ClientState",
]
