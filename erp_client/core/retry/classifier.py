"""
错误分类器

将一次失败的尝试映射到固定的 ErrorKind 分类，并生成面向用户的错误消息。
纯函数，不依赖客户端状态。

分类规则:
    HTTPStatusError  → 按状态码: 401/403/404/422/429/5xx/其他 4xx
    超时             → TIMEOUT  (asyncio.TimeoutError / TimeoutError)
    传输层异常       → NETWORK  (aiohttp.ClientError / OSError: 连接失败、DNS、连接重置)
    其他异常         → CLIENT   (请求体无法序列化等本地错误，终止且不入队)
"""

import asyncio

import aiohttp

from ...models.errors import ApiError, ErrorKind, HTTPStatusError

_STATUS_KINDS = {
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMITED,
}

_MESSAGES = {
    ErrorKind.UNAUTHORIZED: "Please log in again",
    ErrorKind.FORBIDDEN: "You don't have permission to perform this action",
    ErrorKind.NOT_FOUND: "The requested resource was not found",
    ErrorKind.VALIDATION: "Please check your input and try again",
    ErrorKind.RATE_LIMITED: "Too many requests - please slow down",
    ErrorKind.SERVER: "Server error - please try again later",
    ErrorKind.TIMEOUT: "Request timeout - please check your connection",
    ErrorKind.NETWORK: "Network error - please check your connection",
    ErrorKind.CLIENT: "An unexpected error occurred",
}


def classify_status(status: int) -> ErrorKind:
    """按 HTTP 状态码分类 (调用方保证 status 非 2xx)"""
    if status >= 500:
        return ErrorKind.SERVER
    return _STATUS_KINDS.get(status, ErrorKind.CLIENT)


def classify(error: BaseException) -> ErrorKind:
    """
    将异常映射为错误分类

    Args:
        error: 单次尝试抛出的异常

    Returns:
        ErrorKind
    """
    if isinstance(error, HTTPStatusError):
        return classify_status(error.status)
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(error, (aiohttp.ClientError, OSError)):
        return ErrorKind.NETWORK
    return ErrorKind.CLIENT


def user_message(kind: ErrorKind, error: BaseException | None = None) -> str:
    """
    生成面向用户的错误消息

    422 与其他 4xx 优先使用服务端返回的 message 字段。
    """
    if isinstance(error, HTTPStatusError) and kind in (
        ErrorKind.VALIDATION,
        ErrorKind.CLIENT,
    ):
        return error.server_message or _MESSAGES[kind]
    return _MESSAGES[kind]


def to_api_error(error: BaseException, request_id: str | None = None) -> ApiError:
    """
    将任意异常规范化为 ApiError

    已经是 ApiError 的直接返回。
    """
    if isinstance(error, ApiError):
        return error

    kind = classify(error)
    status = error.status if isinstance(error, HTTPStatusError) else None
    details: dict = {"cause": f"{type(error).__name__}: {error}"}
    if isinstance(error, HTTPStatusError) and error.data is not None:
        details["response"] = error.data

    return ApiError(
        user_message(kind, error),
        kind=kind,
        status=status,
        details=details,
        request_id=request_id,
    )
