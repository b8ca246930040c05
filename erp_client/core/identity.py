"""
请求标识与幂等键生成

格式:
    请求 ID:  req-<epoch 毫秒>-<9 位 [a-z0-9]>
    幂等键:   <prefix>-<method 小写>-<epoch 毫秒>-<9 位 [a-z0-9]>
              例: erp-post-1718000000000-a8d7f6s5q

幂等键只在逻辑请求首次分发时生成一次，之后的内联重试与队列重放
都原样复用；每次尝试都生成新键会让服务端去重失效。
读类请求 (GET/HEAD/OPTIONS) 不携带幂等键。
"""

import secrets
import string
import time

from ..models.request import MUTATING_METHODS

DEFAULT_KEY_PREFIX = "erp"

_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 9


def _random_suffix(length: int = _SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def new_request_id() -> str:
    """生成进程内唯一的请求 ID"""
    return f"req-{_timestamp_ms()}-{_random_suffix()}"


def new_idempotency_key(
    method: str, url: str = "", prefix: str = DEFAULT_KEY_PREFIX
) -> str:
    """
    生成幂等键

    Args:
        method: HTTP 方法 (大小写均可)
        url: 请求路径，目前不参与键的构成，保留用于日志关联
        prefix: 命名空间前缀

    Returns:
        命名空间化的幂等键
    """
    method = (method or "GET").lower()
    return f"{prefix}-{method}-{_timestamp_ms()}-{_random_suffix()}"


def is_mutating(method: str | None) -> bool:
    """是否为变更类请求 (POST/PUT/PATCH/DELETE)"""
    return (method or "").upper() in MUTATING_METHODS
