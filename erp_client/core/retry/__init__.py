"""
重试策略模块

本模块提供错误分类、退避计算与重试决策，是分发引擎的决策中枢。

类/函数清单:
    compute_delay(retry_index, policy, rng=None) -> int
        指数退避 (毫秒)，可选 0~10% 抖动

    classify(error) -> ErrorKind
        将单次尝试的异常映射为错误分类
    to_api_error(error, request_id=None) -> ApiError
        将任意异常规范化为调用方可见的 ApiError

    RetryAction (Enum):
        RETRY / QUEUE / FAIL / INVALIDATE_SESSION
    RetryDecision (dataclass):
        action, delay_ms
    RetryStrategy:
        - decide(kind, retry_index, paused) -> RetryDecision

错误分类重试策略:
    ┌──────────────┬──────────┬──────────────┬────────────────────┐
    │ 错误类型      │ 内联重试 │ 耗尽后入队   │ 其他               │
    ├──────────────┼──────────┼──────────────┼────────────────────┤
    │ NETWORK      │ ✓        │ ✓            │                    │
    │ TIMEOUT      │ ✓        │ ✓            │                    │
    │ SERVER       │ ✓        │ ✓            │                    │
    │ RATE_LIMITED │ ✓        │ ✗            │ 耗尽后抛出         │
    │ UNAUTHORIZED │ ✗        │ ✗            │ 清除凭证+会话失效  │
    │ 其他 4xx     │ ✗        │ ✗            │ 立即抛出           │
    └──────────────┴──────────┴──────────────┴────────────────────┘

使用示例:
    from erp_client.core.retry import RetryStrategy, RetryAction, classify

    strategy = RetryStrategy(RetryPolicy(max_retries=3))
    decision = strategy.decide(classify(exc), retry_index=0)
    if decision.action == RetryAction.RETRY:
        await asyncio.sleep(decision.delay_ms / 1000)
"""

from .backoff import compute_delay
from .classifier import classify, classify_status, to_api_error, user_message
from .strategy import (
    QUEUEABLE_KINDS,
    RETRYABLE_KINDS,
    RetryAction,
    RetryDecision,
    RetryStrategy,
)

__all__ = [
    "compute_delay",
    "classify",
    "classify_status",
    "to_api_error",
    "user_message",
    "QUEUEABLE_KINDS",
    "RETRYABLE_KINDS",
    "RetryAction",
    "RetryDecision",
    "RetryStrategy",
]
