"""
重试策略实现

本模块根据错误分类、当前重试序号和暂停状态决定分发引擎的下一步动作。

设计理念:
    不同类型的错误有不同的恢复策略:
    - 网络/超时/服务端错误: 多半是临时故障，退避后重试，预算耗尽则持久化入队
    - 限流 (429): 退避后重试，但耗尽后直接抛出，避免反复冲击被限流的端点
    - 未授权 (401): 凭证失效，清除凭证并通知认证组件，不重试
    - 其他 4xx: 请求本身有问题，重试无意义，立即抛出

决策流程:
    ┌─────────────────────────────────────────────────────────────────┐
    │  UNAUTHORIZED ─────────────────────────────→ INVALIDATE_SESSION │
    │  FORBIDDEN / NOT_FOUND / VALIDATION / CLIENT ─────────→ FAIL    │
    │  可重试类型:                                                     │
    │     暂停中 ─────────────────────────────────────────────→ FAIL  │
    │     retry_index < max_retries ──────→ RETRY (delay(retry_index)) │
    │     已耗尽: NETWORK / TIMEOUT / SERVER ─────────────────→ QUEUE │
    │             RATE_LIMITED ───────────────────────────────→ FAIL  │
    └─────────────────────────────────────────────────────────────────┘

配置说明:
    client:
      retry:
        max_retries: 3         # 内联重试次数上限，也是队列重放次数上限
        base_delay_ms: 1000    # 基础退避
        max_delay_ms: 10000    # 退避上限
        jitter: true           # 附加 0~10% 抖动
"""

import random
from dataclasses import dataclass
from enum import Enum

from ...models.errors import ErrorKind
from ...models.request import RetryPolicy
from .backoff import compute_delay

RETRYABLE_KINDS = frozenset(
    {ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.SERVER, ErrorKind.RATE_LIMITED}
)
QUEUEABLE_KINDS = frozenset({ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.SERVER})


class RetryAction(Enum):
    """
    重试决策动作枚举
    """

    RETRY = "retry"  # 退避后内联重试
    QUEUE = "queue"  # 内联预算耗尽，写入持久化队列
    FAIL = "fail"  # 以规范化错误终止
    INVALIDATE_SESSION = "invalidate_session"  # 清除凭证并发出会话失效信号


@dataclass
class RetryDecision:
    """
    重试决策结果

    Attributes:
        action: 决策动作
        delay_ms: 重试前的等待时长 (毫秒)，仅 RETRY 有效
    """

    action: RetryAction
    delay_ms: int = 0


class RetryStrategy:
    """
    重试策略管理器

    Attributes:
        policy: 重试策略参数
    """

    def __init__(self, policy: RetryPolicy, rng: random.Random | None = None):
        self.policy = policy
        self._rng = rng

    @staticmethod
    def is_retryable(kind: ErrorKind) -> bool:
        return kind in RETRYABLE_KINDS

    @staticmethod
    def is_queueable(kind: ErrorKind) -> bool:
        return kind in QUEUEABLE_KINDS

    def delay_for(self, retry_index: int) -> int:
        """第 retry_index 次失败后的退避时长 (毫秒)"""
        return compute_delay(retry_index, self.policy, self._rng)

    def decide(
        self, kind: ErrorKind, retry_index: int, paused: bool = False
    ) -> RetryDecision:
        """
        根据错误分类和重试序号做出决策

        Args:
            kind: 本次失败的错误分类
            retry_index: 本次失败尝试的序号 (首次尝试为 0)
            paused: 客户端是否处于暂停状态

        Returns:
            RetryDecision
        """
        if kind == ErrorKind.UNAUTHORIZED:
            return RetryDecision(action=RetryAction.INVALIDATE_SESSION)

        if not self.is_retryable(kind) or paused:
            return RetryDecision(action=RetryAction.FAIL)

        if retry_index < self.policy.max_retries:
            return RetryDecision(
                action=RetryAction.RETRY,
                delay_ms=self.delay_for(retry_index),
            )

        if self.is_queueable(kind):
            return RetryDecision(action=RetryAction.QUEUE)

        return RetryDecision(action=RetryAction.FAIL)
