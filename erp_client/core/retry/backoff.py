"""
指数退避计算

    delay(n) = min(base_delay_ms * 2^n, max_delay_ms)
    jitter:    delay += uniform(0, 0.1 * delay)，结果向下取整

示例 (base=1000, max=10000, 无抖动):
    n:      0     1     2     3      4      5
    delay:  1000  2000  4000  8000   10000  10000
"""

import random

from ...models.request import RetryPolicy


def compute_delay(
    retry_index: int,
    policy: RetryPolicy,
    rng: random.Random | None = None,
) -> int:
    """
    计算第 retry_index 次重试前的等待时长 (毫秒)

    Args:
        retry_index: 已失败的尝试序号 (从 0 开始)
        policy: 重试策略
        rng: 随机数源，测试中可注入固定种子

    Returns:
        等待毫秒数
    """
    retry_index = max(retry_index, 0)
    delay = min(policy.base_delay_ms * (2**retry_index), policy.max_delay_ms)

    if policy.jitter:
        source = rng or random
        delay = delay + source.uniform(0, 0.1 * delay)

    return int(delay)
