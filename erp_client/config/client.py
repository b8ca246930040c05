"""
客户端构造配置

把 YAML 配置字典规范化为 ClientConfig，并校验取值范围。

对应配置节:
    client:
      base_url: http://127.0.0.1:3000/api
      timeout_ms: 15000
      idempotency_prefix: erp
      health_path: /health
      retry:
        max_retries: 3
        base_delay_ms: 1000
        max_delay_ms: 10000
        jitter: true
"""

from dataclasses import dataclass, field
from typing import Any

from ..models.errors import ConfigError
from ..models.request import RetryPolicy


def _positive_int(value: Any, name: str, allow_zero: bool = False) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"配置项 {name} 必须是整数", details={"value": value})
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"配置项 {name} 必须是整数", details={"value": value}) from e

    minimum = 0 if allow_zero else 1
    if number < minimum:
        raise ConfigError(
            f"配置项 {name} 必须 >= {minimum}", details={"value": value}
        )
    return number


@dataclass(frozen=True)
class ClientConfig:
    """
    客户端构造配置

    Attributes:
        base_url: ERP API 根地址
        timeout_ms: 单次尝试超时 (毫秒)
        retry: 重试策略
        idempotency_prefix: 幂等键前缀
        health_path: 健康检查路径
    """

    base_url: str = "http://127.0.0.1:3000/api"
    timeout_ms: int = 15000
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    idempotency_prefix: str = "erp"
    health_path: str = "/health"

    @property
    def timeout(self) -> float:
        """超时 (秒)"""
        return self.timeout_ms / 1000

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "ClientConfig":
        """
        从完整配置字典构造

        Args:
            config: 完整配置 (已与 DEFAULT_CONFIG 合并或仅含 client 节)

        Raises:
            ConfigError: 取值不合法
        """
        client_cfg = config.get("client") or {}
        retry_cfg = client_cfg.get("retry") or {}

        base_url = str(client_cfg.get("base_url") or "").strip()
        if not base_url:
            raise ConfigError("配置文件 [client] 部分缺少 'base_url'")

        base_delay_ms = _positive_int(
            retry_cfg.get("base_delay_ms", 1000), "client.retry.base_delay_ms"
        )
        max_delay_ms = _positive_int(
            retry_cfg.get("max_delay_ms", 10000), "client.retry.max_delay_ms"
        )
        if max_delay_ms < base_delay_ms:
            raise ConfigError(
                "client.retry.max_delay_ms 不能小于 base_delay_ms",
                details={"base_delay_ms": base_delay_ms, "max_delay_ms": max_delay_ms},
            )

        policy = RetryPolicy(
            max_retries=_positive_int(
                retry_cfg.get("max_retries", 3),
                "client.retry.max_retries",
                allow_zero=True,
            ),
            base_delay_ms=base_delay_ms,
            max_delay_ms=max_delay_ms,
            jitter=bool(retry_cfg.get("jitter", True)),
        )

        return cls(
            base_url=base_url,
            timeout_ms=_positive_int(
                client_cfg.get("timeout_ms", 15000), "client.timeout_ms"
            ),
            retry=policy,
            idempotency_prefix=str(client_cfg.get("idempotency_prefix") or "erp"),
            health_path=str(client_cfg.get("health_path") or "/health"),
        )
