"""
配置管理模块

本模块提供 erp-client 的配置管理功能，包括配置文件加载、
默认配置定义、日志初始化和客户端构造配置。

导出清单:
    函数 (settings.py):
        load_config(config_path) -> dict
            加载 YAML 配置文件并解析为字典
        load_merged_config(config_path=None) -> dict
            加载配置文件并与默认配置深度合并
        init_logging(log_config) -> None
            初始化日志系统 (支持 text/json 格式, console/file 输出)
        merge_config(base, override) -> dict
            深度合并两个配置字典 (override 覆盖 base)
        get_nested(config, *keys, default=None) -> Any
            安全获取嵌套字典值
    常量:
        DEFAULT_CONFIG: 默认配置字典
    类 (client.py):
        ClientConfig: 规范化后的客户端构造配置

配置层次 (优先级从高到低):
    1. 运行时参数 (命令行参数)
    2. 配置文件 (config.yaml)
    3. 默认配置 (DEFAULT_CONFIG)
"""

from .client import ClientConfig
from .settings import (
    DEFAULT_CONFIG,
    get_nested,
    init_logging,
    load_config,
    load_merged_config,
    merge_config,
)

__all__ = [
    "ClientConfig",
    "DEFAULT_CONFIG",
    "get_nested",
    "init_logging",
    "load_config",
    "load_merged_config",
    "merge_config",
]
