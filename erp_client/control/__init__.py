"""
ERP Client Control Server

本模块提供 ResilientClient 的 HTTP 控制面，包括：
- 状态查询与暂停 / 恢复同步
- 持久化队列巡检、手动 flush、清空
- 死信巡检与重新入队

架构:
    python cli.py serve
           │
           ▼
    ┌─────────────────────────────────┐
    │  Control Server (FastAPI)       │
    │  127.0.0.1:8790                 │
    │                                 │
    │  ┌─────────────────────────────┐│
    │  │      ResilientClient        ││
    │  └─────────────────────────────┘│
    └─────────────────────────────────┘
              │ aiohttp
              ▼
       ┌──────────────┐
       │  ERP REST    │
       │  Backend     │
       └──────────────┘

使用方式:
    python cli.py serve -c config.yaml
"""

from .server import create_control_app, get_control_auth_token, run_control_server

__all__ = ["create_control_app", "get_control_auth_token", "run_control_server"]
