"""
Control Server 主模块

为运维与队列巡检界面提供 HTTP 控制面，是 ResilientClient 控制操作的远程入口。

功能:
    - 状态查询 (在线 / 暂停 / 队列长度)
    - 队列快照、手动 flush、清空
    - 暂停 / 恢复同步
    - 死信查询、清空、重新入队
    - 最近通知事件

启动方式:
    python cli.py serve -c config.yaml

端口:
    - Control Server: 8790 (默认)

鉴权:
    除 /api/health 外所有 /api/* 请求需携带 Authorization: Bearer <token>。
    token 优先读取环境变量 ERP_CONTROL_TOKEN，缺省时启动时自动生成并打印到日志。
    写操作要求 Content-Type: application/json，防止 localhost CSRF。
"""

import logging
import os
import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..config.settings import get_nested, init_logging, load_merged_config
from ..core.client import ResilientClient, build_client
from ..core.notifier import FanoutNotifier, LoggingNotifier, RecordingNotifier
from ..core.queue.processor import ReplayReport
from ..models.request import QueuedRequest


_CONTROL_AUTH_TOKEN: str | None = None
_CONTROL_AUTH_TOKEN_SOURCE = "env"
_PUBLIC_PATHS = frozenset({"/api/health"})


def get_control_auth_token() -> str:
    """获取控制面鉴权 Token（优先环境变量，缺省时自动生成）"""
    global _CONTROL_AUTH_TOKEN, _CONTROL_AUTH_TOKEN_SOURCE

    if _CONTROL_AUTH_TOKEN is None:
        token = os.environ.get("ERP_CONTROL_TOKEN", "").strip()
        if token:
            _CONTROL_AUTH_TOKEN = token
            _CONTROL_AUTH_TOKEN_SOURCE = "env"
        else:
            _CONTROL_AUTH_TOKEN = secrets.token_urlsafe(32)
            _CONTROL_AUTH_TOKEN_SOURCE = "generated"

    return _CONTROL_AUTH_TOKEN


def _extract_bearer_token(auth_header: str) -> str:
    """从 Authorization 头提取 Bearer token"""
    prefix = "Bearer "
    if not auth_header.startswith(prefix):
        return ""
    return auth_header[len(prefix) :].strip()


def _mask_token(token: str) -> str:
    """返回脱敏后的 token 文本（用于日志）"""
    if not token or len(token) <= 6:
        return "***"
    return f"{token[:3]}...{token[-3:]}"


# ========== Pydantic Models ==========


class StatusResponse(BaseModel):
    """客户端状态"""

    isOnline: bool
    isPaused: bool
    queueLength: int


class QueuedRecordModel(BaseModel):
    """队列 / 死信记录"""

    id: str
    method: str
    url: str
    data: Any = None
    headers: dict[str, str] = {}
    params: dict[str, Any] | None = None
    idempotencyKey: str | None = None
    createdAt: int
    tries: int
    lastError: str | None = None


class ReplayReportModel(BaseModel):
    """单次队列处理结果"""

    skipped: bool
    attempted: int
    delivered: list[str]
    failed: list[str]
    dropped: list[str]
    remaining: int


class ClearResponse(BaseModel):
    removed: int


class EventModel(BaseModel):
    code: str
    data: dict[str, Any]
    timestamp: float


def _records(records: list[QueuedRequest]) -> list[QueuedRecordModel]:
    return [QueuedRecordModel(**record.to_dict()) for record in records]


def _report(report: ReplayReport | None) -> ReplayReportModel | None:
    if report is None:
        return None
    return ReplayReportModel(**report.to_dict())


# ========== FastAPI App ==========


def create_control_app(
    client: ResilientClient,
    recorder: RecordingNotifier | None = None,
    auth_token: str | None = None,
    manage_lifecycle: bool = True,
) -> FastAPI:
    """
    创建控制面 FastAPI 应用

    Args:
        client: 被控制的客户端
        recorder: 通知记录器，用于 /api/events
        auth_token: 鉴权 token，None 时使用 get_control_auth_token()
        manage_lifecycle: 是否在应用生命周期内启动/关闭客户端
    """
    control_auth_token = auth_token or get_control_auth_token()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """应用生命周期管理"""
        if manage_lifecycle:
            await client.start()
        yield
        if manage_lifecycle:
            await client.close()

    app = FastAPI(
        title="ERP Client Control Panel",
        description="Queue inspection and sync control for the resilient ERP client",
        version=__version__,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def require_auth_for_api(request: Request, call_next):
        path = request.url.path
        if path.startswith("/api/") and path not in _PUBLIC_PATHS:
            if request.method == "OPTIONS":
                return await call_next(request)

            auth_token = _extract_bearer_token(request.headers.get("authorization", ""))
            if not (
                auth_token and secrets.compare_digest(auth_token, control_auth_token)
            ):
                return JSONResponse(
                    status_code=401,
                    headers={"WWW-Authenticate": "Bearer"},
                    content={"detail": "Unauthorized"},
                )

            # 防止 localhost CSRF：所有写操作要求 application/json
            if request.method in ("POST", "PUT", "PATCH", "DELETE"):
                content_type = request.headers.get("content-type", "")
                if not content_type.startswith("application/json"):
                    return JSONResponse(
                        status_code=415,
                        content={"detail": "Content-Type must be application/json"},
                    )

        return await call_next(request)

    # ========== Health ==========

    @app.get("/api/health")
    async def api_health():
        """控制面存活检查 (无需鉴权)"""
        return {"status": "ok", "version": __version__}

    # ========== Status / Control ==========

    @app.get("/api/status", response_model=StatusResponse)
    async def api_status():
        return await client.get_status()

    @app.post("/api/pause", response_model=StatusResponse)
    async def api_pause():
        client.pause()
        return await client.get_status()

    @app.post("/api/resume")
    async def api_resume():
        report = await client.resume()
        return {"status": await client.get_status(), "report": _report(report)}

    # ========== Queue ==========

    @app.get("/api/queue", response_model=list[QueuedRecordModel])
    async def api_queue():
        return _records(await client.get_queue())

    @app.post("/api/queue/flush", response_model=ReplayReportModel)
    async def api_flush_queue():
        return _report(await client.flush_queue())

    @app.delete("/api/queue", response_model=ClearResponse)
    async def api_clear_queue():
        return ClearResponse(removed=await client.clear_queue())

    # ========== Dead Letters ==========

    @app.get("/api/dead-letters", response_model=list[QueuedRecordModel])
    async def api_dead_letters():
        return _records(await client.get_dead_letters())

    @app.delete("/api/dead-letters", response_model=ClearResponse)
    async def api_clear_dead_letters():
        return ClearResponse(removed=await client.clear_dead_letters())

    @app.post("/api/dead-letters/{record_id}/requeue", response_model=QueuedRecordModel)
    async def api_requeue_dead_letter(record_id: str):
        record = await client.requeue_dead_letter(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Dead letter not found: {record_id}")
        return QueuedRecordModel(**record.to_dict())

    # ========== Events ==========

    @app.get("/api/events", response_model=list[EventModel])
    async def api_events(limit: int = Query(default=50, ge=1, le=500)):
        if recorder is None:
            return []
        return [EventModel(**event.to_dict()) for event in recorder.recent(limit)]

    return app


def run_control_server(
    config_path: str | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """
    加载配置、构建客户端并启动控制面

    Args:
        config_path: 配置文件路径
        host: 监听地址，None 时读取 control.host
        port: 监听端口，None 时读取 control.port
    """
    config = load_merged_config(config_path)
    init_logging(get_nested(config, "global", "log"))

    recorder = RecordingNotifier()
    client = build_client(config, notifier=FanoutNotifier(LoggingNotifier(), recorder))
    app = create_control_app(client, recorder=recorder)

    host = host or get_nested(config, "control", "host", default="127.0.0.1")
    port = port or int(get_nested(config, "control", "port", default=8790))

    token = get_control_auth_token()
    if _CONTROL_AUTH_TOKEN_SOURCE == "generated":
        logging.warning(f"未设置 ERP_CONTROL_TOKEN，已生成临时 token: {token}")
    else:
        logging.info(f"控制面 token 来自环境变量: {_mask_token(token)}")

    logging.info(f"控制面启动: http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")
