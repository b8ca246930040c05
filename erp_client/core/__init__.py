"""核心处理逻辑模块"""

from .client import ResilientClient, build_client, sanitize_params, sanitize_url
from .connectivity import (
    ConnectivitySource,
    HealthProbeConnectivity,
    ManualConnectivity,
)
from .credentials import CredentialStore, EnvCredentialStore, StaticCredentialStore
from .dispatcher import DispatchEngine
from .identity import new_idempotency_key, new_request_id
from .notifier import LoggingNotifier, Notification, Notifier, RecordingNotifier
from .queue import QueueProcessor, ReplayReport

__all__ = [
    "ResilientClient",
    "build_client",
    "sanitize_url",
    "sanitize_params",
    "ConnectivitySource",
    "ManualConnectivity",
    "HealthProbeConnectivity",
    "CredentialStore",
    "StaticCredentialStore",
    "EnvCredentialStore",
    "DispatchEngine",
    "new_request_id",
    "new_idempotency_key",
    "Notifier",
    "Notification",
    "LoggingNotifier",
    "RecordingNotifier",
    "QueueProcessor",
    "ReplayReport",
]
