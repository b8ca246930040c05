"""队列重放模块"""

from .processor import QueueProcessor, ReplayReport

__all__ = ["QueueProcessor", "ReplayReport"]
