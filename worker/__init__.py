from .client import JobsClient
from .context import JobContext
from .heartbeat import HeartbeatExtender
from .registry import Handler, HandlerRegistry, Middleware
from .runner import WorkerRunner

__all__ = [
    "Handler",
    "HandlerRegistry",
    "HeartbeatExtender",
    "JobContext",
    "JobsClient",
    "Middleware",
    "WorkerRunner",
]
