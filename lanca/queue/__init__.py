from .manager import BatchResult, BatchState, QueueLimits, QueueManager
from .requests import QueueRequest, QueueRequests

__all__ = [
    "BatchResult",
    "BatchState",
    "QueueLimits",
    "QueueManager",
    "QueueRequest",
    "QueueRequests",
]
