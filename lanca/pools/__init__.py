from .accessor import PoolStateAccessor
from .models import PoolParameters, PoolSnapshot, QueueEntry
from .registry import PoolHandle, PoolRegistry

__all__ = [
    "PoolHandle",
    "PoolParameters",
    "PoolRegistry",
    "PoolSnapshot",
    "PoolStateAccessor",
    "QueueEntry",
]
