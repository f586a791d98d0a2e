from .patcher import ObjectPatcher, load_document, marshal_patch
from .result import BatchResult
from .retry import backoff_delays, is_conflict, retry_on_conflict
from .wait import poll_until

__all__ = [
    "BatchResult",
    "ObjectPatcher",
    "backoff_delays",
    "is_conflict",
    "load_document",
    "marshal_patch",
    "poll_until",
    "retry_on_conflict",
]
