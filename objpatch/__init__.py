from .config import PatcherConfig, RetryConfig
from .patch.patcher import ObjectPatcher
from .patch.result import BatchResult
from .spec.models import OperationKind, OperationSpec
from .spec.parse import parse_specs

__all__ = [
    "BatchResult",
    "ObjectPatcher",
    "OperationKind",
    "OperationSpec",
    "PatcherConfig",
    "RetryConfig",
    "parse_specs",
]
