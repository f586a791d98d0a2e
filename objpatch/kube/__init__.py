from .dynamic import KubeStore, translate_api_error
from .store import PatchType, PropagationPolicy, ResourceLocator, ResourceStore

__all__ = [
    "KubeStore",
    "PatchType",
    "PropagationPolicy",
    "ResourceLocator",
    "ResourceStore",
    "translate_api_error",
]
