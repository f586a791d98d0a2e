from __future__ import annotations

from enum import Enum
from typing import Any, Protocol


class PropagationPolicy(str, Enum):
    FOREGROUND = "Foreground"
    BACKGROUND = "Background"
    ORPHAN = "Orphan"


class PatchType(str, Enum):
    MERGE = "application/merge-patch+json"
    JSON = "application/json-patch+json"


# Whatever the locator hands out; stores only need to accept it back.
ResourceHandle = Any


class ResourceLocator(Protocol):
    """Resolves (apiVersion, kind) to an addressable resource."""

    def resolve(self, api_version: str, kind: str) -> ResourceHandle:
        """
        Return the handle for the resource serving ``kind``.

        Raises ResourceNotResolvedError if the store does not serve it.
        """
        ...


class ResourceStore(Protocol):
    """
    Protocol for the remote object store.

    Objects are plain JSON-compatible dicts. ``subresource`` is the empty
    string for the main resource.

    Implementations translate their failures into the objpatch taxonomy:
    NotFoundError, AlreadyExistsError, ConflictError or StoreError.
    """

    def create(
        self, handle: ResourceHandle, namespace: str, obj: dict[str, Any], subresource: str = ""
    ) -> dict[str, Any]:
        """Create ``obj``; AlreadyExistsError if it exists."""
        ...

    def get(
        self, handle: ResourceHandle, namespace: str, name: str, subresource: str = ""
    ) -> dict[str, Any]:
        """Read one object; NotFoundError if absent."""
        ...

    def update(
        self, handle: ResourceHandle, namespace: str, obj: dict[str, Any], subresource: str = ""
    ) -> dict[str, Any]:
        """Replace ``obj``; ConflictError if its resourceVersion is stale."""
        ...

    def patch(
        self,
        handle: ResourceHandle,
        namespace: str,
        name: str,
        patch_type: PatchType,
        data: bytes,
        subresource: str = "",
    ) -> dict[str, Any]:
        """Apply a serialized merge or JSON patch server-side."""
        ...

    def delete(
        self,
        handle: ResourceHandle,
        namespace: str,
        name: str,
        propagation: PropagationPolicy,
        subresource: str = "",
    ) -> None:
        """Delete one object; NotFoundError if absent."""
        ...
