from __future__ import annotations

import json
import logging
from typing import Any, Optional

import urllib3
from kubernetes import client, config
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import (
    DynamicApiError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
)

from ..errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ResourceNotResolvedError,
    StoreError,
)
from .store import PatchType, PropagationPolicy

logger = logging.getLogger(__name__)


def _status_reason(exc: DynamicApiError) -> str:
    """Return the machine-readable reason from a Status body, if any."""
    body = getattr(exc, "body", None)
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        status = json.loads(body) if body else {}
    except ValueError:
        return ""
    if not isinstance(status, dict):
        return ""
    return str(status.get("reason") or "")


def translate_api_error(exc: DynamicApiError) -> StoreError:
    """
    Map a kubernetes API error to the objpatch taxonomy.

    409 covers both "AlreadyExists" (create) and "Conflict" (stale
    resourceVersion); the Status reason tells them apart.
    """
    status = getattr(exc, "status", None)
    message = str(exc)
    if status == 404:
        return NotFoundError(message)
    if status == 409:
        if _status_reason(exc) == "AlreadyExists":
            return AlreadyExistsError(message)
        return ConflictError(message)
    return StoreError(message)


class KubeStore:
    """
    ResourceLocator and ResourceStore over the kubernetes dynamic client.

    Usage:
        store = KubeStore.from_config()
        patcher = ObjectPatcher(store)
    """

    def __init__(self, dynamic_client: DynamicClient) -> None:
        self.client = dynamic_client

    @classmethod
    def from_config(
        cls,
        config_file: Optional[str] = None,
        context: Optional[str] = None,
    ) -> "KubeStore":
        """Build a store from in-cluster config, falling back to kubeconfig."""
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config(config_file=config_file, context=context)
        return cls(DynamicClient(client.ApiClient()))

    def resolve(self, api_version: str, kind: str) -> Any:
        try:
            return self.client.resources.get(api_version=api_version, kind=kind)
        except (ResourceNotFoundError, ResourceNotUniqueError) as exc:
            raise ResourceNotResolvedError(
                f"cannot resolve resource for apiVersion={api_version!r} kind={kind!r}: {exc}"
            ) from exc

    def _path(self, handle: Any, namespace: str, name: Optional[str], subresource: str) -> str:
        ns = namespace if handle.namespaced and namespace else None
        if subresource:
            try:
                sub = handle.subresources[subresource]
            except KeyError:
                raise ResourceNotResolvedError(
                    f"{handle.kind} has no subresource {subresource!r}"
                ) from None
            return sub.path(name=name, namespace=ns)
        return handle.path(name=name, namespace=ns)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            return self.client.request(method, path, **kwargs)
        except DynamicApiError as exc:
            raise translate_api_error(exc) from exc
        except urllib3.exceptions.HTTPError as exc:
            raise StoreError(f"{method.upper()} {path}: {exc}") from exc

    @staticmethod
    def _to_dict(result: Any) -> dict[str, Any]:
        if result is None:
            return {}
        if hasattr(result, "to_dict"):
            return result.to_dict()
        return dict(result)

    def create(
        self, handle: Any, namespace: str, obj: dict[str, Any], subresource: str = ""
    ) -> dict[str, Any]:
        # Collection path for the main resource, object path for subresources
        # (e.g. pods/eviction is created against a named pod).
        name = obj.get("metadata", {}).get("name") if subresource else None
        path = self._path(handle, namespace, name, subresource)
        return self._to_dict(self._request("post", path, body=obj))

    def get(
        self, handle: Any, namespace: str, name: str, subresource: str = ""
    ) -> dict[str, Any]:
        path = self._path(handle, namespace, name, subresource)
        return self._to_dict(self._request("get", path))

    def update(
        self, handle: Any, namespace: str, obj: dict[str, Any], subresource: str = ""
    ) -> dict[str, Any]:
        name = obj.get("metadata", {}).get("name")
        path = self._path(handle, namespace, name, subresource)
        return self._to_dict(self._request("put", path, body=obj))

    def patch(
        self,
        handle: Any,
        namespace: str,
        name: str,
        patch_type: PatchType,
        data: bytes,
        subresource: str = "",
    ) -> dict[str, Any]:
        path = self._path(handle, namespace, name, subresource)
        # The REST layer serializes the body itself.
        body = json.loads(data)
        return self._to_dict(
            self._request("patch", path, body=body, content_type=patch_type.value)
        )

    def delete(
        self,
        handle: Any,
        namespace: str,
        name: str,
        propagation: PropagationPolicy,
        subresource: str = "",
    ) -> None:
        path = self._path(handle, namespace, name, subresource)
        body = {
            "apiVersion": "v1",
            "kind": "DeleteOptions",
            "propagationPolicy": propagation.value,
        }
        self._request("delete", path, body=body)
