from __future__ import annotations

import copy
import functools
import json
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any, Mapping, Optional

import yaml

from ..config import PatcherConfig
from ..errors import (
    AlreadyExistsError,
    FilterError,
    InvalidSpecError,
    NotFoundError,
    PayloadError,
    WaitTimeoutError,
    describe,
)
from ..jq import FilterEvaluator, JqEvaluator
from ..kube.store import PatchType, PropagationPolicy, ResourceLocator, ResourceStore
from ..spec.decode import load_yaml
from ..spec.models import OperationKind, OperationSpec
from .metrics import observe_delete_wait, observe_operation
from .result import BatchResult
from .retry import retry_on_conflict
from .wait import poll_until

logger = logging.getLogger(__name__)

FilterFunc = Callable[[dict[str, Any]], Optional[dict[str, Any]]]


def _instrumented(operation: str):
    """Record latency and outcome of a public operation."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            start_time = time.monotonic()
            status = "success"
            try:
                return fn(*args, **kwargs)
            except Exception:
                status = "error"
                raise
            finally:
                observe_operation(operation, status, time.monotonic() - start_time)

        return wrapper

    return decorator


def load_document(value: Any, field: str) -> Any:
    """
    Return ``value`` as a structured document.

    Strings hold a serialized document (JSON, or YAML as a fallback);
    anything else is already structured and is returned unchanged.
    """
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError:
        pass
    try:
        return load_yaml(value)
    except yaml.YAMLError as exc:
        raise PayloadError(f"{field}: cannot decode document: {exc}") from exc


def marshal_patch(value: Any, field: str) -> bytes:
    """Serialize a merge or JSON patch payload for the store."""
    doc = load_document(value, field)
    try:
        return json.dumps(doc).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"{field}: cannot marshal patch to JSON: {exc}") from exc


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


class ObjectPatcher:
    """
    Executes create, delete and patch operations against a resource store.

    Each operation resolves its resource independently and succeeds or
    fails on its own. Read-modify-write operations (the update path of
    create_or_update_object, filter_object and jq_patch_object) are
    retried on optimistic-concurrency conflicts.

    Usage:
        specs, invalid = parse_specs(data)
        if invalid is None:
            result = ObjectPatcher(KubeStore.from_config()).execute_operations(specs)
            result.raise_for_errors()
    """

    def __init__(
        self,
        store: ResourceStore,
        locator: Optional[ResourceLocator] = None,
        config: Optional[PatcherConfig] = None,
        evaluator: Optional[FilterEvaluator] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.locator = locator if locator is not None else store
        self.config = config or PatcherConfig()
        self.evaluator = evaluator or JqEvaluator(self.config.jq_binary)
        self._clock = clock
        self._sleep = sleep

    def _resolve(self, api_version: str, kind: str) -> Any:
        return self.locator.resolve(api_version, kind)

    def _retry(self, fn: Callable[[], Any]) -> Any:
        return retry_on_conflict(fn, self.config.retry, sleep=self._sleep)

    @_instrumented(OperationKind.CREATE.value)
    def create_object(self, obj: Optional[dict[str, Any]], subresource: str = "") -> None:
        if not obj:
            raise ValueError("cannot create empty object")

        handle = self._resolve(obj.get("apiVersion", ""), obj.get("kind", ""))
        self.store.create(handle, _metadata(obj).get("namespace", ""), obj, subresource)
        logger.info("Created %s", describe(obj))

    @_instrumented(OperationKind.CREATE_OR_UPDATE.value)
    def create_or_update_object(
        self, obj: Optional[dict[str, Any]], subresource: str = ""
    ) -> None:
        """
        Create ``obj``, or replace the existing object with it.

        The update path stamps a copy of ``obj`` with the live
        resourceVersion and is retried on conflict, so concurrent writers
        converge instead of failing or clobbering each other.
        """
        if not obj:
            raise ValueError("cannot create empty object")

        handle = self._resolve(obj.get("apiVersion", ""), obj.get("kind", ""))
        namespace = _metadata(obj).get("namespace", "")
        name = _metadata(obj).get("name", "")

        try:
            self.store.create(handle, namespace, obj, subresource)
            logger.info("Created %s", describe(obj))
            return
        except AlreadyExistsError:
            logger.info("%s already exists, updating it", describe(obj))

        def attempt() -> None:
            existing = self.store.get(handle, namespace, name, subresource)
            desired = copy.deepcopy(obj)
            desired.setdefault("metadata", {})["resourceVersion"] = _metadata(existing).get(
                "resourceVersion"
            )
            self.store.update(handle, namespace, desired, subresource)

        self._retry(attempt)
        logger.info("Updated %s", describe(obj))

    def _filter(
        self,
        filter_func: FilterFunc,
        api_version: str,
        kind: str,
        namespace: str,
        name: str,
        subresource: str,
    ) -> bool:
        handle = self._resolve(api_version, kind)
        written = False

        def attempt() -> None:
            nonlocal written
            current = self.store.get(handle, namespace, name)
            try:
                filtered = filter_func(copy.deepcopy(current))
            except FilterError:
                raise
            except Exception as exc:
                raise FilterError(f"filter function failed: {exc}") from exc
            if filtered is None:
                raise FilterError("filter function returned no object")

            if filtered == current:
                logger.debug("%s is unchanged by the filter, skipping update", describe(current))
                return

            self.store.update(handle, namespace, filtered, subresource)
            written = True

        self._retry(attempt)
        return written

    @_instrumented("Filter")
    def filter_object(
        self,
        filter_func: Optional[FilterFunc],
        api_version: str,
        kind: str,
        namespace: str,
        name: str,
        subresource: str = "",
    ) -> bool:
        """
        Apply ``filter_func`` to the live object and write the result.

        ``filter_func`` receives a private copy of the object. If it
        returns an equal object, no write is issued. Errors raised by the
        function are not retried.

        Returns:
            True if the object was updated, False if it was left unchanged
        """
        if filter_func is None:
            raise ValueError("filter_func is None")
        return self._filter(filter_func, api_version, kind, namespace, name, subresource)

    def _apply_jq(self, jq_filter: str, obj: dict[str, Any]) -> dict[str, Any]:
        document = json.dumps(obj).encode("utf-8")
        try:
            result = self.evaluator.evaluate(jq_filter, document, self.config.jq_library_path)
        except FilterError as exc:
            raise FilterError(
                f"failed to apply jqFilter:\n{jq_filter}\nto Object:\n"
                f"{json.dumps(obj, indent=2, sort_keys=True)}\nerror: {exc}"
            ) from exc

        try:
            patched = json.loads(result)
        except ValueError as exc:
            raise FilterError(
                f"failed to convert filterResult:\n{result!r}\nto an object\nerror: {exc}"
            ) from exc
        if not isinstance(patched, dict):
            raise FilterError(
                f"failed to convert filterResult:\n{result!r}\nto an object\n"
                f"error: got {type(patched).__name__}"
            )
        return patched

    @_instrumented(OperationKind.JQ_PATCH.value)
    def jq_patch_object(
        self,
        jq_filter: str,
        api_version: str,
        kind: str,
        namespace: str,
        name: str,
        subresource: str = "",
    ) -> bool:
        """Rewrite the live object with a jq filter. Same semantics as filter_object."""
        return self._filter(
            functools.partial(self._apply_jq, jq_filter),
            api_version,
            kind,
            namespace,
            name,
            subresource,
        )

    @_instrumented(OperationKind.MERGE_PATCH.value)
    def merge_patch_object(
        self,
        merge_patch: bytes,
        api_version: str,
        kind: str,
        namespace: str,
        name: str,
        subresource: str = "",
    ) -> None:
        handle = self._resolve(api_version, kind)
        self.store.patch(handle, namespace, name, PatchType.MERGE, merge_patch, subresource)

    @_instrumented(OperationKind.JSON_PATCH.value)
    def json_patch_object(
        self,
        json_patch: bytes,
        api_version: str,
        kind: str,
        namespace: str,
        name: str,
        subresource: str = "",
    ) -> None:
        handle = self._resolve(api_version, kind)
        self.store.patch(handle, namespace, name, PatchType.JSON, json_patch, subresource)

    @_instrumented(OperationKind.DELETE.value)
    def delete_object(
        self, api_version: str, kind: str, namespace: str, name: str, subresource: str = ""
    ) -> None:
        """Delete with foreground cascading and wait until the object is gone."""
        self._delete(api_version, kind, namespace, name, subresource, PropagationPolicy.FOREGROUND)

    @_instrumented(OperationKind.DELETE_IN_BACKGROUND.value)
    def delete_object_in_background(
        self, api_version: str, kind: str, namespace: str, name: str, subresource: str = ""
    ) -> None:
        self._delete(api_version, kind, namespace, name, subresource, PropagationPolicy.BACKGROUND)

    @_instrumented(OperationKind.DELETE_NON_CASCADING.value)
    def delete_object_non_cascading(
        self, api_version: str, kind: str, namespace: str, name: str, subresource: str = ""
    ) -> None:
        self._delete(api_version, kind, namespace, name, subresource, PropagationPolicy.ORPHAN)

    def _delete(
        self,
        api_version: str,
        kind: str,
        namespace: str,
        name: str,
        subresource: str,
        propagation: PropagationPolicy,
    ) -> None:
        handle = self._resolve(api_version, kind)
        target = f"{kind} {namespace}/{name}" if namespace else f"{kind} {name}"

        try:
            self.store.delete(handle, namespace, name, propagation, subresource)
        except NotFoundError:
            logger.info("%s is already gone, nothing to delete", target)
            return

        if propagation != PropagationPolicy.FOREGROUND:
            return

        def gone() -> bool:
            try:
                self.store.get(handle, namespace, name)
            except NotFoundError:
                return True
            return False

        start_time = self._clock()
        try:
            poll_until(
                gone,
                self.config.delete_poll_interval,
                self.config.delete_timeout,
                clock=self._clock,
                sleep=self._sleep,
            )
        except WaitTimeoutError as exc:
            observe_delete_wait("timeout", self._clock() - start_time)
            raise WaitTimeoutError(
                f"{target} was not deleted within {self.config.delete_timeout:g}s"
            ) from exc
        observe_delete_wait("deleted", self._clock() - start_time)
        logger.info("Deleted %s", target)

    @staticmethod
    def _load_object(spec: OperationSpec) -> dict[str, Any]:
        obj = load_document(spec.object, "object")
        if obj is not None and not isinstance(obj, dict):
            raise PayloadError(f"object: expected a mapping, got {type(obj).__name__}")
        return obj

    def _run_create(self, spec: OperationSpec) -> None:
        self.create_object(self._load_object(spec), spec.subresource)

    def _run_create_or_update(self, spec: OperationSpec) -> None:
        self.create_or_update_object(self._load_object(spec), spec.subresource)

    def _run_delete(self, spec: OperationSpec) -> None:
        self.delete_object(spec.api_version, spec.kind, spec.namespace, spec.name, spec.subresource)

    def _run_delete_in_background(self, spec: OperationSpec) -> None:
        self.delete_object_in_background(
            spec.api_version, spec.kind, spec.namespace, spec.name, spec.subresource
        )

    def _run_delete_non_cascading(self, spec: OperationSpec) -> None:
        self.delete_object_non_cascading(
            spec.api_version, spec.kind, spec.namespace, spec.name, spec.subresource
        )

    def _run_jq_patch(self, spec: OperationSpec) -> None:
        self.jq_patch_object(
            spec.jq_filter, spec.api_version, spec.kind, spec.namespace, spec.name, spec.subresource
        )

    def _run_merge_patch(self, spec: OperationSpec) -> None:
        data = marshal_patch(spec.merge_patch, "mergePatch")
        self.merge_patch_object(
            data, spec.api_version, spec.kind, spec.namespace, spec.name, spec.subresource
        )

    def _run_json_patch(self, spec: OperationSpec) -> None:
        data = marshal_patch(spec.json_patch, "jsonPatch")
        self.json_patch_object(
            data, spec.api_version, spec.kind, spec.namespace, spec.name, spec.subresource
        )

    _EXECUTORS: Mapping[OperationKind, Callable[["ObjectPatcher", OperationSpec], None]] = {
        OperationKind.CREATE: _run_create,
        OperationKind.CREATE_OR_UPDATE: _run_create_or_update,
        OperationKind.DELETE: _run_delete,
        OperationKind.DELETE_IN_BACKGROUND: _run_delete_in_background,
        OperationKind.DELETE_NON_CASCADING: _run_delete_non_cascading,
        OperationKind.JQ_PATCH: _run_jq_patch,
        OperationKind.MERGE_PATCH: _run_merge_patch,
        OperationKind.JSON_PATCH: _run_json_patch,
    }

    def execute_operations(self, specs: Iterable[OperationSpec]) -> BatchResult:
        """
        Execute specs in input order, one at a time.

        A failing spec (store error, payload that cannot be marshaled,
        timeout) is recorded against its index and the batch moves on to
        the next spec. Nothing is rolled back.
        """
        result = BatchResult()
        for index, spec in enumerate(specs):
            result.attempted += 1
            executor = None
            if isinstance(spec.operation, OperationKind):
                executor = self._EXECUTORS.get(spec.operation)
            if executor is None:
                result.record(
                    index,
                    InvalidSpecError([("operation", f"unsupported operation {spec.operation!r}")]),
                )
                continue
            try:
                executor(self, spec)
            except Exception as exc:
                logger.debug("Operation %d (%s) failed: %s", index, spec.operation, exc)
                result.record(index, exc)

        if result.errors:
            logger.warning(
                "%d of %d operations failed", len(result.errors), result.attempted
            )
        return result
