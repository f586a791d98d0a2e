from __future__ import annotations

import copy
import json
import threading
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import pytest

from objpatch.errors import (
    AlreadyExistsError,
    ConflictError,
    FilterError,
    NotFoundError,
    ResourceNotResolvedError,
)
from objpatch.kube.store import PatchType, PropagationPolicy


@dataclass(frozen=True)
class FakeHandle:
    api_version: str
    kind: str


class FakeClock:
    """Deterministic clock; ``sleep`` advances time instead of blocking."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _merge_patch(target: Any, patch: Any) -> Any:
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _merge_patch(result.get(key), value)
    return result


def _json_patch(target: dict[str, Any], ops: list[dict[str, Any]]) -> dict[str, Any]:
    result = copy.deepcopy(target)
    for op in ops:
        *parents, leaf = [p for p in op["path"].split("/") if p]
        node = result
        for part in parents:
            node = node.setdefault(part, {})
        if op["op"] in ("add", "replace"):
            node[leaf] = op["value"]
        elif op["op"] == "remove":
            del node[leaf]
        else:
            raise ValueError(f"fake store does not support op {op['op']!r}")
    return result


class FakeStore:
    """
    In-memory ResourceLocator + ResourceStore.

    - resourceVersion is a global counter, bumped on every write
    - update() with a stale resourceVersion raises ConflictError
    - foreground deletes keep the object visible for ``deletion_delay``
      seconds of ``clock`` time (None: forever)
    - ``fail(verb, exc)`` queues an error for the next call of that verb
    - ``before_update`` runs inside update() before the version check,
      to simulate a concurrent writer
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._lock = threading.RLock()
        self.clock = clock or (lambda: 0.0)
        self.objects: dict[tuple[str, str, str, str], dict[str, Any]] = {}
        self.calls: Counter[str] = Counter()
        self.log: list[tuple[str, Any]] = []
        self.unknown_kinds: set[str] = set()
        self.deletion_delay: Optional[float] = 0.0
        self.before_update: Optional[Callable[[], None]] = None
        self._terminating: dict[tuple[str, str, str, str], float] = {}
        self._failures: dict[str, list[Exception]] = {}
        self._rv = 0

    def fail(self, verb: str, exc: Exception, times: int = 1) -> None:
        self._failures.setdefault(verb, []).extend([exc] * times)

    def _maybe_fail(self, verb: str) -> None:
        queued = self._failures.get(verb)
        if queued:
            raise queued.pop(0)

    def _next_rv(self) -> str:
        self._rv += 1
        return str(self._rv)

    @staticmethod
    def _key(handle: FakeHandle, namespace: str, name: str) -> tuple[str, str, str, str]:
        return (handle.api_version, handle.kind, namespace or "", name)

    def _lookup(self, key: tuple[str, str, str, str]) -> Optional[dict[str, Any]]:
        gone_at = self._terminating.get(key)
        if gone_at is not None and self.clock() >= gone_at:
            del self._terminating[key]
            self.objects.pop(key, None)
        return self.objects.get(key)

    def seed(self, obj: dict[str, Any]) -> dict[str, Any]:
        handle = FakeHandle(obj["apiVersion"], obj["kind"])
        meta = obj.get("metadata", {})
        with self._lock:
            stored = copy.deepcopy(obj)
            stored.setdefault("metadata", {})["resourceVersion"] = self._next_rv()
            self.objects[self._key(handle, meta.get("namespace", ""), meta["name"])] = stored
            return copy.deepcopy(stored)

    def stored(self, api_version: str, kind: str, namespace: str, name: str) -> Optional[dict[str, Any]]:
        with self._lock:
            obj = self._lookup((api_version, kind, namespace, name))
            return copy.deepcopy(obj) if obj is not None else None

    @property
    def writes(self) -> int:
        return sum(self.calls[v] for v in ("create", "update", "patch", "delete"))

    def resolve(self, api_version: str, kind: str) -> FakeHandle:
        self.calls["resolve"] += 1
        if kind in self.unknown_kinds or not kind:
            raise ResourceNotResolvedError(f"no resource for {api_version}/{kind}")
        return FakeHandle(api_version, kind)

    def create(self, handle: FakeHandle, namespace: str, obj: dict[str, Any], subresource: str = "") -> dict[str, Any]:
        with self._lock:
            self.calls["create"] += 1
            self.log.append(("create", subresource))
            self._maybe_fail("create")
            key = self._key(handle, namespace, obj["metadata"]["name"])
            if self._lookup(key) is not None:
                raise AlreadyExistsError(f"{key} already exists")
            stored = copy.deepcopy(obj)
            stored["metadata"]["resourceVersion"] = self._next_rv()
            self.objects[key] = stored
            return copy.deepcopy(stored)

    def get(self, handle: FakeHandle, namespace: str, name: str, subresource: str = "") -> dict[str, Any]:
        with self._lock:
            self.calls["get"] += 1
            self._maybe_fail("get")
            obj = self._lookup(self._key(handle, namespace, name))
            if obj is None:
                raise NotFoundError(f"{name} not found")
            return copy.deepcopy(obj)

    def update(self, handle: FakeHandle, namespace: str, obj: dict[str, Any], subresource: str = "") -> dict[str, Any]:
        if self.before_update is not None:
            self.before_update()
        with self._lock:
            self.calls["update"] += 1
            self.log.append(("update", subresource))
            self._maybe_fail("update")
            key = self._key(handle, namespace, obj["metadata"]["name"])
            current = self._lookup(key)
            if current is None:
                raise NotFoundError(f"{key} not found")
            if obj["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
                raise ConflictError(
                    f"{key}: the object has been modified; please apply your changes to the latest version"
                )
            stored = copy.deepcopy(obj)
            stored["metadata"]["resourceVersion"] = self._next_rv()
            self.objects[key] = stored
            return copy.deepcopy(stored)

    def patch(
        self,
        handle: FakeHandle,
        namespace: str,
        name: str,
        patch_type: PatchType,
        data: bytes,
        subresource: str = "",
    ) -> dict[str, Any]:
        with self._lock:
            self.calls["patch"] += 1
            self.log.append(("patch", (patch_type, data, subresource)))
            self._maybe_fail("patch")
            key = self._key(handle, namespace, name)
            current = self._lookup(key)
            if current is None:
                raise NotFoundError(f"{key} not found")
            body = json.loads(data)
            if patch_type == PatchType.MERGE:
                patched = _merge_patch(current, body)
            else:
                patched = _json_patch(current, body)
            patched["metadata"]["resourceVersion"] = self._next_rv()
            self.objects[key] = patched
            return copy.deepcopy(patched)

    def delete(
        self,
        handle: FakeHandle,
        namespace: str,
        name: str,
        propagation: PropagationPolicy,
        subresource: str = "",
    ) -> None:
        with self._lock:
            self.calls["delete"] += 1
            self.log.append(("delete", (propagation, subresource)))
            self._maybe_fail("delete")
            key = self._key(handle, namespace, name)
            if self._lookup(key) is None:
                raise NotFoundError(f"{key} not found")
            if propagation == PropagationPolicy.FOREGROUND and self.deletion_delay != 0:
                delay = float("inf") if self.deletion_delay is None else self.deletion_delay
                self._terminating.setdefault(key, self.clock() + delay)
            else:
                del self.objects[key]


class FakeEvaluator:
    """jq stand-in: ``results`` maps filter text to a function over the document."""

    def __init__(self, results: Optional[dict[str, Callable[[dict[str, Any]], Any]]] = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, bytes, str]] = []

    def evaluate(self, jq_filter: str, document: bytes, library_path: str = "") -> bytes:
        self.calls.append((jq_filter, document, library_path))
        if jq_filter not in self.results:
            raise FilterError(f"jq: error: compile error in {jq_filter!r}")
        out = self.results[jq_filter](json.loads(document))
        return out if isinstance(out, bytes) else json.dumps(out).encode("utf-8")


def configmap(name: str, namespace: str = "default", **data: str) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace},
        "data": dict(data),
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> FakeStore:
    return FakeStore(clock=clock)


@pytest.fixture
def evaluator() -> FakeEvaluator:
    return FakeEvaluator()


@pytest.fixture
def make_configmap() -> Callable[..., dict[str, Any]]:
    return configmap


@pytest.fixture
def patcher(store: FakeStore, clock: FakeClock, evaluator: FakeEvaluator):
    from objpatch import ObjectPatcher

    return ObjectPatcher(store, evaluator=evaluator, clock=clock, sleep=clock.sleep)


@pytest.fixture
def fake_store_factory() -> Callable[..., FakeStore]:
    """Build extra FakeStore instances (e.g. with a real clock)."""
    return FakeStore
