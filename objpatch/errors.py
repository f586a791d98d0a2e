from __future__ import annotations

from typing import Any, Iterator, Sequence


class ObjPatchError(Exception):
    """Base exception for objpatch errors."""


class DecodeError(ObjPatchError):
    """Neither JSON nor YAML could decode the operation specs."""


class InvalidSpecError(ObjPatchError):
    """
    One operation spec violates the schema.

    Carries every field-level violation, not just the first one.
    """

    def __init__(self, violations: Sequence[tuple[str, str]]) -> None:
        self.violations = list(violations)
        super().__init__(
            "; ".join(f"{field}: {message}" for field, message in self.violations)
        )


class PayloadError(ObjPatchError):
    """A patch or object payload could not be converted to a document."""


class StoreError(ObjPatchError):
    """Any failure reported by the remote store or on the way to it."""


class ResourceNotResolvedError(StoreError):
    """(apiVersion, kind) does not map to a resource served by the store."""


class NotFoundError(StoreError):
    """The addressed object does not exist."""


class AlreadyExistsError(StoreError):
    """Create was rejected because the object already exists."""


class ConflictError(StoreError):
    """Write named a stale resourceVersion (optimistic-concurrency conflict)."""


class WaitTimeoutError(ObjPatchError):
    """A polled condition did not become true before its deadline."""


class FilterError(ObjPatchError):
    """The jq filter failed or produced something that is not an object."""


class MultiError(ObjPatchError):
    """
    Ordered collection of (index, error) pairs.

    Rendered as a single composite message; the individual errors stay
    available through iteration and ``errors``.
    """

    title = "errors occurred"

    def __init__(self, errors: Sequence[tuple[int, BaseException]] = ()) -> None:
        self.errors: list[tuple[int, BaseException]] = list(errors)
        super().__init__(self._render())

    def _render(self) -> str:
        lines = [f"{len(self.errors)} {self.title}:"]
        for index, err in self.errors:
            lines.append(f"  * [{index}] {type(err).__name__}: {err}")
        return "\n".join(lines)

    def append(self, index: int, err: BaseException) -> None:
        self.errors.append((index, err))
        self.args = (self._render(),)

    def merge(self, other: "MultiError") -> None:
        for index, err in other.errors:
            self.append(index, err)

    def __iter__(self) -> Iterator[tuple[int, BaseException]]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __str__(self) -> str:
        return self._render()


class SpecValidationError(MultiError):
    """Schema violations aggregated over a whole parsed batch."""

    title = "invalid operation specs"


class BatchError(MultiError):
    """Per-operation failures aggregated over a whole batch."""

    title = "operations failed"


def describe(obj: Any) -> str:
    """Short identity of an object document for log and error messages."""
    if not isinstance(obj, dict):
        return repr(obj)
    metadata = obj.get("metadata") or {}
    namespace = metadata.get("namespace") or ""
    name = metadata.get("name") or ""
    ident = f"{namespace}/{name}" if namespace else name
    return f"{obj.get('apiVersion', '')}/{obj.get('kind', '')} {ident}".strip()
