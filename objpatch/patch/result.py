from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..errors import BatchError


@dataclass
class BatchResult:
    """
    Outcome of one batch: every failed spec recorded by its input index.

    ``attempted`` counts specs that were dispatched, failed or not. An empty
    ``errors`` list means the whole batch succeeded.
    """
    attempted: int = 0
    errors: list[tuple[int, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def record(self, index: int, exc: Exception) -> None:
        self.errors.append((index, exc))

    def failed_indexes(self) -> list[int]:
        return [index for index, _ in self.errors]

    def error(self) -> Optional[BatchError]:
        """Composite error for the boundary, or None on full success."""
        if not self.errors:
            return None
        return BatchError(self.errors)

    def raise_for_errors(self) -> None:
        err = self.error()
        if err is not None:
            raise err
