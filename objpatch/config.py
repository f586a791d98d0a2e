from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class RetryConfig:
    """
    Backoff schedule for conflict retries.

    Defaults give at most 4 attempts, sleeping roughly 10ms, 50ms and 250ms
    between them.
    """
    steps: int = 4
    duration: float = 0.01
    factor: float = 5.0
    jitter: float = 0.1
    cap: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.steps < 1:
            raise ValueError("steps must be >= 1")
        if self.duration < 0:
            raise ValueError("duration must be >= 0")
        if self.factor < 1:
            raise ValueError("factor must be >= 1")
        if self.jitter < 0:
            raise ValueError("jitter must be >= 0")
        if self.cap is not None and self.cap < self.duration:
            raise ValueError("cap must be >= duration")


@dataclass
class PatcherConfig:
    retry: RetryConfig = field(default_factory=RetryConfig)
    delete_poll_interval: float = 1.0
    delete_timeout: float = 20.0
    jq_library_path: str = ""
    jq_binary: str = "jq"

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.delete_poll_interval <= 0:
            raise ValueError("delete_poll_interval must be > 0")
        if self.delete_timeout < self.delete_poll_interval:
            raise ValueError(
                "delete_timeout must be >= delete_poll_interval; "
                "otherwise foreground deletes could never be confirmed"
            )
        if not self.jq_binary:
            raise ValueError("jq_binary cannot be empty")
