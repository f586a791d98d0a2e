"""jq filter evaluation through the ``jq`` executable."""

from __future__ import annotations

import logging
import subprocess
from typing import Protocol

from .errors import FilterError

logger = logging.getLogger(__name__)


class FilterEvaluator(Protocol):
    def evaluate(self, jq_filter: str, document: bytes, library_path: str = "") -> bytes:
        """Apply ``jq_filter`` to a JSON document and return the JSON result."""
        ...


class JqEvaluator:
    """
    Runs ``jq`` once per evaluation.

    ``library_path`` is passed as ``-L`` so filters can ``import`` modules
    from it.
    """

    def __init__(self, binary: str = "jq", timeout: float = 30.0) -> None:
        self.binary = binary
        self.timeout = timeout

    def evaluate(self, jq_filter: str, document: bytes, library_path: str = "") -> bytes:
        cmd = [self.binary, "--compact-output"]
        if library_path:
            cmd.extend(["-L", library_path])
        cmd.append(jq_filter)

        try:
            proc = subprocess.run(
                cmd,
                input=document,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise FilterError(f"jq executable {self.binary!r} not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise FilterError(f"jq did not finish within {self.timeout:g}s") from exc

        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            raise FilterError(stderr or f"jq exited with code {proc.returncode}")

        logger.debug("jq filter produced %d bytes", len(proc.stdout))
        return proc.stdout
