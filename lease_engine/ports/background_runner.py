"""Port definition for fire-and-forget background execution."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

BackgroundHandler = Callable[[dict[str, object]], dict[str, object] | None]


@runtime_checkable
class BackgroundRunnerPort(Protocol):
    """Interface for submitting work that must not block the caller."""

    def register(self, name: str, handler: BackgroundHandler) -> None:
        """Register a handler under a logical job name."""

    def submit(self, name: str, params: dict[str, object]) -> str:
        """Schedule a job and return its identifier without waiting for it."""

    def status(self, job_id: str) -> dict[str, object]:
        """Retrieve current status for a submitted job."""

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for submitted jobs to finish.

        Returns:
            True if every job finished within ``timeout``
        """


__all__ = ["BackgroundHandler", "BackgroundRunnerPort"]
