"""Script job store port (persisted queue drained by an external sandbox worker)."""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from notebook_rag.domain.models import ScriptJob


@runtime_checkable
class ScriptJobStorePort(Protocol):
    """Raises JobStoreUnavailable when the store is missing or unreachable."""

    def enqueue(self, job: ScriptJob) -> str:
        """Persist a PENDING job and hand it to the worker. Returns the job id."""
        ...

    def poll(self, job_ids: Sequence[str]) -> list[ScriptJob]:
        """Current state of the given jobs (unknown ids are omitted)."""
        ...

    def recent_succeeded(self, notebook_id: str, limit: int) -> list[ScriptJob]:
        """Most recently finished SUCCEEDED jobs of a notebook, newest first."""
        ...


@runtime_checkable
class JobNotificationPort(Protocol):
    """Optional push channel offered by some job stores."""

    def wait_for_update(self, job_ids: Sequence[str], timeout_s: float) -> bool:
        """Block until one of the jobs reports completion or the timeout passes."""
        ...
