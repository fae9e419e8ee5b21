from collections.abc import Sequence
from typing import Protocol, runtime_checkable

# Import domain model and re-export for convenience
from notebook_rag.domain.models import EvidenceChunk

__all__ = ["EvidenceChunk", "EvidenceSearchPort"]


@runtime_checkable
class EvidenceSearchPort(Protocol):
    def search(
        self,
        notebook_id: str,
        query_vector: Sequence[float],
        limit: int,
        source_ids: Sequence[str],
    ) -> list[EvidenceChunk]:
        """Chunks of the given sources ordered by ascending distance."""
        ...

    def search_source(
        self,
        notebook_id: str,
        source_id: str,
        query_vector: Sequence[float],
    ) -> EvidenceChunk | None:
        """Closest chunk of a single source (targeted fallback probe)."""
        ...
