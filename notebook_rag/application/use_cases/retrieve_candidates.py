# notebook_rag/application/use_cases/retrieve_candidates.py
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from notebook_rag.application.ports.embedding_port import EmbeddingPort
from notebook_rag.application.ports.evidence_search_port import EvidenceSearchPort
from notebook_rag.domain.errors import DomainError, EmbeddingError, VectorStoreError
from notebook_rag.domain.models import EvidenceChunk
from notebook_rag.domain.types import Result

logger = structlog.get_logger(__name__)

CANDIDATE_LIMIT = 240


@dataclass(frozen=True)
class CandidatePool:
    query_vector: tuple[float, ...]
    chunks: list[EvidenceChunk]


class RetrieveCandidates:
    """Question -> ranked pool of candidate chunks from ready sources."""

    def __init__(
        self,
        embedding: EmbeddingPort,
        search: EvidenceSearchPort,
        candidate_limit: int = CANDIDATE_LIMIT,
    ) -> None:
        self.embedding = embedding
        self.search = search
        self.candidate_limit = candidate_limit

    def execute(
        self,
        notebook_id: str,
        question: str,
        ready_source_ids: Sequence[str],
    ) -> Result[CandidatePool, DomainError]:
        try:
            vector = self.embedding.embed_query(question.strip())
        except EmbeddingError as ex:
            return Result.failure(ex)
        except Exception as ex:  # noqa: BLE001
            return Result.failure(EmbeddingError(f"embedding failed: {ex}"))
        if not vector:
            return Result.failure(EmbeddingError("Failed to embed query"))

        qv = tuple(float(x) for x in vector)
        try:
            rows = self.search.search(notebook_id, qv, self.candidate_limit, ready_source_ids)
        except VectorStoreError as ex:
            return Result.failure(ex)
        except Exception as ex:  # noqa: BLE001
            return Result.failure(VectorStoreError(f"vector search failed: {ex}"))

        ready = set(ready_source_ids)
        chunks = [r for r in rows if r.source_id in ready][: self.candidate_limit]
        chunks.sort(key=lambda c: float("inf") if c.distance is None else c.distance)
        logger.debug("candidates_retrieved", count=len(chunks), notebook_id=notebook_id)
        return Result.success(CandidatePool(query_vector=qv, chunks=chunks))

    def probe(self, notebook_id: str, query_vector: Sequence[float]):
        """Targeted top-1 lookup bound to one turn, for the selector's fallback pass."""

        def _probe(source_id: str) -> EvidenceChunk | None:
            try:
                return self.search.search_source(notebook_id, source_id, query_vector)
            except Exception as ex:  # noqa: BLE001
                logger.warning("fallback_probe_failed", source_id=source_id, error=str(ex))
                return None

        return _probe
