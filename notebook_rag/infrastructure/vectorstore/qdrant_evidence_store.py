"""Qdrant evidence search for notebook chunks.

Why: Adapter encapsulates qdrant-client types, applies notebook/source
     filters server-side and only raises domain errors.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from importlib import import_module
from typing import Any

from notebook_rag.application.ports.evidence_search_port import EvidenceSearchPort
from notebook_rag.domain.errors import VectorStoreError
from notebook_rag.domain.models import EvidenceChunk


@dataclass
class QdrantConfig:
    """Configuration for Qdrant client connection."""

    url: str
    collection: str = "notebook_chunks"
    api_key: str | None = None
    timeout_s: int = 30


def _as_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def point_to_chunk(point: Any) -> EvidenceChunk:
    """Map a scored point to a chunk; cosine similarity becomes distance."""
    payload = dict(point.payload or {})
    score = getattr(point, "score", None)
    return EvidenceChunk(
        chunk_id=str(payload.get("chunk_id") or point.id),
        source_id=str(payload.get("source_id", "")),
        source_title=str(payload.get("source_title", "")),
        content=str(payload.get("content", "")),
        distance=None if score is None else 1.0 - float(score),
        page_start=_as_int(payload.get("page_start")),
        page_end=_as_int(payload.get("page_end")),
    )


class QdrantEvidenceStore(EvidenceSearchPort):
    """Cosine search over one collection, scoped to a notebook's ready sources."""

    def __init__(self, cfg: QdrantConfig, client: Any | None = None) -> None:
        self._cfg = cfg
        self._client = client if client is not None else self._init_client(cfg)

    def _init_client(self, cfg: QdrantConfig) -> Any:
        try:
            qdrant_client = import_module("qdrant_client")
            return qdrant_client.QdrantClient(
                url=cfg.url,
                api_key=cfg.api_key,
                timeout=cfg.timeout_s,
            )
        except Exception as ex:
            raise VectorStoreError(f"Qdrant init failed: {ex}") from ex

    def _filter(self, notebook_id: str, source_ids: Sequence[str]) -> Any:
        models = import_module("qdrant_client.models")
        conditions = [
            models.FieldCondition(key="notebook_id", match=models.MatchValue(value=notebook_id))
        ]
        if len(source_ids) == 1:
            conditions.append(
                models.FieldCondition(key="source_id", match=models.MatchValue(value=source_ids[0]))
            )
        else:
            conditions.append(
                models.FieldCondition(key="source_id", match=models.MatchAny(any=list(source_ids)))
            )
        return models.Filter(must=conditions)

    def _query(
        self, notebook_id: str, vector: Sequence[float], limit: int, source_ids: Sequence[str]
    ) -> list[EvidenceChunk]:
        try:
            response = self._client.query_points(
                collection_name=self._cfg.collection,
                query=list(vector),
                query_filter=self._filter(notebook_id, source_ids),
                limit=limit,
                with_payload=True,
                with_vectors=False,
            )
        except Exception as ex:  # noqa: BLE001
            raise VectorStoreError(f"search: {ex}") from ex
        chunks = [point_to_chunk(p) for p in response.points]
        chunks.sort(key=lambda c: float("inf") if c.distance is None else c.distance)
        return chunks

    def search(
        self,
        notebook_id: str,
        query_vector: Sequence[float],
        limit: int,
        source_ids: Sequence[str],
    ) -> list[EvidenceChunk]:
        if not source_ids or limit <= 0:
            return []
        return self._query(notebook_id, query_vector, limit, source_ids)

    def search_source(
        self,
        notebook_id: str,
        source_id: str,
        query_vector: Sequence[float],
    ) -> EvidenceChunk | None:
        hits = self._query(notebook_id, query_vector, 1, [source_id])
        return hits[0] if hits else None
