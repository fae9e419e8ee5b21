from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from importlib import import_module
from typing import Any, cast

from notebook_rag.application.ports.embedding_port import EmbeddingPort
from notebook_rag.domain.errors import EmbeddingError


def _e5_query_prefix(query: str) -> str:
    return f"Instruct: Retrieve relevant passages for the query.\nQuery: {query}"


@dataclass
class SentenceTransformersEmbeddingAdapter(EmbeddingPort):
    """Query embeddings from a multilingual E5 Sentence-Transformers model.

    Chunk vectors are produced by the ingestion pipeline with the same model;
    this side only embeds questions.
    """

    model_name: str = "intfloat/multilingual-e5-large-instruct"
    device: str = "cpu"  # "cuda" | "mps" when available
    local_files_only: bool = False
    _model: Any | None = field(default=None, repr=False)

    def _ensure_model(self) -> Any:
        if self._model is not None:
            return self._model
        try:
            module = import_module("sentence_transformers")
        except ImportError as ex:
            raise EmbeddingError("sentence-transformers not installed.") from ex
        try:
            self._model = module.SentenceTransformer(
                self.model_name,
                device=self.device,
                local_files_only=self.local_files_only,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(
                f"Failed to load embedding model '{self.model_name}': {ex}"
            ) from ex
        return self._model

    def embed_query(self, text: str) -> list[float]:
        model = self._ensure_model()
        try:
            raw_vector = model.encode(
                _e5_query_prefix(text),
                normalize_embeddings=True,
                convert_to_numpy=True,
                show_progress_bar=False,
            )
        except Exception as ex:  # noqa: BLE001
            raise EmbeddingError(f"Embedding query failed: {ex}") from ex
        vector = [float(x) for x in cast(Sequence[float], raw_vector)]
        if not vector:
            raise EmbeddingError("Failed to embed query")
        return vector
