from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingPort(Protocol):
    def embed_query(self, text: str) -> list[float]:
        """Embed a question. Raises EmbeddingError when no usable vector comes back."""
        ...
