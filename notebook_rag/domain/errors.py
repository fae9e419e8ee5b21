"""Domain errors (typed) for the answering turn.

Every error carries the HTTP-style status the interface layer reports.
Application code returns them inside ``Result``; adapters raise them after
translating library exceptions.
"""

from dataclasses import dataclass


class DomainError(Exception):
    """Base class for domain-specific errors."""

    status_code: int = 500

    @property
    def message(self) -> str:
        return str(self)


class InputError(DomainError):
    """Missing/empty question or notebook id."""

    status_code = 400


class AccessError(DomainError):
    """Notebook missing (404) or not viewable by the caller (403)."""

    def __init__(self, message: str, status_code: int = 403) -> None:
        super().__init__(message)
        self.status_code = status_code

    @classmethod
    def forbidden(cls) -> "AccessError":
        return cls("Forbidden", status_code=403)

    @classmethod
    def not_found(cls) -> "AccessError":
        return cls("Notebook not found", status_code=404)


NONE_UPLOADED = "none_uploaded"
STILL_PROCESSING = "still_processing"
ALL_FAILED = "all_failed"


@dataclass(frozen=True)
class NoEvidenceError(DomainError):
    """Notebook has no ready source to answer from."""

    reason: str
    detail: str = ""

    def __str__(self) -> str:
        return self.detail or self.reason

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 400 if self.reason == NONE_UPLOADED else 409


class EmbeddingError(DomainError):
    """Embedding backend returned nothing usable. Turn-fatal, never retried."""


class VectorStoreError(DomainError):
    """Vector store backend failed or is misconfigured."""


class LLMError(DomainError):
    """LLM backend failed or is misconfigured."""


class JobStoreUnavailable(DomainError):
    """Script job store is missing or unreachable; callers degrade to no insight."""

    status_code = 503


class PersistenceError(DomainError):
    """Conversation or state store write failed."""
