from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from notebook_rag.domain.models import SourceInfo


@dataclass(frozen=True)
class NotebookAccess:
    exists: bool
    can_view: bool
    user_id: str | None = None
    title: str | None = None


@runtime_checkable
class NotebookCatalogPort(Protocol):
    def access(self, notebook_id: str, user_id: str | None) -> NotebookAccess: ...

    def list_sources(self, notebook_id: str) -> list[SourceInfo]: ...

    def load_script_code(self, source_id: str) -> str | None:
        """Full code of an executable source."""
        ...
