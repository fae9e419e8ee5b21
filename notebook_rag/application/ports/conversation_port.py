from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from notebook_rag.domain.models import ChatTurn


@runtime_checkable
class ConversationStorePort(Protocol):
    """Raises PersistenceError when a write fails."""

    def resolve(self, conversation_id: str | None, notebook_id: str) -> str:
        """Return the id when it exists for this notebook, otherwise create a new one."""
        ...

    def load_history(self, conversation_id: str) -> list[ChatTurn]: ...

    def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        citations: Sequence[dict[str, Any]] | None = None,
    ) -> str: ...
