from typing import Protocol, runtime_checkable

from notebook_rag.domain.models import SkillState


@runtime_checkable
class SkillStateStorePort(Protocol):
    """Side table of typed skill state, keyed by conversation id."""

    def load(self, conversation_id: str) -> SkillState:
        """Stored state, or an inactive default."""
        ...

    def save(self, conversation_id: str, state: SkillState) -> SkillState:
        """Write transactionally; returns the state with its new version."""
        ...
