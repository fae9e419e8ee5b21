# notebook_rag/application/use_cases/skill_interaction.py
from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import structlog

from notebook_rag.application.ports.skill_state_port import SkillStateStorePort
from notebook_rag.domain.errors import PersistenceError
from notebook_rag.domain.models import SkillState, SourceInfo
from notebook_rag.domain.services.skills import (
    DEFAULT_PLANNING_PATTERN,
    DEFAULT_SKILLS,
    SkillDefinition,
    SkillTurn,
    advance,
    complete,
    detect_skill,
    find_skill,
    phase_of,
)

logger = structlog.get_logger(__name__)

_EXTRACTOR_TITLE = re.compile(r"(extract|download|提取|下载)", re.IGNORECASE)


@dataclass(frozen=True)
class SkillOutcome:
    """Skill handling result for one turn; ``turn`` is None when no skill applies."""

    definition: SkillDefinition | None = None
    turn: SkillTurn | None = None

    @property
    def short_circuit(self) -> bool:
        return self.turn is not None and self.turn.short_circuit

    @property
    def ready_skill(self) -> SkillDefinition | None:
        if self.turn is not None and self.turn.ready:
            return self.definition
        return None


class SkillInteraction:
    """Loads skill state, applies the state machine, persists every transition."""

    def __init__(
        self,
        store: SkillStateStorePort,
        registry: Sequence[SkillDefinition] = DEFAULT_SKILLS,
        extractor_available: bool = False,
        planning_pattern: str = DEFAULT_PLANNING_PATTERN,
    ) -> None:
        self.store = store
        self.registry = tuple(registry)
        self.extractor_available = extractor_available
        self.planning_pattern = re.compile(planning_pattern, re.IGNORECASE)

    def _can_extract(self, sources: Sequence[SourceInfo]) -> bool:
        if self.extractor_available:
            return True
        return any(
            s.is_ready and s.is_executable and _EXTRACTOR_TITLE.search(s.title) for s in sources
        )

    def handle(
        self,
        conversation_id: str,
        sources: Sequence[SourceInfo],
        message: str,
        reply: Mapping[str, str] | None = None,
    ) -> SkillOutcome:
        try:
            state = self.store.load(conversation_id)
        except PersistenceError as ex:
            logger.error("skill_state_load_failed", error=str(ex))
            state = SkillState()
        definition = None
        if state.active:
            definition = find_skill(state.skill_name, self.registry)
        if definition is None:
            definition = detect_skill(sources, self.registry)
        if definition is None:
            return SkillOutcome()

        turn = advance(
            definition,
            state,
            message,
            reply=reply,
            extractor_available=self._can_extract(sources),
            planning_pattern=self.planning_pattern,
        )
        if turn.changed:
            saved = self._save(conversation_id, turn.state)
            turn = SkillTurn(
                state=saved, changed=True, reply_text=turn.reply_text, prompt=turn.prompt
            )
            logger.info(
                "skill_transition",
                skill=definition.name,
                from_phase=phase_of(state).value,
                to_phase=phase_of(saved).value,
            )
        return SkillOutcome(definition=definition, turn=turn)

    def finish(self, conversation_id: str, outcome: SkillOutcome) -> None:
        """Mark a workflow complete after its answer was produced."""
        if outcome.ready_skill is None or outcome.turn is None:
            return
        self._save(conversation_id, complete(outcome.turn.state))

    def _save(self, conversation_id: str, state: SkillState) -> SkillState:
        try:
            return self.store.save(conversation_id, state)
        except PersistenceError as ex:
            logger.error("skill_state_save_failed", error=str(ex))
            return state
