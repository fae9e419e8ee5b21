"""Answer one chat turn over a notebook's sources.

Pipeline:
1. Validate input, check notebook access, classify source readiness
2. Resolve the conversation and load its history
3. Skill interaction (may end the turn with a structured prompt)
4. Embed + retrieve candidates, diversity-aware selection
5. Script orchestration (degrades to no insight)
6. Compose prompt, call the model
7. Map citation markers, persist the user/assistant pair
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from notebook_rag.application.dto.answer_dto import AnswerRequest, AnswerResponse
from notebook_rag.application.ports.clock_port import ClockPort
from notebook_rag.application.ports.conversation_port import ConversationStorePort
from notebook_rag.application.ports.llm_port import ChatMessage, LLMPort
from notebook_rag.application.ports.notebook_port import NotebookCatalogPort
from notebook_rag.application.ports.telemetry_port import NoopTelemetry, TelemetryPort
from notebook_rag.application.use_cases.orchestrate_scripts import OrchestrateScripts
from notebook_rag.application.use_cases.retrieve_candidates import RetrieveCandidates
from notebook_rag.application.use_cases.skill_interaction import SkillInteraction
from notebook_rag.domain.errors import (
    ALL_FAILED,
    NONE_UPLOADED,
    STILL_PROCESSING,
    AccessError,
    DomainError,
    InputError,
    LLMError,
    NoEvidenceError,
    PersistenceError,
)
from notebook_rag.domain.models import SourceInfo, SourceStatus
from notebook_rag.domain.services.citations import build_citations, storage_citations
from notebook_rag.domain.services.insights import format_insights
from notebook_rag.domain.services.prompt_composer import HISTORY_TURNS, compose_prompt
from notebook_rag.domain.services.prompt_rules import PromptContext
from notebook_rag.domain.services.selection import select_evidence
from notebook_rag.domain.types import Result

logger = structlog.get_logger(__name__)

TOP_K = 8
PER_SOURCE_CAP = 4


def check_readiness(sources: Sequence[SourceInfo]) -> NoEvidenceError | None:
    """None when at least one source is READY, otherwise the sub-reason."""
    if any(s.is_ready for s in sources):
        return None
    if not sources:
        return NoEvidenceError(
            NONE_UPLOADED, "No sources found. Upload a PDF or Word document first."
        )
    if any(s.status in (SourceStatus.PENDING, SourceStatus.PROCESSING) for s in sources):
        return NoEvidenceError(
            STILL_PROCESSING,
            "Sources are still processing. Retry after status becomes READY.",
        )
    failed = next((s for s in sources if s.status is SourceStatus.FAILED), None)
    if failed is not None and failed.error_message:
        return NoEvidenceError(ALL_FAILED, f"Source processing failed: {failed.error_message}")
    return NoEvidenceError(ALL_FAILED, "No READY sources available for this notebook.")


class AnswerQuestion:
    """
    Application use case for one answering turn.
    Uses only ports; returns Result[AnswerResponse, DomainError].
    """

    def __init__(
        self,
        catalog: NotebookCatalogPort,
        conversations: ConversationStorePort,
        retriever: RetrieveCandidates,
        scripts: OrchestrateScripts,
        skills: SkillInteraction,
        llm: LLMPort,
        clock: ClockPort,
        telemetry: TelemetryPort | None = None,
        top_k: int = TOP_K,
        per_source_cap: int = PER_SOURCE_CAP,
        history_turns: int = HISTORY_TURNS,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> None:
        self.catalog = catalog
        self.conversations = conversations
        self.retriever = retriever
        self.scripts = scripts
        self.skills = skills
        self.llm = llm
        self.clock = clock
        self.telemetry = telemetry or NoopTelemetry()
        self.top_k = top_k
        self.per_source_cap = per_source_cap
        self.history_turns = history_turns
        self.temperature = temperature
        self.max_tokens = max_tokens

    def execute(self, req: AnswerRequest) -> Result[AnswerResponse, DomainError]:
        started = self.clock.monotonic()
        result = self._execute(req)
        status = "ok" if result.ok else type(result.error).__name__
        self.telemetry.incr("chat.turns.total", {"status": status})
        self.telemetry.observe("chat.turn.latency_ms", (self.clock.monotonic() - started) * 1000)
        if not result.ok:
            logger.warning("turn_failed", error_type=status, error=str(result.error))
        return result

    def _execute(self, req: AnswerRequest) -> Result[AnswerResponse, DomainError]:
        # 1) Validate, authorize, check readiness
        notebook_id = (req.notebook_id or "").strip()
        message = (req.message or "").strip()
        if not notebook_id or not message:
            return Result.failure(InputError("notebookId and userMessage are required"))

        try:
            access = self.catalog.access(notebook_id, req.user_id)
            if not access.exists:
                return Result.failure(AccessError.not_found())
            if not access.can_view:
                return Result.failure(AccessError.forbidden())
            sources = self.catalog.list_sources(notebook_id)
        except PersistenceError as ex:
            return Result.failure(ex)

        not_ready = check_readiness(sources)
        if not_ready is not None:
            return Result.failure(not_ready)

        # 2) Conversation + history
        try:
            conversation_id = self.conversations.resolve(req.conversation_id, notebook_id)
            history = self.conversations.load_history(conversation_id)
        except PersistenceError as ex:
            return Result.failure(ex)
        structlog.contextvars.bind_contextvars(
            notebook_id=notebook_id, conversation_id=conversation_id
        )
        try:
            logger.info("turn_started", sources=len(sources), history=len(history))
            return self._answer(req, notebook_id, message, conversation_id, sources, history)
        finally:
            structlog.contextvars.unbind_contextvars("notebook_id", "conversation_id")

    def _answer(
        self,
        req: AnswerRequest,
        notebook_id: str,
        message: str,
        conversation_id: str,
        sources: Sequence[SourceInfo],
        history,
    ) -> Result[AnswerResponse, DomainError]:
        # 3) Skill interaction
        skill = self.skills.handle(conversation_id, sources, message, req.interaction_reply)
        if skill.short_circuit:
            assert skill.turn is not None and skill.turn.reply_text is not None
            logger.info("skill_short_circuit", skill=skill.definition and skill.definition.name)
            self.telemetry.incr("chat.skill.short_circuit", {})
            self._persist(conversation_id, message, skill.turn.reply_text, [])
            return Result.success(
                AnswerResponse(
                    answer=skill.turn.reply_text,
                    conversation_id=conversation_id,
                    interaction=skill.turn.prompt,
                )
            )

        # 4) Retrieve + select
        ready = [s for s in sources if s.is_ready]
        r_pool = self.retriever.execute(notebook_id, message, [s.id for s in ready])
        if not r_pool.ok:
            assert r_pool.error is not None
            return Result.failure(r_pool.error)
        assert r_pool.value is not None
        pool = r_pool.value

        evidence = select_evidence(
            pool.chunks,
            ready,
            budget=self.top_k,
            cap=self.per_source_cap,
            probe=self.retriever.probe(notebook_id, pool.query_vector),
        )
        logger.info("evidence_selected", candidates=len(pool.chunks), selected=len(evidence))
        self.telemetry.observe("chat.evidence.selected", len(evidence), {})

        # 5) Script insights
        executable = {s.id for s in ready if s.is_executable}
        snippets = [c for c in pool.chunks if c.source_id not in executable]
        scripts = self.scripts.execute(notebook_id, message, sources, snippets, req.user_id)
        self.telemetry.observe("chat.script.insights", len(scripts.insights), {})

        # 6) Prompt + model
        ctx = PromptContext(
            message=message,
            evidence=evidence,
            executable_sources=self.scripts.executable_sources(sources),
            builtin_triggered=self.scripts.builtin_triggered(message),
            skill=skill.ready_skill,
            planning_pattern=self.skills.planning_pattern,
        )
        prompt = compose_prompt(
            ctx, history, format_insights(scripts.insights), history_turns=self.history_turns
        )
        messages = [
            ChatMessage(role="system", content=prompt.system),
            *(ChatMessage(role=t.role, content=t.content) for t in prompt.history),
            ChatMessage(role="user", content=prompt.user),
        ]
        try:
            response = self.llm.chat(
                messages, temperature=self.temperature, max_tokens=self.max_tokens
            )
        except LLMError as ex:
            return Result.failure(ex)
        except Exception as ex:  # noqa: BLE001
            return Result.failure(LLMError(f"llm generation failed: {ex}"))
        answer = response.text

        # 7) Citations + persistence
        citations = build_citations(answer, evidence)
        self._persist(conversation_id, message, answer, storage_citations(citations))
        self.skills.finish(conversation_id, skill)

        return Result.success(
            AnswerResponse(answer=answer, conversation_id=conversation_id, citations=citations)
        )

    def _persist(self, conversation_id: str, question: str, answer: str, citations) -> None:
        """Best effort once an answer exists; failure is logged, never raised."""
        try:
            self.conversations.append_message(conversation_id, "user", question)
            self.conversations.append_message(
                conversation_id, "assistant", answer, citations=citations or None
            )
        except PersistenceError as ex:
            logger.error("turn_persistence_failed", error=str(ex))
