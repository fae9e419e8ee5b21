"""Dependency injection container with environment-driven wiring.

Why: Single place for wiring; all other layers remain pure.
"""

import re
from typing import TYPE_CHECKING

from notebook_rag.application.ports import (
    ClockPort,
    ConversationStorePort,
    EmbeddingPort,
    EvidenceSearchPort,
    LLMPort,
    NoopTelemetry,
    NotebookCatalogPort,
    ScriptJobStorePort,
    SkillStateStorePort,
    TelemetryPort,
)
from notebook_rag.config.settings import AppSettings

if TYPE_CHECKING:
    from notebook_rag.application.use_cases.answer_question import AnswerQuestion
    from notebook_rag.infrastructure.persistence.redis_client import RedisConfig


class Container:
    """Dependency injection container for application components.

    Responsibilities:
    1. Read settings from environment (via AppSettings)
    2. Build adapters lazily, one instance each
    3. Inject dependencies into the answering use case
    """

    def __init__(self, settings: AppSettings | None = None) -> None:
        self.settings = settings or AppSettings()
        self._clock: ClockPort | None = None
        self._embedding: EmbeddingPort | None = None
        self._evidence_search: EvidenceSearchPort | None = None
        self._llm: LLMPort | None = None
        self._job_store: ScriptJobStorePort | None = None
        self._conversations: ConversationStorePort | None = None
        self._skill_states: SkillStateStorePort | None = None
        self._catalog: NotebookCatalogPort | None = None
        self._telemetry: TelemetryPort | None = None

    # ===== Adapters =====

    def get_clock(self) -> ClockPort:
        if self._clock is None:
            from notebook_rag.infrastructure.time.system_clock import SystemClock

            self._clock = SystemClock()
        return self._clock

    def get_embedding(self) -> EmbeddingPort:
        if self._embedding is None:
            self._embedding = self._build_embedding()
        return self._embedding

    def get_evidence_search(self) -> EvidenceSearchPort:
        if self._evidence_search is None:
            self._evidence_search = self._build_evidence_search()
        return self._evidence_search

    def get_llm(self) -> LLMPort:
        if self._llm is None:
            self._llm = self._build_llm()
        return self._llm

    def get_job_store(self) -> ScriptJobStorePort:
        if self._job_store is None:
            from notebook_rag.infrastructure.queues.redis_script_job_store import (
                RedisScriptJobStore,
            )

            self._job_store = RedisScriptJobStore(self._redis_config())
        return self._job_store

    def get_conversations(self) -> ConversationStorePort:
        if self._conversations is None:
            from notebook_rag.infrastructure.persistence.redis_conversation_store import (
                RedisConversationStore,
            )

            self._conversations = RedisConversationStore(self.get_clock(), self._redis_config())
        return self._conversations

    def get_skill_states(self) -> SkillStateStorePort:
        if self._skill_states is None:
            from notebook_rag.infrastructure.persistence.redis_skill_state_store import (
                RedisSkillStateStore,
            )

            self._skill_states = RedisSkillStateStore(self._redis_config())
        return self._skill_states

    def get_catalog(self) -> NotebookCatalogPort:
        if self._catalog is None:
            from notebook_rag.infrastructure.persistence.redis_notebook_catalog import (
                RedisNotebookCatalog,
            )

            self._catalog = RedisNotebookCatalog(self._redis_config())
        return self._catalog

    def get_telemetry(self) -> TelemetryPort:
        if self._telemetry is None:
            self._telemetry = self._build_telemetry()
        return self._telemetry

    # ===== Use Cases =====

    def get_answer_use_case(self) -> "AnswerQuestion":
        """Build the answering use case with all dependencies."""
        from notebook_rag.application.use_cases.answer_question import AnswerQuestion
        from notebook_rag.application.use_cases.orchestrate_scripts import OrchestrateScripts
        from notebook_rag.application.use_cases.retrieve_candidates import RetrieveCandidates
        from notebook_rag.application.use_cases.skill_interaction import SkillInteraction

        s = self.settings
        return AnswerQuestion(
            catalog=self.get_catalog(),
            conversations=self.get_conversations(),
            retriever=RetrieveCandidates(
                embedding=self.get_embedding(),
                search=self.get_evidence_search(),
                candidate_limit=s.candidate_limit,
            ),
            scripts=OrchestrateScripts(
                store=self.get_job_store(),
                catalog=self.get_catalog(),
                clock=self.get_clock(),
                source_limit=s.script_source_limit,
                poll_ms=s.script_poll_ms,
                wait_ms=s.script_wait_ms,
                timeout_ms=s.script_timeout_ms,
                memory_mb=s.script_memory_mb,
            ),
            skills=SkillInteraction(
                store=self.get_skill_states(),
                extractor_available=s.script_extractor_available,
                planning_pattern=self._planning_pattern(),
            ),
            llm=self.get_llm(),
            clock=self.get_clock(),
            telemetry=self.get_telemetry(),
            top_k=s.top_k,
            per_source_cap=s.per_source_cap,
            history_turns=s.history_turns,
            temperature=s.llm_temperature,
            max_tokens=s.llm_max_tokens,
        )

    # ===== Private Builder Methods =====

    def _planning_pattern(self) -> str:
        """Configured planning pattern, or the built-in one when it does not compile."""
        from notebook_rag.domain.services.skills import DEFAULT_PLANNING_PATTERN

        try:
            re.compile(self.settings.skill_planning_pattern)
        except re.error:
            return DEFAULT_PLANNING_PATTERN
        return self.settings.skill_planning_pattern

    def _redis_config(self) -> "RedisConfig":
        from notebook_rag.infrastructure.persistence.redis_client import RedisConfig

        return RedisConfig(
            host=self.settings.redis_host,
            port=self.settings.redis_port,
            db=self.settings.redis_db,
            password=self.settings.redis_password or None,
        )

    def _build_embedding(self) -> EmbeddingPort:
        from notebook_rag.infrastructure.embeddings.sentence_transformers_adapter import (
            SentenceTransformersEmbeddingAdapter,
        )

        return SentenceTransformersEmbeddingAdapter(
            model_name=self.settings.embedding_model,
            device=self.settings.embedding_device,
        )

    def _build_evidence_search(self) -> EvidenceSearchPort:
        from notebook_rag.infrastructure.vectorstore.qdrant_evidence_store import (
            QdrantConfig,
            QdrantEvidenceStore,
        )

        cfg = QdrantConfig(
            url=self.settings.qdrant_url,
            collection=self.settings.qdrant_collection,
            api_key=self.settings.qdrant_api_key or None,
            timeout_s=self.settings.qdrant_timeout_s,
        )
        return QdrantEvidenceStore(cfg)

    def _build_llm(self) -> LLMPort:
        from notebook_rag.infrastructure.llm.openai_chat_adapter import OpenAIChatAdapter

        return OpenAIChatAdapter(
            base_url=self.settings.llm_base_url,
            api_key=self.settings.llm_api_key,
            model=self.settings.llm_model,
        )

    def _build_telemetry(self) -> TelemetryPort:
        from notebook_rag.infrastructure.telemetry.otel_adapter import (
            OpenTelemetryAdapter,
            OtelConfig,
        )

        if not self.settings.telemetry_enabled:
            return NoopTelemetry()
        cfg = OtelConfig(
            service_name="notebook-rag",
            otlp_endpoint=self.settings.otlp_endpoint or None,
            environment=self.settings.telemetry_environment,
        )
        return OpenTelemetryAdapter(cfg)


def build_container(settings: AppSettings | None = None) -> Container:
    """Example:
    container = build_container()
    result = container.get_answer_use_case().execute(request)
    """
    return Container(settings)
