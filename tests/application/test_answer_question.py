"""End-to-end tests for AnswerQuestion with in-memory fakes for every port."""

from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime

import pytest

from notebook_rag.application.dto.answer_dto import AnswerRequest
from notebook_rag.application.ports.clock_port import ClockPort
from notebook_rag.application.ports.llm_port import LLMResponse
from notebook_rag.application.ports.notebook_port import NotebookAccess
from notebook_rag.application.ports.telemetry_port import NoopTelemetry
from notebook_rag.application.use_cases.answer_question import AnswerQuestion, check_readiness
from notebook_rag.application.use_cases.orchestrate_scripts import OrchestrateScripts
from notebook_rag.application.use_cases.retrieve_candidates import RetrieveCandidates
from notebook_rag.application.use_cases.skill_interaction import SkillInteraction
from notebook_rag.domain.errors import (
    ALL_FAILED,
    NONE_UPLOADED,
    STILL_PROCESSING,
    AccessError,
    InputError,
    LLMError,
    NoEvidenceError,
    PersistenceError,
)
from notebook_rag.domain.models import (
    ChatTurn,
    EvidenceChunk,
    JobStatus,
    ScriptJob,
    SkillState,
    SourceInfo,
    SourceKind,
    SourceStatus,
)


class FakeClock(ClockPort):
    def __init__(self) -> None:
        self.t = 0.0

    def now(self) -> datetime:
        return datetime(2024, 1, 1, tzinfo=UTC)

    def monotonic(self) -> float:
        return self.t

    def sleep(self, seconds: float) -> None:
        self.t += seconds


class FakeCatalog:
    def __init__(self, sources, access=None, code=None) -> None:
        self.sources = list(sources)
        self.acc = access or NotebookAccess(exists=True, can_view=True, user_id="u1")
        self.code = code or {}
        self.fail = False

    def access(self, notebook_id: str, user_id: str | None) -> NotebookAccess:
        if self.fail:
            raise PersistenceError("catalog unavailable")
        return self.acc

    def list_sources(self, notebook_id: str) -> list[SourceInfo]:
        return list(self.sources)

    def load_script_code(self, source_id: str) -> str | None:
        return self.code.get(source_id)


class FakeConversations:
    def __init__(self, history: list[ChatTurn] | None = None) -> None:
        self.history = history or []
        self.messages: list[tuple[str, str, str, object]] = []
        self.fail_append = False

    def resolve(self, conversation_id: str | None, notebook_id: str) -> str:
        return conversation_id or "conv_new"

    def load_history(self, conversation_id: str) -> list[ChatTurn]:
        return list(self.history)

    def append_message(self, conversation_id, role, content, citations=None) -> str:
        if self.fail_append:
            raise PersistenceError("write failed")
        self.messages.append((conversation_id, role, content, citations))
        return f"msg_{len(self.messages)}"


class FakeEmbedding:
    def __init__(self) -> None:
        self.calls = 0

    def embed_query(self, text: str) -> list[float]:
        self.calls += 1
        return [0.1, 0.2, 0.3]


class FakeSearch:
    def __init__(self, rows: list[EvidenceChunk]) -> None:
        self.rows = rows

    def search(self, notebook_id, query_vector, limit, source_ids: Sequence[str]):
        return [r for r in self.rows if r.source_id in source_ids][:limit]

    def search_source(self, notebook_id, source_id, query_vector):
        return None


class FakeLLM:
    def __init__(self, text: str = "Answer.", exc: Exception | None = None) -> None:
        self.text = text
        self.exc = exc
        self.calls: list[list] = []

    def chat(self, messages, temperature: float = 0.2, max_tokens: int = 1024) -> LLMResponse:
        self.calls.append(list(messages))
        if self.exc:
            raise self.exc
        return LLMResponse(text=self.text)


class FakeSkillStore:
    def __init__(self) -> None:
        self.state = SkillState()

    def load(self, conversation_id: str) -> SkillState:
        return self.state

    def save(self, conversation_id: str, state: SkillState) -> SkillState:
        self.state = replace(state, version=state.version + 1)
        return self.state


class InstantJobStore:
    """Every job succeeds as soon as it is polled."""

    def __init__(self) -> None:
        self.jobs: dict[str, ScriptJob] = {}

    def enqueue(self, job: ScriptJob) -> str:
        self.jobs[job.id] = job
        return job.id

    def poll(self, job_ids):
        return [
            replace(self.jobs[i], status=JobStatus.SUCCEEDED, output={"total": 42})
            for i in job_ids
        ]

    def recent_succeeded(self, notebook_id, limit):
        return []


class FakeTelemetry:
    def __init__(self) -> None:
        self.counters: list[tuple[str, dict]] = []

    def incr(self, name, tags=None) -> None:
        self.counters.append((name, tags or {}))

    def observe(self, name, value, tags=None) -> None:
        pass


def ready(sid: str, title: str, kind: SourceKind = SourceKind.DOCUMENT) -> SourceInfo:
    return SourceInfo(sid, title, SourceStatus.READY, kind=kind)


def chunk(cid: str, sid: str, distance: float, content: str = "text") -> EvidenceChunk:
    return EvidenceChunk(cid, sid, f"{sid}.pdf", content, distance=distance)


SOURCES = [ready("s1", "s1.pdf"), ready("s2", "s2.pdf")]
ROWS = [
    chunk("s1c1", "s1", 0.10, "Revenue grew 12% in Q3."),
    chunk("s2c1", "s2", 0.20, "Churn fell to 3%."),
    chunk("s1c2", "s1", 0.30, "Headcount stayed flat."),
]


class Harness:
    def __init__(self, sources=SOURCES, rows=ROWS, llm_text="Answer.", code=None) -> None:
        self.clock = FakeClock()
        self.catalog = FakeCatalog(sources, code=code)
        self.conversations = FakeConversations([ChatTurn("user", "earlier question")])
        self.embedding = FakeEmbedding()
        self.llm = FakeLLM(llm_text)
        self.skill_store = FakeSkillStore()
        self.telemetry = FakeTelemetry()
        self.use_case = AnswerQuestion(
            catalog=self.catalog,
            conversations=self.conversations,
            retriever=RetrieveCandidates(self.embedding, FakeSearch(rows)),
            scripts=OrchestrateScripts(InstantJobStore(), self.catalog, self.clock),
            skills=SkillInteraction(self.skill_store),
            llm=self.llm,
            clock=self.clock,
            telemetry=self.telemetry,
        )

    def ask(self, message: str = "How did the quarter go?", **kwargs):
        return self.use_case.execute(
            AnswerRequest(notebook_id="nb1", message=message, user_id="u1", **kwargs)
        )


class TestReadiness:
    def test_no_sources(self) -> None:
        err = check_readiness([])
        assert err.reason == NONE_UPLOADED
        assert err.status_code == 400

    def test_still_processing(self) -> None:
        err = check_readiness([SourceInfo("s1", "a.pdf", SourceStatus.PROCESSING)])
        assert err.reason == STILL_PROCESSING
        assert err.status_code == 409

    def test_all_failed_reports_first_error(self) -> None:
        err = check_readiness([SourceInfo("s1", "a.pdf", SourceStatus.FAILED, error_message="bad")])
        assert err.reason == ALL_FAILED
        assert "bad" in err.detail

    def test_one_ready_is_enough(self) -> None:
        sources = [SourceInfo("s1", "a.pdf", SourceStatus.FAILED), ready("s2", "b.pdf")]
        assert check_readiness(sources) is None


class TestAnswerFlow:
    def test_answer_with_marked_citations(self) -> None:
        h = Harness(llm_text="Revenue grew [1] while churn fell [2].")
        result = h.ask()

        assert result.ok
        resp = result.value
        assert resp.answer == "Revenue grew [1] while churn fell [2]."
        assert [c.ref_number for c in resp.citations] == [1, 2]
        assert [c.source_id for c in resp.citations] == ["s1", "s2"]
        assert resp.conversation_id == "conv_new"
        assert h.llm.calls and h.embedding.calls == 1

    def test_unmarked_answer_cites_all_evidence(self) -> None:
        result = Harness(llm_text="No markers here.").ask()
        assert [c.ref_number for c in result.value.citations] == [1, 2, 3]

    def test_messages_layout_and_history(self) -> None:
        h = Harness()
        h.ask()

        messages = h.llm.calls[0]
        assert messages[0].role == "system"
        assert messages[1].content == "earlier question"
        assert messages[-1].role == "user"
        assert "User question: How did the quarter go?" in messages[-1].content
        assert "[1] (Source: s1.pdf)" in messages[-1].content

    def test_turn_is_persisted_without_full_content(self) -> None:
        h = Harness(llm_text="See [1].")
        h.ask(conversation_id="conv_7")

        roles = [(m[0], m[1]) for m in h.conversations.messages]
        assert roles == [("conv_7", "user"), ("conv_7", "assistant")]
        stored = h.conversations.messages[1][3]
        assert stored[0]["refNumber"] == 1
        assert "fullContent" not in stored[0]

    def test_persistence_failure_still_returns_answer(self) -> None:
        h = Harness()
        h.conversations.fail_append = True
        assert h.ask().ok

    def test_script_insight_reaches_prompt(self) -> None:
        sources = [*SOURCES, ready("x1", "calc.py", SourceKind.EXECUTABLE)]
        h = Harness(sources=sources, code={"x1": "def main(d):\n    return 42\n"})
        h.ask()

        user = h.llm.calls[0][-1].content
        assert "[Script insight #1] (calc.py, realtime" in user
        assert '"total": 42' in user

    def test_telemetry_counts_turn(self) -> None:
        h = Harness()
        h.ask()
        assert ("chat.turns.total", {"status": "ok"}) in h.telemetry.counters

    def test_missing_telemetry_defaults_to_noop(self) -> None:
        h = Harness()
        use_case = AnswerQuestion(
            catalog=h.catalog,
            conversations=h.conversations,
            retriever=h.use_case.retriever,
            scripts=h.use_case.scripts,
            skills=h.use_case.skills,
            llm=h.llm,
            clock=h.clock,
        )
        assert isinstance(use_case.telemetry, NoopTelemetry)
        assert use_case.execute(AnswerRequest(notebook_id="nb1", message="q", user_id="u1")).ok


class TestFailures:
    def test_blank_message_is_input_error(self) -> None:
        result = Harness().ask(message="   ")
        assert isinstance(result.error, InputError)
        assert result.error.status_code == 400

    @pytest.mark.parametrize(
        ("access", "status"),
        [
            (NotebookAccess(exists=False, can_view=False), 404),
            (NotebookAccess(exists=True, can_view=False, user_id="other"), 403),
        ],
    )
    def test_access_denied(self, access: NotebookAccess, status: int) -> None:
        h = Harness()
        h.catalog.acc = access
        result = h.ask()
        assert isinstance(result.error, AccessError)
        assert result.error.status_code == status
        assert h.embedding.calls == 0

    def test_catalog_outage_is_persistence_error(self) -> None:
        h = Harness()
        h.catalog.fail = True
        assert isinstance(h.ask().error, PersistenceError)

    def test_processing_sources_are_409(self) -> None:
        h = Harness(sources=[SourceInfo("s1", "a.pdf", SourceStatus.PENDING)])
        result = h.ask()
        assert isinstance(result.error, NoEvidenceError)
        assert result.error.status_code == 409
        assert h.llm.calls == []

    def test_llm_crash_becomes_llm_error(self) -> None:
        h = Harness()
        h.llm.exc = RuntimeError("connection reset")
        result = h.ask()
        assert isinstance(result.error, LLMError)
        assert h.conversations.messages == []
        assert ("chat.turns.total", {"status": "LLMError"}) in h.telemetry.counters


class TestSkillShortCircuit:
    def test_skill_prompt_skips_retrieval_and_model(self) -> None:
        sources = [*SOURCES, ready("k1", "viral-content-skill.md")]
        h = Harness(sources=sources)
        result = h.ask(message="帮我写一个爆款文案方案")

        assert result.ok
        assert result.value.interaction is not None
        assert result.value.interaction.key == "input_mode"
        assert result.value.citations == []
        assert h.embedding.calls == 0
        assert h.llm.calls == []
        assert [m[1] for m in h.conversations.messages] == ["user", "assistant"]

    def test_mode_reply_is_answered_with_next_prompt(self) -> None:
        sources = [*SOURCES, ready("k1", "viral-content-skill.md")]
        h = Harness(sources=sources)
        h.ask(message="帮我写一个爆款文案方案")
        result = h.ask(message="手动", interaction_reply={"key": "input_mode", "value": "manual"})

        assert result.value.interaction.key == "manual_input"
        assert h.llm.calls == []

    def test_active_skill_without_mode_always_reprompts(self) -> None:
        sources = [*SOURCES, ready("k1", "viral-content-skill.md")]
        h = Harness(sources=sources)
        h.skill_store.state = SkillState(active=True, skill_name="viral-content")

        result = h.ask(message="What is in the report?")

        assert result.value.interaction.key == "input_mode"
        assert h.embedding.calls == 0
        assert h.llm.calls == []
