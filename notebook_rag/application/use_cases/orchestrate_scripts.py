"""Script execution orchestration for one answering turn.

Pipeline:
1. Pick up to ``source_limit`` ready executable sources, plus the built-in
   analysis routine when the question matches its trigger
2. Enqueue one PENDING job each (code + snippets + question + routing)
3. Wait with a hard deadline: push notification when the store offers one,
   bounded polling otherwise
4. Keep SUCCEEDED outputs as realtime insights, merge recent historical
   successes (dedup by job id, capped)

Script insight is an enhancement only: a missing job store degrades to
"no insight" and never fails the turn. Timed-out jobs keep running in the
worker; they are just left out of this turn.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from notebook_rag.application.ports.clock_port import ClockPort
from notebook_rag.application.ports.notebook_port import NotebookCatalogPort
from notebook_rag.application.ports.script_job_port import JobNotificationPort, ScriptJobStorePort
from notebook_rag.domain.errors import InputError, JobStoreUnavailable, PersistenceError
from notebook_rag.domain.models import (
    EvidenceChunk,
    JobStatus,
    ScriptInsight,
    ScriptJob,
    SourceInfo,
)
from notebook_rag.domain.services.insights import MAX_INSIGHTS, merge_insights

logger = structlog.get_logger(__name__)

MAX_SNIPPETS = 24
SNIPPET_CHARS = 1200
BUILTIN_LABEL = "builtin:evidence-stats"

BUILTIN_TRIGGER = re.compile(
    r"(统计|分析|计算|趋势|对比|占比|平均|数据|statistic|analy[sz]|calculat|trend|compare"
    r"|average|percent)",
    re.IGNORECASE,
)

# Runs inside the sandbox: builtins only, result returned from main().
BUILTIN_ANALYSIS_CODE = '''
def _numbers(text):
    found = []
    token = ""
    for ch in text + " ":
        if ch.isdigit() or (ch == "." and token and "." not in token):
            token += ch
            continue
        token = token.rstrip(".")
        if token:
            try:
                found.append(float(token))
            except ValueError:
                pass
        token = ""
    return found


def main(data):
    snippets = data.get("snippets") or []
    coverage = {}
    numbers = []
    for item in snippets:
        title = item.get("sourceTitle") or "unknown"
        coverage[title] = coverage.get(title, 0) + 1
        numbers.extend(_numbers(item.get("content") or ""))
    summary = {
        "question": data.get("question"),
        "snippetCount": len(snippets),
        "sourceCoverage": coverage,
        "numberCount": len(numbers),
    }
    if numbers:
        summary["min"] = min(numbers)
        summary["max"] = max(numbers)
        summary["mean"] = round(sum(numbers) / len(numbers), 4)
    return summary
'''


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass(frozen=True)
class ScriptPlan:
    job: ScriptJob
    source: SourceInfo | None = None


@dataclass
class ScriptOutcome:
    insights: list[ScriptInsight] = field(default_factory=list)
    dispatched: int = 0
    completed: int = 0
    degraded: bool = False


class OrchestrateScripts:
    """Dispatch sandboxed jobs and wait for them under a fixed deadline."""

    def __init__(
        self,
        store: ScriptJobStorePort,
        catalog: NotebookCatalogPort,
        clock: ClockPort,
        source_limit: int = 2,
        poll_ms: int = 350,
        wait_ms: int = 7000,
        timeout_ms: int = 10_000,
        memory_mb: int = 256,
        builtin_trigger: re.Pattern[str] = BUILTIN_TRIGGER,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.clock = clock
        self.source_limit = clamp(source_limit, 1, 3)
        self.poll_ms = clamp(poll_ms, 200, 1000)
        self.wait_ms = clamp(wait_ms, 1500, 20_000)
        self.timeout_ms = clamp(timeout_ms, 10_000, 12_000)
        self.memory_mb = clamp(memory_mb, 64, 1024)
        self.builtin_trigger = builtin_trigger

    # ===== Planning =====

    def builtin_triggered(self, question: str) -> bool:
        return bool(self.builtin_trigger.search(question or ""))

    def executable_sources(self, sources: Sequence[SourceInfo]) -> list[SourceInfo]:
        return [s for s in sources if s.is_ready and s.is_executable][: self.source_limit]

    def build_input(
        self,
        notebook_id: str,
        question: str,
        snippets: Sequence[EvidenceChunk],
        route: dict[str, Any],
    ) -> dict[str, Any]:
        return {
            "question": question,
            "notebookId": notebook_id,
            "route": route,
            "snippets": [
                {
                    "ref": i + 1,
                    "sourceId": c.source_id,
                    "sourceTitle": c.source_title,
                    "content": c.content[:SNIPPET_CHARS],
                }
                for i, c in enumerate(snippets[:MAX_SNIPPETS])
            ],
        }

    def plan(
        self,
        notebook_id: str,
        question: str,
        sources: Sequence[SourceInfo],
        snippets: Sequence[EvidenceChunk],
        user_id: str | None = None,
    ) -> list[ScriptPlan]:
        plans: list[ScriptPlan] = []
        for source in self.executable_sources(sources):
            code = self.catalog.load_script_code(source.id)
            if not code or not code.strip():
                continue
            route = {"kind": "source", "sourceId": source.id, "sourceTitle": source.title}
            job = self._job(notebook_id, code, question, snippets, route, source.title, user_id)
            plans.append(ScriptPlan(job=job, source=source))
        if self.builtin_triggered(question):
            route = {"kind": "builtin", "routine": BUILTIN_LABEL}
            plans.append(
                ScriptPlan(
                    job=self._job(
                        notebook_id, BUILTIN_ANALYSIS_CODE, question, snippets, route,
                        BUILTIN_LABEL, user_id,
                    )
                )
            )
        return plans

    def _job(
        self,
        notebook_id: str,
        code: str,
        question: str,
        snippets: Sequence[EvidenceChunk],
        route: dict[str, Any],
        label: str,
        user_id: str | None,
    ) -> ScriptJob:
        return ScriptJob(
            id=f"job_{uuid.uuid4()}",
            notebook_id=notebook_id,
            code=code,
            input=self.build_input(notebook_id, question, snippets, route),
            status=JobStatus.PENDING,
            timeout_ms=self.timeout_ms,
            memory_limit_mb=self.memory_mb,
            label=label,
            user_id=user_id,
            created_at=self.clock.now(),
        )

    # ===== Waiting =====

    def wait(self, job_ids: Sequence[str]) -> list[ScriptJob]:
        """Return the jobs that reached a terminal state before the deadline.

        Re-checks every ``poll_ms``; never sleeps past ``wait_ms`` in total.
        """
        if not job_ids:
            return []
        start = self.clock.monotonic()
        deadline = start + self.wait_ms / 1000.0
        notifier = self.store if isinstance(self.store, JobNotificationPort) else None
        latest: dict[str, ScriptJob] = {}

        while True:
            for job in self.store.poll(job_ids):
                latest[job.id] = job
            terminal = [j for j in latest.values() if j.status.is_terminal]
            if len(terminal) == len(job_ids):
                break
            remaining = deadline - self.clock.monotonic()
            if remaining <= 0:
                break
            step = min(self.poll_ms / 1000.0, remaining)
            if notifier is not None:
                notifier.wait_for_update(job_ids, step)
            else:
                self.clock.sleep(step)

        waited_ms = int((self.clock.monotonic() - start) * 1000)
        logger.info(
            "script_wait_finished",
            terminal=len(terminal),
            pending=len(job_ids) - len(terminal),
            waited_ms=waited_ms,
        )
        return [latest[i] for i in job_ids if i in latest and latest[i].status.is_terminal]

    # ===== Turn entry point =====

    def execute(
        self,
        notebook_id: str,
        question: str,
        sources: Sequence[SourceInfo],
        snippets: Sequence[EvidenceChunk],
        user_id: str | None = None,
    ) -> ScriptOutcome:
        outcome = ScriptOutcome()
        try:
            plans = self.plan(notebook_id, question, sources, snippets, user_id)
            job_ids = []
            for p in plans:
                try:
                    job_ids.append(self.store.enqueue(p.job))
                except InputError as ex:
                    logger.warning("script_job_rejected", label=p.job.label, error=str(ex))
            outcome.dispatched = len(job_ids)
            if job_ids:
                logger.info("script_jobs_dispatched", count=len(job_ids), notebook_id=notebook_id)
            finished = self.wait(job_ids)
            outcome.completed = len(finished)
            labels = {p.job.id: p.job.label for p in plans}
            realtime = [
                ScriptInsight(job_id=j.id, label=labels.get(j.id, j.label), output=j.output)
                for j in finished
                if j.status is JobStatus.SUCCEEDED
            ]
            # A job from this turn that finished after the deadline stays out.
            late = set(job_ids) - {j.id for j in finished}
            historical = [
                ScriptInsight(job_id=j.id, label=j.label, output=j.output, realtime=False)
                for j in self.store.recent_succeeded(notebook_id, MAX_INSIGHTS)
                if j.id not in late
            ]
        except (JobStoreUnavailable, PersistenceError) as ex:
            logger.warning("script_insight_degraded", notebook_id=notebook_id, error=str(ex))
            outcome.degraded = True
            return outcome

        outcome.insights = merge_insights(realtime, historical)
        return outcome
