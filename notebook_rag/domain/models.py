# notebook_rag/domain/models.py
# Domain models must be pure (no I/O, no external libs)
from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SourceStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"


class SourceKind(str, Enum):
    DOCUMENT = "document"
    TEXT = "text"
    EXECUTABLE = "executable"


@dataclass(frozen=True)
class SourceInfo:
    """A notebook source as seen by the answering turn."""

    id: str
    title: str
    status: SourceStatus
    kind: SourceKind = SourceKind.DOCUMENT
    error_message: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.status is SourceStatus.READY

    @property
    def is_executable(self) -> bool:
        return self.kind is SourceKind.EXECUTABLE


@dataclass(frozen=True)
class EvidenceChunk:
    """
    Immutable retrieved fragment of a source.

    - distance:  similarity distance to the question (lower = closer)
    - page_*:    optional page range inside the source
    """

    chunk_id: str
    source_id: str
    source_title: str
    content: str
    distance: float | None = None
    page_start: int | None = None
    page_end: int | None = None

    @property
    def score(self) -> float | None:
        if self.distance is None or not math.isfinite(self.distance):
            return None
        return 1.0 - self.distance


@dataclass(frozen=True)
class SelectedEvidence:
    """A selected chunk tagged with its 1-based display index."""

    chunk: EvidenceChunk
    index: int


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


@dataclass(frozen=True)
class ScriptJob:
    """Sandboxed code execution request; mutated only by the external worker."""

    id: str
    notebook_id: str
    code: str
    input: Mapping[str, Any]
    status: JobStatus = JobStatus.PENDING
    output: Any = None
    timeout_ms: int = 10_000
    memory_limit_mb: int = 256
    label: str = ""
    user_id: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    finished_at: datetime | None = None


@dataclass(frozen=True)
class ScriptInsight:
    job_id: str
    label: str
    output: Any
    realtime: bool = True


@dataclass(frozen=True)
class ChatTurn:
    role: str  # "user" | "assistant"
    content: str


@dataclass(frozen=True)
class Citation:
    """Citation reference for a generated answer."""

    source_id: str
    source_title: str
    snippet: str
    ref_number: int
    page_start: int | None = None
    page_end: int | None = None
    full_content: str | None = None
    score: float | None = None
    distance: float | None = None

    def to_dict(self, include_full_content: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sourceId": self.source_id,
            "sourceTitle": self.source_title,
            "pageStart": self.page_start,
            "pageEnd": self.page_end,
            "snippet": self.snippet,
            "refNumber": self.ref_number,
            "score": self.score,
            "distance": self.distance,
        }
        if include_full_content and self.full_content is not None:
            data["fullContent"] = self.full_content
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class SkillState:
    """Guided-workflow progress for one conversation."""

    active: bool = False
    skill_name: str | None = None
    selections: Mapping[str, str] = field(default_factory=dict)
    version: int = 0

    def with_selection(self, key: str, value: str) -> SkillState:
        merged = dict(self.selections)
        merged[key] = value
        return SkillState(
            active=self.active,
            skill_name=self.skill_name,
            selections=merged,
            version=self.version,
        )


@dataclass(frozen=True)
class ChoiceOption:
    value: str
    label: str
    description: str = ""


@dataclass(frozen=True)
class InteractionPrompt:
    """Structured choice/template prompt returned instead of a model answer."""

    kind: str  # "choice" | "template"
    key: str
    title: str
    options: tuple[ChoiceOption, ...] = ()
    template: str | None = None
    skill_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind,
            "key": self.key,
            "title": self.title,
            "options": [
                {"value": o.value, "label": o.label, "description": o.description}
                for o in self.options
            ],
        }
        if self.template is not None:
            data["template"] = self.template
        if self.skill_name is not None:
            data["skill"] = self.skill_name
        return data
