# notebook_rag/application/dto/answer_dto.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from notebook_rag.domain.models import Citation, InteractionPrompt


@dataclass(frozen=True)
class AnswerRequest:
    """
    DTO for one inbound chat turn.

    - notebook_id: notebook whose sources are the evidence pool (required)
    - message: the user's question (non-empty)
    - conversation_id: existing conversation; a new one is created when unknown
    - user_id: caller identity for the access check
    - interaction_reply: structured answer to a previous choice prompt,
      e.g. {"key": "input_mode", "value": "auto"}
    """

    notebook_id: str
    message: str
    conversation_id: str | None = None
    user_id: str | None = None
    interaction_reply: Mapping[str, str] | None = None


@dataclass(frozen=True)
class AnswerResponse:
    """Answer with citations, or a structured prompt when a skill short-circuits."""

    answer: str
    conversation_id: str
    citations: list[Citation] = field(default_factory=list)
    interaction: InteractionPrompt | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "answer": self.answer,
            "citations": [c.to_dict() for c in self.citations],
            "conversationId": self.conversation_id,
        }
        if self.interaction is not None:
            data["interaction"] = self.interaction.to_dict()
        return data
