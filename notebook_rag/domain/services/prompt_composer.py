# notebook_rag/domain/services/prompt_composer.py
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from notebook_rag.domain.models import ChatTurn, SelectedEvidence
from notebook_rag.domain.services.prompt_rules import (
    DEFAULT_RULES,
    PromptContext,
    PromptRule,
    apply_rules,
)

BASE_SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer based only on the following sources. "
    "Always cite the source number in brackets (e.g. [1]) when you use information from it. "
    "If the user question cannot be answered from the sources, say so. "
    "Reply in the language of the user's question."
)

HISTORY_TURNS = 10


@dataclass(frozen=True)
class ComposedPrompt:
    system: str
    history: tuple[ChatTurn, ...]
    user: str
    rules: tuple[str, ...] = ()


def _page_label(start: int | None, end: int | None) -> str:
    if start is None:
        return ""
    if end is not None and end != start:
        return f", p.{start}-{end}"
    return f", p.{start}"


def format_evidence(item: SelectedEvidence) -> str:
    c = item.chunk
    pages = _page_label(c.page_start, c.page_end)
    return f"[{item.index}] (Source: {c.source_title}{pages})\n{c.content}"


def build_user_content(
    evidence: Sequence[SelectedEvidence],
    insight_blocks: Sequence[str],
    question: str,
) -> str:
    sources = "\n\n".join(format_evidence(e) for e in evidence)
    insights = "\n\n".join(insight_blocks) if insight_blocks else "(none)"
    return (
        f"Sources:\n{sources}\n\n"
        f"Script insights:\n{insights}\n\n"
        f"User question: {question.strip()}"
    )


def truncate_history(
    history: Sequence[ChatTurn], turns: int = HISTORY_TURNS
) -> tuple[ChatTurn, ...]:
    kept = [t for t in history if t.role in ("user", "assistant")]
    if turns <= 0:
        return ()
    return tuple(kept[-turns:])


def compose_prompt(
    ctx: PromptContext,
    history: Sequence[ChatTurn],
    insight_blocks: Sequence[str],
    rules: Sequence[PromptRule] = DEFAULT_RULES,
    history_turns: int = HISTORY_TURNS,
) -> ComposedPrompt:
    """Merge evidence, script insights, history and conditional rules."""
    fired = apply_rules(ctx, rules)
    system = "\n\n".join([BASE_SYSTEM_PROMPT, *(block for _, block in fired)])
    return ComposedPrompt(
        system=system,
        history=truncate_history(history, history_turns),
        user=build_user_content(ctx.evidence, insight_blocks, ctx.message),
        rules=tuple(name for name, _ in fired),
    )
