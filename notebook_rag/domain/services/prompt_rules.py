# notebook_rag/domain/services/prompt_rules.py
"""Conditional system-prompt rules.

Each rule is a named predicate that returns an instruction block or None.
Rules are evaluated in a fixed order so the composed prompt is deterministic.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from notebook_rag.domain.models import SelectedEvidence, SourceInfo
from notebook_rag.domain.services.skills import DEFAULT_PLANNING_PATTERN, SkillDefinition

PLANNING_SECTIONS = (
    "## 一、目标与现状",
    "## 二、核心方案",
    "## 三、执行步骤",
    "## 四、风险与评估",
)


@dataclass(frozen=True)
class PromptContext:
    message: str
    evidence: Sequence[SelectedEvidence] = ()
    executable_sources: Sequence[SourceInfo] = ()
    builtin_triggered: bool = False
    skill: SkillDefinition | None = None
    planning_pattern: re.Pattern[str] = field(
        default_factory=lambda: re.compile(DEFAULT_PLANNING_PATTERN, re.IGNORECASE)
    )

    @property
    def script_capable(self) -> bool:
        return bool(self.executable_sources) or self.builtin_triggered

    @property
    def planning_request(self) -> bool:
        return bool(self.planning_pattern.search(self.message or ""))


@dataclass(frozen=True)
class PromptRule:
    name: str
    build: Callable[[PromptContext], str | None]


def _evidence_mentions_scripts(ctx: PromptContext) -> bool:
    names: list[str] = []
    for s in ctx.executable_sources:
        title = s.title.lower()
        names.append(title)
        stem = title.rsplit(".", 1)[0]
        if stem and stem != title:
            names.append(stem)
    for item in ctx.evidence:
        text = item.chunk.content.lower()
        if any(n and n in text for n in names):
            return True
    return False


def skill_planning_rule(ctx: PromptContext) -> str | None:
    # An active workflow brings its own answer sections.
    if ctx.skill is not None or not ctx.executable_sources:
        return None
    if not (_evidence_mentions_scripts(ctx) or ctx.planning_request):
        return None
    sections = "\n".join(PLANNING_SECTIONS)
    return (
        "When the user asks for a plan or a deliverable, answer in Chinese markdown using "
        "exactly these four sections, in this order:\n"
        f"{sections}\n"
        "Do not add filler paragraphs. Do not state percentages or figures that are not "
        "supported by the sources or script insights."
    )


def script_capability_rule(ctx: PromptContext) -> str | None:
    if not ctx.script_capable:
        return (
            "No script execution is available in this conversation. Never claim to have run "
            "code, never mention script execution, and never print pseudo terminal output."
        )
    return (
        "Script insights may be listed with the user content. You may mention that they come "
        "from executed scripts, but only quote what the insight payload contains."
    )


def skill_output_rule(ctx: PromptContext) -> str | None:
    if ctx.skill is None:
        return None
    sections = "\n".join(ctx.skill.output_sections)
    return (
        f"Active workflow: {ctx.skill.display_name}. Structure the answer with exactly these "
        f"sections:\n{sections}\n"
        "Never output runnable shell commands, tool invocations or installation steps."
    )


def direct_production_rule(ctx: PromptContext) -> str | None:
    if ctx.skill is None:
        return None
    if not ctx.skill.direct_production_pattern.search(ctx.message or ""):
        return None
    return (
        "The user is ready for the final piece. Produce the complete artifact in one pass "
        "instead of asking further questions. Write original text only: do not copy "
        "sentences from reference material, and do not include commands of any kind."
    )


DEFAULT_RULES: tuple[PromptRule, ...] = (
    PromptRule("skill_planning_template", skill_planning_rule),
    PromptRule("script_capability", script_capability_rule),
    PromptRule("skill_output", skill_output_rule),
    PromptRule("direct_production", direct_production_rule),
)


def apply_rules(
    ctx: PromptContext, rules: Sequence[PromptRule] = DEFAULT_RULES
) -> list[tuple[str, str]]:
    """Return ``(rule name, block)`` for every rule that fired, in rule order."""
    fired = []
    for rule in rules:
        block = rule.build(ctx)
        if block:
            fired.append((rule.name, block))
    return fired
