# notebook_rag/domain/services/skills.py
# Pure domain service: guided-workflow ("skill package") interaction protocol.
"""Skill interaction state machine.

INACTIVE -> AWAITING_INPUT_MODE -> (AWAITING_LINK | AWAITING_MANUAL_INPUT) -> READY_TO_ANSWER

The phase is derived from ``SkillState.selections``; ``advance`` is the only
transition function and never performs I/O. A ``SkillTurn`` with
``reply_text`` set ends the turn without retrieval or a model call.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

from notebook_rag.domain.models import ChoiceOption, InteractionPrompt, SkillState, SourceInfo

INPUT_MODE = "input_mode"
MODE_AUTO = "auto"
MODE_MANUAL = "manual"
INPUT_READY = "input_ready"
LINK = "link"
DOWNGRADED = "downgraded"

MIN_DETAIL_CHARS = 180

DEFAULT_PLANNING_PATTERN = (
    r"(计划|规划|策划|方案|脚本|文案|创作|选题|帮我写|写一[篇个条]|生成|"
    r"\bplan\b|\bdraft\b|\bscript\b|\bcreate\b|\bwrite\b)"
)

_CANCEL = re.compile(r"^\s*(取消|退出|cancel|exit skill)\s*$", re.IGNORECASE)
_AUTO_WORDS = {"1", "auto", "automatic", "自动", "自动提取"}
_MANUAL_WORDS = {"2", "manual", "手动", "手动输入"}


class SkillPhase(str, Enum):
    INACTIVE = "INACTIVE"
    AWAITING_INPUT_MODE = "AWAITING_INPUT_MODE"
    AWAITING_LINK = "AWAITING_LINK"
    AWAITING_MANUAL_INPUT = "AWAITING_MANUAL_INPUT"
    READY_TO_ANSWER = "READY_TO_ANSWER"


@dataclass(frozen=True)
class SkillDefinition:
    """A recognized guided workflow."""

    name: str
    display_name: str
    identity_pattern: re.Pattern[str]
    link_pattern: re.Pattern[str]
    detail_pattern: re.Pattern[str]
    direct_production_pattern: re.Pattern[str]
    output_sections: tuple[str, ...]
    manual_template: str

    def matches(self, source: SourceInfo) -> bool:
        return bool(self.identity_pattern.search(source.title))


VIRAL_CONTENT = SkillDefinition(
    name="viral-content",
    display_name="爆款内容创作",
    identity_pattern=re.compile(r"(viral[-_ ]?(content|copy|skill)|爆款)", re.IGNORECASE),
    link_pattern=re.compile(
        r"https?://(?:[\w-]+\.)*(?:douyin\.com|xiaohongshu\.com|xhslink\.com|bilibili\.com"
        r"|b23\.tv|youtube\.com|youtu\.be|weixin\.qq\.com)/[^\s，。）)]+",
        re.IGNORECASE,
    ),
    detail_pattern=re.compile(
        r"(目标受众|受众|卖点|平台|风格|时长|人设|audience|platform|tone|selling point)",
        re.IGNORECASE,
    ),
    direct_production_pattern=re.compile(
        r"(直接(写|出|生成)|一次性|完整(稿|文案|脚本)|开始创作|just write|write it now|full draft)",
        re.IGNORECASE,
    ),
    output_sections=(
        "## 一、爆款拆解",
        "## 二、选题与角度",
        "## 三、完整文案",
        "## 四、发布与复盘建议",
    ),
    manual_template=(
        "请按以下模板补充信息（至少 180 字，或写明受众/平台/卖点）：\n"
        "1. 内容主题：\n"
        "2. 目标受众：\n"
        "3. 发布平台：\n"
        "4. 核心卖点：\n"
        "5. 风格与时长：\n"
        "6. 参考素材（可粘贴原文）："
    ),
)

DEFAULT_SKILLS: tuple[SkillDefinition, ...] = (VIRAL_CONTENT,)


@dataclass(frozen=True)
class SkillTurn:
    """Outcome of one ``advance`` call."""

    state: SkillState
    changed: bool
    reply_text: str | None = None
    prompt: InteractionPrompt | None = None

    @property
    def short_circuit(self) -> bool:
        return self.reply_text is not None

    @property
    def ready(self) -> bool:
        return phase_of(self.state) is SkillPhase.READY_TO_ANSWER


def phase_of(state: SkillState) -> SkillPhase:
    if not state.active:
        return SkillPhase.INACTIVE
    mode = state.selections.get(INPUT_MODE)
    if not mode:
        return SkillPhase.AWAITING_INPUT_MODE
    if state.selections.get(INPUT_READY) == "1":
        return SkillPhase.READY_TO_ANSWER
    if mode == MODE_AUTO:
        return SkillPhase.AWAITING_LINK
    return SkillPhase.AWAITING_MANUAL_INPUT


def detect_skill(
    sources: Sequence[SourceInfo],
    registry: Sequence[SkillDefinition] = DEFAULT_SKILLS,
) -> SkillDefinition | None:
    """First registered skill whose identity matches a ready source."""
    ready = [s for s in sources if s.is_ready]
    for definition in registry:
        if any(definition.matches(s) for s in ready):
            return definition
    return None


def find_skill(
    name: str | None, registry: Sequence[SkillDefinition] = DEFAULT_SKILLS
) -> SkillDefinition | None:
    for definition in registry:
        if definition.name == name:
            return definition
    return None


def parse_mode_reply(reply: Mapping[str, str] | None, message: str) -> str | None:
    """Structured reply first, then the accepted plain-text forms."""
    if reply and reply.get("key") == INPUT_MODE:
        value = (reply.get("value") or "").strip().lower()
        if value in (MODE_AUTO, MODE_MANUAL):
            return value
    text = (message or "").strip().lower()
    if text in _AUTO_WORDS:
        return MODE_AUTO
    if text in _MANUAL_WORDS:
        return MODE_MANUAL
    return None


def is_detailed(definition: SkillDefinition, message: str) -> bool:
    text = (message or "").strip()
    return len(text) >= MIN_DETAIL_CHARS or bool(definition.detail_pattern.search(text))


def extract_link(definition: SkillDefinition, message: str) -> str | None:
    m = definition.link_pattern.search(message or "")
    return m.group(0) if m else None


def mode_choice(definition: SkillDefinition) -> InteractionPrompt:
    return InteractionPrompt(
        kind="choice",
        key=INPUT_MODE,
        title=f"【{definition.display_name}】请选择素材输入方式",
        options=(
            ChoiceOption(MODE_AUTO, "自动提取", "粘贴视频/笔记链接，自动提取素材"),
            ChoiceOption(MODE_MANUAL, "手动输入", "按模板填写主题、受众、平台等信息"),
        ),
        skill_name=definition.name,
    )


def link_request(definition: SkillDefinition) -> InteractionPrompt:
    return InteractionPrompt(
        kind="template",
        key=LINK,
        title="请粘贴要拆解的内容链接（抖音/小红书/B站/YouTube/公众号）",
        template="链接：",
        skill_name=definition.name,
    )


def manual_request(definition: SkillDefinition, title: str | None = None) -> InteractionPrompt:
    return InteractionPrompt(
        kind="template",
        key="manual_input",
        title=title or "请补充创作所需信息",
        template=definition.manual_template,
        skill_name=definition.name,
    )


def _prompt_turn(state: SkillState, prompt: InteractionPrompt, changed: bool) -> SkillTurn:
    text = prompt.title
    if prompt.options:
        text += "\n" + "\n".join(
            f"{i + 1}. {o.label}：{o.description}" for i, o in enumerate(prompt.options)
        )
    if prompt.template:
        text += "\n\n" + prompt.template
    return SkillTurn(state=state, changed=changed, reply_text=text, prompt=prompt)


def advance(
    definition: SkillDefinition,
    state: SkillState,
    message: str,
    reply: Mapping[str, str] | None = None,
    extractor_available: bool = False,
    planning_pattern: re.Pattern[str] | None = None,
) -> SkillTurn:
    """Apply one inbound message to the skill state."""
    phase = phase_of(state)
    pattern = planning_pattern or re.compile(DEFAULT_PLANNING_PATTERN, re.IGNORECASE)

    if phase is SkillPhase.INACTIVE:
        if not (pattern.search(message or "") or reply):
            return SkillTurn(state=state, changed=False)
        started = SkillState(
            active=True, skill_name=definition.name, selections={}, version=state.version
        )
        return _prompt_turn(started, mode_choice(definition), changed=True)

    if _CANCEL.match(message or ""):
        ended = SkillState(
            active=False, skill_name=state.skill_name, selections={}, version=state.version
        )
        return SkillTurn(
            state=ended, changed=True, reply_text=f"已退出【{definition.display_name}】流程。"
        )

    if phase is SkillPhase.AWAITING_INPUT_MODE:
        mode = parse_mode_reply(reply, message)
        if mode is None:
            return _prompt_turn(state, mode_choice(definition), changed=False)
        # The reply may carry the link or the filled template along with the mode.
        chosen = state.with_selection(INPUT_MODE, mode)
        if mode == MODE_AUTO:
            return _take_link(definition, chosen, message, extractor_available, changed=True)
        return _take_manual_input(definition, chosen, message, changed=True)

    if phase is SkillPhase.AWAITING_LINK:
        return _take_link(definition, state, message, extractor_available)

    if phase is SkillPhase.AWAITING_MANUAL_INPUT:
        return _take_manual_input(definition, state, message)

    return SkillTurn(state=state, changed=False)


def _take_link(
    definition: SkillDefinition,
    state: SkillState,
    message: str,
    extractor_available: bool,
    changed: bool = False,
) -> SkillTurn:
    link = extract_link(definition, message)
    if link is None:
        return _prompt_turn(state, link_request(definition), changed=changed)
    with_link = state.with_selection(LINK, link)
    if not extractor_available:
        downgraded = with_link.with_selection(INPUT_MODE, MODE_MANUAL).with_selection(
            DOWNGRADED, "no_extractor"
        )
        title = "当前环境没有可运行的链接提取能力，已切换为手动输入。请补充创作所需信息"
        return _prompt_turn(downgraded, manual_request(definition, title), changed=True)
    return SkillTurn(state=with_link.with_selection(INPUT_READY, "1"), changed=True)


def _take_manual_input(
    definition: SkillDefinition, state: SkillState, message: str, changed: bool = False
) -> SkillTurn:
    if not is_detailed(definition, message):
        return _prompt_turn(state, manual_request(definition), changed=changed)
    return SkillTurn(state=state.with_selection(INPUT_READY, "1"), changed=True)


def complete(state: SkillState) -> SkillState:
    """Workflow finished: keep the selections for reference, deactivate."""
    return SkillState(
        active=False,
        skill_name=state.skill_name,
        selections=dict(state.selections),
        version=state.version,
    )
