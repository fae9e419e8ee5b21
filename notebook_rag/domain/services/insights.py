# notebook_rag/domain/services/insights.py
from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import Any

from notebook_rag.domain.models import ScriptInsight

MAX_INSIGHTS = 3
INSIGHT_CHARS = 4000


def merge_insights(
    realtime: Sequence[ScriptInsight],
    historical: Iterable[ScriptInsight],
    limit: int = MAX_INSIGHTS,
) -> list[ScriptInsight]:
    """Realtime first, then historical ones not already present (by job id)."""
    merged: list[ScriptInsight] = []
    seen: set[str] = set()
    for insight in [*realtime, *historical]:
        if len(merged) >= limit:
            break
        if insight.job_id in seen:
            continue
        seen.add(insight.job_id)
        merged.append(insight)
    return merged


def serialize_output(output: Any, limit: int = INSIGHT_CHARS) -> str:
    try:
        text = json.dumps(output, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        text = json.dumps(str(output), ensure_ascii=False)
    return text[:limit]


def format_insights(insights: Sequence[ScriptInsight]) -> list[str]:
    blocks = []
    for i, insight in enumerate(insights, 1):
        origin = "realtime" if insight.realtime else "historical"
        label = insight.label or "script"
        header = f"[Script insight #{i}] ({label}, {origin}, job={insight.job_id})"
        blocks.append(f"{header}\n{serialize_output(insight.output)}")
    return blocks
