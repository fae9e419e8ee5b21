# notebook_rag/domain/services/citations.py
# Pure domain service: maps inline [n] markers back to selected evidence.
from __future__ import annotations

import re
from collections.abc import Sequence

from notebook_rag.domain.models import Citation, SelectedEvidence

SNIPPET_CHARS = 200
_MARKER = re.compile(r"\[(\d{1,3})\]")


def extract_markers(answer: str, evidence_count: int) -> list[int]:
    """Return referenced positions (1-based), deduplicated, first occurrence first.

    Markers outside ``1..evidence_count`` are ignored.
    """
    seen: list[int] = []
    for m in _MARKER.finditer(answer or ""):
        n = int(m.group(1))
        if 1 <= n <= evidence_count and n not in seen:
            seen.append(n)
    return seen


def make_snippet(content: str, limit: int = SNIPPET_CHARS) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + "…"


def _citation(item: SelectedEvidence, ref_number: int) -> Citation:
    c = item.chunk
    return Citation(
        source_id=c.source_id,
        source_title=c.source_title,
        page_start=c.page_start,
        page_end=c.page_end,
        snippet=make_snippet(c.content),
        full_content=c.content,
        ref_number=ref_number,
        score=c.score,
        distance=c.distance,
    )


def build_citations(answer: str, evidence: Sequence[SelectedEvidence]) -> list[Citation]:
    """Cite the referenced rows, or every row when the answer has no markers."""
    markers = extract_markers(answer, len(evidence))
    if markers:
        return [_citation(evidence[n - 1], n) for n in markers]
    return [_citation(item, i + 1) for i, item in enumerate(evidence)]


def storage_citations(citations: Sequence[Citation]) -> list[dict[str, object]]:
    """Storage-facing records: no full fragment text, to bound row size."""
    return [c.to_dict(include_full_content=False) for c in citations]
