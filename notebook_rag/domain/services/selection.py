# notebook_rag/domain/services/selection.py
# Pure domain service: deterministic, no I/O except the injected fallback probe.
"""Diversity-aware context selection.

Three ordered passes share one ``SelectionState``:

1. diversity: best chunk of every source present in the candidate window
2. fallback:  one probed chunk for each ready source missing from the window
3. fill:      remaining candidates by rank, at most ``cap`` per source

Every pass stops as soon as ``budget`` chunks are selected. Executable
sources never contribute quoted evidence.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from notebook_rag.domain.models import EvidenceChunk, SelectedEvidence, SourceInfo

SourceProbe = Callable[[str], EvidenceChunk | None]


@dataclass
class SelectionState:
    budget: int
    chunks: list[EvidenceChunk] = field(default_factory=list)
    chunk_ids: set[str] = field(default_factory=set)
    per_source: dict[str, int] = field(default_factory=dict)

    @property
    def full(self) -> bool:
        return len(self.chunks) >= self.budget

    def add(self, chunk: EvidenceChunk) -> bool:
        if self.full or chunk.chunk_id in self.chunk_ids:
            return False
        self.chunks.append(chunk)
        self.chunk_ids.add(chunk.chunk_id)
        self.per_source[chunk.source_id] = self.per_source.get(chunk.source_id, 0) + 1
        return True


def _allowed(candidates: Iterable[EvidenceChunk], excluded: set[str]) -> list[EvidenceChunk]:
    return [c for c in candidates if c.source_id not in excluded]


def diversity_pass(state: SelectionState, candidates: Sequence[EvidenceChunk]) -> None:
    """Take the best-ranked chunk of each source, in order of first appearance."""
    for chunk in candidates:
        if state.full:
            return
        if chunk.source_id in state.per_source:
            continue
        state.add(chunk)


def fallback_pass(
    state: SelectionState,
    ready_source_ids: Sequence[str],
    probe: SourceProbe | None,
) -> None:
    """Probe one chunk for every ready source the candidate window missed."""
    if probe is None:
        return
    for source_id in ready_source_ids:
        if state.full:
            return
        if source_id in state.per_source:
            continue
        row = probe(source_id)
        if row is None:
            continue
        state.add(row)


def fill_pass(state: SelectionState, candidates: Sequence[EvidenceChunk], cap: int) -> None:
    """Fill remaining slots by global rank while honouring the per-source cap."""
    cap = max(1, cap)
    for chunk in candidates:
        if state.full:
            return
        if chunk.chunk_id in state.chunk_ids:
            continue
        if state.per_source.get(chunk.source_id, 0) >= cap:
            continue
        state.add(chunk)


def select_evidence(
    candidates: Sequence[EvidenceChunk],
    ready_sources: Sequence[SourceInfo],
    budget: int,
    cap: int,
    probe: SourceProbe | None = None,
) -> list[SelectedEvidence]:
    """Reduce ranked candidates to a bounded, source-diverse evidence set.

    Args:
        candidates: Chunks ordered by ascending distance
        ready_sources: Ready sources of the notebook (any kind)
        budget: Maximum number of chunks to return (TOP_K)
        cap: Per-source limit applied by the fill pass
        probe: Targeted top-1 lookup for a single source (fallback pass)

    Returns:
        Selected chunks in selection order with 1-based display indices
    """
    if budget <= 0:
        return []

    excluded = {s.id for s in ready_sources if s.is_executable}
    pool = _allowed(candidates, excluded)
    quotable_ready = [s.id for s in ready_sources if s.is_ready and not s.is_executable]

    state = SelectionState(budget=budget)
    diversity_pass(state, pool)
    if not state.full:
        fallback_pass(state, quotable_ready, _guarded(probe, excluded))
    fill_pass(state, pool, cap)

    return [SelectedEvidence(chunk=c, index=i + 1) for i, c in enumerate(state.chunks)]


def _guarded(probe: SourceProbe | None, excluded: set[str]) -> SourceProbe | None:
    if probe is None:
        return None

    def _probe(source_id: str) -> EvidenceChunk | None:
        row = probe(source_id)
        if row is None or row.source_id in excluded:
            return None
        return row

    return _probe
