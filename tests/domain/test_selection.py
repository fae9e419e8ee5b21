"""Tests for the diversity-aware evidence selector."""

from notebook_rag.domain.models import EvidenceChunk, SourceInfo, SourceKind, SourceStatus
from notebook_rag.domain.services.selection import (
    SelectionState,
    diversity_pass,
    fill_pass,
    select_evidence,
)


def chunk(chunk_id: str, source_id: str, distance: float = 0.1) -> EvidenceChunk:
    return EvidenceChunk(
        chunk_id=chunk_id,
        source_id=source_id,
        source_title=f"{source_id}.pdf",
        content=f"content of {chunk_id}",
        distance=distance,
    )


def ready(source_id: str, kind: SourceKind = SourceKind.DOCUMENT) -> SourceInfo:
    return SourceInfo(id=source_id, title=f"{source_id}.pdf", status=SourceStatus.READY, kind=kind)


def ids(selected) -> list[str]:
    return [s.chunk.chunk_id for s in selected]


class TestSelectionBudget:
    def test_never_exceeds_budget_or_duplicates(self) -> None:
        candidates = [chunk(f"A{i}", "A", 0.01 * i) for i in range(20)]
        candidates += [chunk(f"B{i}", "B", 0.2 + 0.01 * i) for i in range(20)]
        candidates += [candidates[0], candidates[1]]  # duplicate rows

        selected = select_evidence(candidates, [ready("A"), ready("B")], budget=8, cap=4)

        assert len(selected) == 8
        assert len(set(ids(selected))) == 8

    def test_fill_pass_honours_cap(self) -> None:
        candidates = [chunk(f"A{i}", "A") for i in range(10)] + [chunk("B0", "B")]
        selected = select_evidence(candidates, [ready("A"), ready("B")], budget=8, cap=4)

        per_source = [s.chunk.source_id for s in selected]
        assert per_source.count("A") == 4
        assert per_source.count("B") == 1
        assert len(selected) == 5

    def test_zero_cap_still_allows_one_per_source(self) -> None:
        candidates = [chunk("A0", "A"), chunk("A1", "A"), chunk("B0", "B")]
        selected = select_evidence(candidates, [ready("A"), ready("B")], budget=8, cap=0)

        assert ids(selected) == ["A0", "B0"]

    def test_zero_budget_returns_nothing(self) -> None:
        assert select_evidence([chunk("A0", "A")], [ready("A")], budget=0, cap=4) == []

    def test_indices_are_one_based_in_selection_order(self) -> None:
        selected = select_evidence(
            [chunk("A0", "A"), chunk("B0", "B")], [ready("A"), ready("B")], budget=8, cap=4
        )
        assert [s.index for s in selected] == [1, 2]


class TestDiversityFirst:
    def test_distinct_sources_before_second_chunk_of_dominant_source(self) -> None:
        sources = [chr(ord("A") + i) for i in range(10)]
        # A dominates every top position, then the others in order
        candidates = [chunk(f"A{i}", "A", 0.01 * i) for i in range(3)]
        for rank, source in enumerate(sources[1:], 1):
            candidates += [chunk(f"{source}{i}", source, 0.1 * rank + 0.01 * i) for i in range(3)]

        selected = select_evidence(candidates, [ready(s) for s in sources], budget=8, cap=4)

        first_sources = [s.chunk.source_id for s in selected]
        assert len(set(first_sources)) == 8
        assert first_sources.count("A") == 1

    def test_diversity_pass_takes_best_chunk_per_source(self) -> None:
        state = SelectionState(budget=8)
        diversity_pass(state, [chunk("A1", "A"), chunk("B1", "B"), chunk("A2", "A")])
        assert [c.chunk_id for c in state.chunks] == ["A1", "B1"]

    def test_deterministic_for_same_input(self) -> None:
        candidates = [chunk(f"{s}{i}", s) for i in range(3) for s in "ABC"]
        srcs = [ready(s) for s in "ABC"]
        assert ids(select_evidence(candidates, srcs, 8, 4)) == ids(
            select_evidence(candidates, srcs, 8, 4)
        )


class TestFallback:
    def test_probe_fills_missing_ready_source_once(self) -> None:
        calls: list[str] = []

        def probe(source_id: str) -> EvidenceChunk | None:
            calls.append(source_id)
            return chunk(f"{source_id}-probe", source_id, 0.9)

        candidates = [chunk(f"A{i}", "A") for i in range(3)]
        srcs = [ready("A"), ready("Z")]
        selected = select_evidence(candidates, srcs, budget=8, cap=4, probe=probe)

        assert calls == ["Z"]
        assert ids(selected) == ["A0", "Z-probe", "A1", "A2"]

    def test_probe_skipped_when_budget_already_full(self) -> None:
        calls: list[str] = []

        def probe(source_id: str) -> EvidenceChunk | None:
            calls.append(source_id)
            return None

        candidates = [chunk(f"S{i}", f"S{i}") for i in range(8)]
        srcs = [ready(f"S{i}") for i in range(8)] + [ready("Z")]
        selected = select_evidence(candidates, srcs, budget=8, cap=4, probe=probe)

        assert len(selected) == 8
        assert calls == []

    def test_probe_returning_nothing_is_tolerated(self) -> None:
        selected = select_evidence(
            [chunk("A0", "A")], [ready("A"), ready("Z")], budget=8, cap=4, probe=lambda _: None
        )
        assert ids(selected) == ["A0"]


class TestExecutableSourcesExcluded:
    def test_executable_chunks_never_selected(self) -> None:
        candidates = [chunk("X0", "X", 0.0), chunk("A0", "A", 0.1), chunk("X1", "X", 0.2)]
        srcs = [ready("X", SourceKind.EXECUTABLE), ready("A")]

        selected = select_evidence(candidates, srcs, budget=8, cap=4, probe=lambda s: chunk("?", s))

        assert ids(selected) == ["A0"]

    def test_executable_source_is_not_probed(self) -> None:
        probed: list[str] = []

        def probe(source_id: str) -> EvidenceChunk | None:
            probed.append(source_id)
            return None

        srcs = [ready("A"), ready("X", SourceKind.EXECUTABLE)]
        select_evidence([chunk("A0", "A")], srcs, 8, 4, probe)
        assert probed == []


def test_end_to_end_three_sources_returns_all_seven_rows() -> None:
    ranked = ["S1c3", "S1c1", "S2c1", "S3c1", "S1c2", "S2c2", "S1c4", "S1c5"]
    candidates = [chunk(cid, cid[:2], 0.05 * i) for i, cid in enumerate(ranked)]
    srcs = [ready("S1"), ready("S2"), ready("S3")]

    selected = select_evidence(candidates, srcs, budget=8, cap=4, probe=lambda _: None)

    assert ids(selected) == ["S1c3", "S2c1", "S3c1", "S1c1", "S1c2", "S2c2", "S1c4"]


def test_fill_pass_skips_already_selected() -> None:
    state = SelectionState(budget=3)
    a0 = chunk("A0", "A")
    state.add(a0)
    fill_pass(state, [a0, chunk("A1", "A"), chunk("B0", "B")], cap=4)
    assert [c.chunk_id for c in state.chunks] == ["A0", "A1", "B0"]
