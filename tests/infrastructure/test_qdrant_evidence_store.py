"""Contract tests for QdrantEvidenceStore with a fake client and fake models module."""

from types import SimpleNamespace

import pytest

from notebook_rag.domain.errors import VectorStoreError
from notebook_rag.infrastructure.vectorstore import qdrant_evidence_store as mod
from notebook_rag.infrastructure.vectorstore.qdrant_evidence_store import (
    QdrantConfig,
    QdrantEvidenceStore,
    point_to_chunk,
)


def _record(kind):
    def build(**kwargs):
        return (kind, kwargs)

    return build


FAKE_MODELS = SimpleNamespace(
    FieldCondition=_record("field"),
    MatchValue=_record("value"),
    MatchAny=_record("any"),
    Filter=_record("filter"),
)


@pytest.fixture(autouse=True)
def fake_models(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(mod, "import_module", lambda name: FAKE_MODELS)


def point(pid, score, source_id="s1", **payload):
    return SimpleNamespace(
        id=pid,
        score=score,
        payload={"source_id": source_id, "source_title": f"{source_id}.pdf", **payload},
    )


class FakeQdrantClient:
    def __init__(self, points=None, exc: Exception | None = None) -> None:
        self.points = points or []
        self.exc = exc
        self.calls: list[dict] = []

    def query_points(self, **kwargs):
        self.calls.append(kwargs)
        if self.exc:
            raise self.exc
        return SimpleNamespace(points=self.points[: kwargs["limit"]])


def store(client: FakeQdrantClient) -> QdrantEvidenceStore:
    return QdrantEvidenceStore(QdrantConfig(url="http://qdrant:6333"), client=client)


def test_point_mapping_converts_score_to_distance() -> None:
    chunk = point_to_chunk(
        point("p1", 0.75, chunk_id="c1", content="body", page_start="3", page_end=None)
    )
    assert chunk.chunk_id == "c1"
    assert chunk.distance == pytest.approx(0.25)
    assert chunk.page_start == 3
    assert chunk.page_end is None
    assert chunk.source_title == "s1.pdf"


def test_search_filters_by_notebook_and_sources() -> None:
    client = FakeQdrantClient([point("p1", 0.5), point("p2", 0.9, "s2")])
    rows = store(client).search("nb1", (0.1, 0.2), 240, ["s1", "s2"])

    assert [r.chunk_id for r in rows] == ["p2", "p1"]
    call = client.calls[0]
    assert call["collection_name"] == "notebook_chunks"
    assert call["limit"] == 240
    assert call["query"] == [0.1, 0.2]
    _, flt = call["query_filter"]
    notebook_cond, source_cond = flt["must"]
    assert notebook_cond[1]["match"] == ("value", {"value": "nb1"})
    assert source_cond[1]["match"] == ("any", {"any": ["s1", "s2"]})


def test_search_without_sources_skips_backend() -> None:
    client = FakeQdrantClient([point("p1", 0.5)])
    assert store(client).search("nb1", (0.1,), 10, []) == []
    assert client.calls == []


def test_search_source_is_top_one_with_exact_match() -> None:
    client = FakeQdrantClient([point("p9", 0.4, "s9")])
    hit = store(client).search_source("nb1", "s9", (0.1,))

    assert hit.chunk_id == "p9"
    assert client.calls[0]["limit"] == 1
    _, flt = client.calls[0]["query_filter"]
    assert flt["must"][1][1]["match"] == ("value", {"value": "s9"})


def test_backend_errors_are_translated() -> None:
    with pytest.raises(VectorStoreError):
        store(FakeQdrantClient(exc=TimeoutError("timed out"))).search("nb1", (0.1,), 5, ["s1"])
