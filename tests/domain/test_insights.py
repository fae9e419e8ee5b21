"""Tests for script insight merging and formatting."""

from notebook_rag.domain.models import ScriptInsight
from notebook_rag.domain.services.insights import (
    INSIGHT_CHARS,
    format_insights,
    merge_insights,
    serialize_output,
)


def insight(job_id: str, realtime: bool = True) -> ScriptInsight:
    return ScriptInsight(job_id=job_id, label="calc.py", output={"n": 1}, realtime=realtime)


def test_merge_realtime_first_dedup_and_cap() -> None:
    merged = merge_insights(
        [insight("j1"), insight("j2")],
        [insight("j2", False), insight("j3", False), insight("j4", False)],
    )
    assert [i.job_id for i in merged] == ["j1", "j2", "j3"]
    assert merged[1].realtime


def test_serialize_truncates_and_keeps_unicode() -> None:
    assert serialize_output({"结论": "增长"}) == '{"结论": "增长"}'
    assert len(serialize_output("x" * 10_000)) == INSIGHT_CHARS


def test_format_labels_origin() -> None:
    blocks = format_insights([insight("j1"), insight("j9", realtime=False)])
    assert blocks[0].startswith("[Script insight #1] (calc.py, realtime, job=j1)\n")
    assert blocks[1].startswith("[Script insight #2] (calc.py, historical, job=j9)")
