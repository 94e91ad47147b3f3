from __future__ import annotations

import pytest

from cinematifier.chunker.planner import ChunkPlanner


def _paragraphs(count: int, size: int) -> str:
    return "\n\n".join(("p%d " % index).ljust(size, "x") for index in range(count))


def test_packs_paragraphs_up_to_budget():
    plan = ChunkPlanner(max_chars=250).plan(_paragraphs(5, 100))
    assert [chunk.paragraph_count for chunk in plan.chunks] == [2, 2, 1]
    assert all(chunk.char_count <= 250 for chunk in plan.chunks)
    assert [chunk.index for chunk in plan.chunks] == [0, 1, 2]
    assert len(plan) == 3


def test_oversized_paragraph_is_kept_whole():
    text = "short one\n\n" + "y" * 500 + "\n\nshort two"
    plan = ChunkPlanner(max_chars=100).plan(text)
    assert plan.texts == ["short one", "y" * 500, "short two"]


def test_chunks_reassemble_to_paragraphs():
    text = _paragraphs(7, 80)
    plan = ChunkPlanner(max_chars=200).plan(text)
    assert "\n\n".join(plan.texts) == text


def test_empty_text_has_no_chunks():
    assert ChunkPlanner().plan("  \n\n ").chunks == []


def test_rejects_non_positive_budget():
    with pytest.raises(ValueError):
        ChunkPlanner(max_chars=0)
