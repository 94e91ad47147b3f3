from __future__ import annotations

from pathlib import Path

import pytest

from cinematifier.ingest.model import SourceFormat, title_from_filename
from cinematifier.ingest.service import DocumentError, DocumentLoader

PROSE = (
    "The lighthouse keeper counted the ships every evening. "
    "Tonight there was one fewer than there should have been.\n\n"
    '"Do you see it?" asked Mara. The keeper shook his head and lit the lamp.'
)


def test_loads_plain_text(tmp_path: Path):
    path = tmp_path / "the_storm-house.txt"
    path.write_text(PROSE.replace("\n", "\r\n"), encoding="utf-8")

    document = DocumentLoader().load(path)

    assert document.format is SourceFormat.TEXT
    assert document.title == "the storm house"
    assert "\r" not in document.text
    assert document.text.count("\n\n") == 1
    assert document.word_count == len(PROSE.split())


def test_short_documents_are_rejected(tmp_path: Path):
    path = tmp_path / "note.md"
    path.write_text("Too short to adapt.", encoding="utf-8")
    with pytest.raises(DocumentError, match="note.md"):
        DocumentLoader().load(path)


def test_html_paragraphs_are_extracted(tmp_path: Path):
    path = tmp_path / "chapter.html"
    paragraphs = "".join(f"<p>{line}</p>" for line in PROSE.split("\n\n"))
    path.write_text(f"<html><body><article>{paragraphs}</article></body></html>", encoding="utf-8")

    document = DocumentLoader().load(path)

    assert document.format is SourceFormat.HTML
    assert "lighthouse keeper" in document.text
    assert "<p>" not in document.text


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        DocumentLoader().load(tmp_path / "absent.txt")


def test_title_from_filename():
    assert title_from_filename(Path("My_Novel.PDF")) == "My Novel"
    assert title_from_filename(Path("___.txt")) == "Untitled Novel"
