from __future__ import annotations

from cinematifier.segmenter.chapters import build_book, match_header, segment_chapters
from cinematifier.segmenter.model import BookGenre, estimate_read_time

BODY = "The wind moved through the valley and the old house creaked under its weight. " * 3


def test_match_header_variants():
    assert match_header("Chapter 1") == "Chapter 1"
    assert match_header("CHAPTER XII: The Return") == "Chapter XII: The Return"
    assert match_header("  part two - Ashes  ") == "Part two: Ashes"
    assert match_header("Prologue") == "Prologue"
    assert match_header("Epilogue: Years Later") == "Epilogue: Years Later"
    assert match_header("The chapter ended quietly.") is None


def test_segments_on_headers_and_dividers():
    text = "\n".join(
        [
            "Chapter 1: Arrival",
            BODY,
            "Chapter 2: Departure",
            BODY,
            "***",
            BODY,
        ]
    )
    segments = segment_chapters(text)
    assert [segment.title for segment in segments] == [
        "Chapter 1: Arrival",
        "Chapter 2: Departure",
        "Section 3",
    ]
    assert segments[0].start_line == 0
    assert segments[0].end_line == 1
    assert segments[1].start_line == 2
    assert all(segment.content == BODY.strip() for segment in segments)


def test_leading_text_becomes_introduction():
    segments = segment_chapters(BODY + "\nChapter 1\n" + BODY)
    assert [segment.title for segment in segments] == ["Introduction", "Chapter 1"]


def test_short_segments_are_dropped():
    segments = segment_chapters("Chapter 1\nToo short.\nChapter 2\n" + BODY)
    assert [segment.title for segment in segments] == ["Chapter 2"]


def test_text_without_headers_is_one_full_text_segment():
    segments = segment_chapters("Just a little text.")
    assert len(segments) == 1
    assert segments[0].title == "Full Text"
    assert segments[0].content == "Just a little text."
    assert segment_chapters("   ") == []


def test_build_book_numbers_chapters():
    segments = segment_chapters("Chapter 1\n" + BODY + "\nChapter 2\n" + BODY)
    book = build_book(segments, "Storm House", author="A. Writer", genre=BookGenre.HORROR, epoch_ms=42)
    assert book.id == "book-42"
    assert [chapter.number for chapter in book.chapters] == [1, 2]
    assert book.chapters[1].id == "chapter-42-1"
    assert book.chapters[0].book_id == "book-42"
    assert book.total_word_count == 2 * len(BODY.split())


def test_estimate_read_time_rounds_up():
    assert estimate_read_time(0) == 0
    assert estimate_read_time(1) == 1
    assert estimate_read_time(201) == 2
