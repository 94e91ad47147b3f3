from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .model import Book, BookGenre, Chapter, ChapterSegment, estimate_read_time

logger = logging.getLogger(__name__)

MIN_SEGMENT_CHARS = 100

_SEPARATOR = r"(?:\s*[:.\-–—]\s*(?P<subtitle>.*))?"
HEADER_PATTERNS: Sequence[re.Pattern[str]] = (
    re.compile(rf"^(?P<kind>chapter|part|book)\s+(?P<number>\d+|[ivxlcdm]+|\w+){_SEPARATOR}$", re.IGNORECASE),
    re.compile(rf"^(?P<kind>prologue|epilogue){_SEPARATOR}$", re.IGNORECASE),
)
DIVIDER_PATTERN = re.compile(r"^(?:\*{3,}|-{3,})\s*$")


@dataclass
class _OpenSegment:
    title: str
    start_line: int
    lines: List[str] = field(default_factory=list)


def match_header(line: str) -> Optional[str]:
    """Return a synthesized title when ``line`` is a chapter/part/book/prologue/epilogue header."""
    stripped = line.strip()
    for pattern in HEADER_PATTERNS:
        match = pattern.match(stripped)
        if not match:
            continue
        kind = match.group("kind").capitalize()
        number = match.groupdict().get("number")
        subtitle = (match.group("subtitle") or "").strip()
        title = f"{kind} {number}" if number else kind
        return f"{title}: {subtitle}" if subtitle else title
    return None


def is_divider(line: str) -> bool:
    return bool(DIVIDER_PATTERN.match(line.strip()))


def segment_chapters(full_text: str, *, min_chars: int = MIN_SEGMENT_CHARS) -> List[ChapterSegment]:
    lines = full_text.split("\n")
    segments: List[ChapterSegment] = []
    current: Optional[_OpenSegment] = None

    def close(segment: Optional[_OpenSegment], end_line: int) -> None:
        if segment is None or not segment.lines:
            return
        content = "\n".join(segment.lines).strip()
        if len(content) > min_chars:
            segments.append(
                ChapterSegment(
                    title=segment.title,
                    content=content,
                    start_line=segment.start_line,
                    end_line=end_line,
                )
            )
        else:
            logger.debug("Dropping short segment %r (%d chars)", segment.title, len(content))

    for index, line in enumerate(lines):
        title = match_header(line)
        divider = title is None and is_divider(line)
        if title is not None or divider:
            close(current, index - 1)
            if divider:
                title = f"Section {len(segments) + 1}"
            current = _OpenSegment(title=title, start_line=index)
            continue
        if current is None:
            current = _OpenSegment(title="Introduction", start_line=0)
        current.lines.append(line)

    close(current, len(lines) - 1)

    if not segments and full_text.strip():
        segments.append(
            ChapterSegment(
                title="Full Text",
                content=full_text.strip(),
                start_line=0,
                end_line=len(lines) - 1,
            )
        )
    logger.info("Segmented text into %d chapter(s)", len(segments))
    return segments


def build_book(
    segments: Sequence[ChapterSegment],
    title: str = "Untitled Novel",
    *,
    author: str | None = None,
    genre: BookGenre = BookGenre.OTHER,
    epoch_ms: int | None = None,
) -> Book:
    epoch = epoch_ms if epoch_ms is not None else int(time.time() * 1000)
    book_id = f"book-{epoch}"
    chapters = []
    for index, segment in enumerate(segments):
        word_count = len(segment.content.split())
        chapters.append(
            Chapter(
                id=f"chapter-{epoch}-{index}",
                book_id=book_id,
                number=index + 1,
                title=segment.title,
                original_text=segment.content,
                word_count=word_count,
                estimated_read_time=estimate_read_time(word_count),
            )
        )
    return Book(id=book_id, title=title, author=author, genre=genre, chapters=chapters)
