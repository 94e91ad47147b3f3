from __future__ import annotations

import math
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from cinematifier.parser.model import CamelModel

READING_WPM = 200


class BookGenre(str, Enum):
    FANTASY = "fantasy"
    ROMANCE = "romance"
    THRILLER = "thriller"
    SCI_FI = "sci_fi"
    MYSTERY = "mystery"
    HISTORICAL = "historical"
    LITERARY_FICTION = "literary_fiction"
    HORROR = "horror"
    ADVENTURE = "adventure"
    OTHER = "other"


class ChapterSegment(BaseModel):
    """A chapter-sized slice of a book, bounded by line indices of the source text."""

    title: str
    content: str
    start_line: int
    end_line: int


class Chapter(CamelModel):
    id: str
    book_id: str
    number: int
    title: str
    original_text: str
    status: str = Field(default="pending", description="pending, processing, ready or error")
    word_count: int
    estimated_read_time: int = Field(description="Minutes at the default reading speed")


class Book(CamelModel):
    id: str
    title: str
    author: Optional[str] = None
    genre: BookGenre = BookGenre.OTHER
    chapters: List[Chapter]

    @property
    def total_word_count(self) -> int:
        return sum(chapter.word_count for chapter in self.chapters)


def estimate_read_time(word_count: int, wpm: int = READING_WPM) -> int:
    return math.ceil(word_count / wpm) if word_count else 0
