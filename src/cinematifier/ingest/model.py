from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel


class SourceFormat(str, Enum):
    TEXT = "text"
    PDF = "pdf"
    HTML = "html"


class SourceDocument(BaseModel):
    path: Path
    title: str
    format: SourceFormat
    text: str
    author: Optional[str] = None

    @property
    def word_count(self) -> int:
        return len(self.text.split())


def title_from_filename(path: Path) -> str:
    stem = re.sub(r"\.(pdf|epub|docx|pptx|txt|md|html?)$", "", path.name, flags=re.IGNORECASE)
    return re.sub(r"[_\-]+", " ", stem).strip() or "Untitled Novel"
