from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

from bs4 import BeautifulSoup
from pdfminer.high_level import extract_text as pdf_extract_text
from pdfminer.pdfdocument import PDFDocument
from pdfminer.pdfparser import PDFParser
from trafilatura import extract as trafilatura_extract

from cinematifier.segmenter.paragraphs import clean_extracted_text, reconstruct_paragraphs

from .model import SourceDocument, SourceFormat, title_from_filename

logger = logging.getLogger(__name__)

MIN_DOCUMENT_CHARS = 100


class DocumentError(ValueError):
    """The file yielded too little text to cinematify."""


class DocumentLoader:
    """Reads a book from disk and normalizes it into paragraph-separated text."""

    def __init__(self, min_chars: int = MIN_DOCUMENT_CHARS) -> None:
        self.min_chars = min_chars

    def load(self, path: Path) -> SourceDocument:
        suffix = path.suffix.lower()
        title: Optional[str] = None
        if suffix == ".pdf":
            data = path.read_bytes()
            source_format = SourceFormat.PDF
            text = clean_extracted_text(self._extract_pdf_text(data))
            title = self._extract_pdf_title(data)
        elif suffix in (".html", ".htm"):
            source_format = SourceFormat.HTML
            text = self._extract_html_text(path.read_text(encoding="utf-8", errors="replace"))
        else:
            source_format = SourceFormat.TEXT
            text = path.read_text(encoding="utf-8", errors="replace")

        text = reconstruct_paragraphs(text.replace("\r\n", "\n"))
        if len(text.strip()) < self.min_chars:
            raise DocumentError(
                f"Could not extract enough text from {path.name} (minimum {self.min_chars} characters). "
                "The file may be empty, image-based, or encrypted."
            )
        logger.info("Loaded %s (%s, %d chars)", path.name, source_format.value, len(text))
        return SourceDocument(
            path=path,
            title=title or title_from_filename(path),
            format=source_format,
            text=text,
        )

    def _extract_pdf_text(self, data: bytes) -> str:
        try:
            return pdf_extract_text(io.BytesIO(data)).strip()
        except Exception as exc:  # pragma: no cover - pdfminer raises a wide range of errors
            logger.error("Failed to extract text from PDF: %s", exc)
            return ""

    def _extract_pdf_title(self, data: bytes) -> Optional[str]:
        try:
            document = PDFDocument(PDFParser(io.BytesIO(data)))
            if document.info:
                title = document.info[0].get("Title")
                if isinstance(title, bytes):
                    return title.decode(errors="ignore").strip() or None
                if isinstance(title, str):
                    return title.strip() or None
        except Exception as exc:  # pragma: no cover - metadata extraction best-effort
            logger.warning("Failed to read PDF metadata: %s", exc)
        return None

    def _extract_html_text(self, html: str) -> str:
        extracted = trafilatura_extract(html, include_comments=False, include_tables=False)
        if extracted and len(extracted.split()) >= 50:
            return extracted
        if extracted:
            logger.warning("Trafilatura extraction sparse (%d words); falling back to BeautifulSoup", len(extracted.split()))
        else:
            logger.warning("Trafilatura extraction failed; falling back to BeautifulSoup")
        soup = BeautifulSoup(html, "html.parser")
        paragraphs = [p.get_text(" ", strip=True) for p in soup.find_all("p")]
        return "\n\n".join(paragraph for paragraph in paragraphs if paragraph)
