from __future__ import annotations

import logging
import re
from typing import Iterable, List

from .sentences import split_sentences

logger = logging.getLogger(__name__)

PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
DIALOGUE_OPENERS = ("\"", "“", "„")
DEFAULT_PARAGRAPH_THRESHOLD = 1200
SENTENCES_PER_PARAGRAPH = 4


def split_paragraphs(text: str) -> List[str]:
    return [part.strip() for part in PARAGRAPH_SPLIT.split(text) if part.strip()]


def normalize_quotes(text: str) -> str:
    return re.sub(r"[‘’‚‛]", "'", re.sub(r"[“”„‟]", '"', text))


def reconstruct_paragraphs(
    text: str,
    *,
    threshold: int = DEFAULT_PARAGRAPH_THRESHOLD,
    sentences_per_paragraph: int = SENTENCES_PER_PARAGRAPH,
) -> str:
    """Re-insert paragraph breaks into text that arrived as one wall of prose."""
    paragraphs = split_paragraphs(text)
    if not paragraphs:
        return text
    average = sum(len(paragraph) for paragraph in paragraphs) / len(paragraphs)
    if average < threshold:
        return text

    logger.debug("Rebuilding paragraphs (average paragraph length %.0f chars)", average)
    flattened = re.sub(r"\s*\n\s*", " ", text.strip())
    sentences = split_sentences(flattened)
    groups = group_sentences(sentences, sentences_per_paragraph=sentences_per_paragraph)
    rebuilt = "\n\n".join(" ".join(group) for group in groups)
    return rebuilt or text


def group_sentences(
    sentences: Iterable[str],
    *,
    sentences_per_paragraph: int = SENTENCES_PER_PARAGRAPH,
) -> List[List[str]]:
    """Group sentences, opening a new group at dialogue or when the current group is full."""
    groups: List[List[str]] = []
    current: List[str] = []
    for sentence in sentences:
        opens_dialogue = sentence.startswith(DIALOGUE_OPENERS)
        if current and (opens_dialogue or len(current) >= sentences_per_paragraph):
            groups.append(current)
            current = []
        current.append(sentence)
    if current:
        groups.append(current)
    return groups


def clean_extracted_text(text: str) -> str:
    """Strip page furniture left behind by PDF extraction."""
    cleaned = re.sub(r"^\s*\d{1,4}\s*$", "", text, flags=re.MULTILINE)
    cleaned = re.sub(r"^\s*page\s+\d+\s*(of\s+\d+)?\s*$", "", cleaned, flags=re.MULTILINE | re.IGNORECASE)
    cleaned = re.sub(r"^\s*-\s*\d+\s*-\s*$", "", cleaned, flags=re.MULTILINE)
    cleaned = re.sub(r"(\w)-\s*\n\s*(\w)", r"\1\2", cleaned)
    cleaned = re.sub(r"\n{4,}", "\n\n\n", cleaned)
    cleaned = re.sub(r"^[ \t]+|[ \t]+$", "", cleaned, flags=re.MULTILINE)
    return cleaned.strip()
