from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from cinematifier.segmenter.model import BookGenre

from .model import BlockType, CharacterAppearance, CinematicBlock, Emotion, NarrativeMetadata

EMOTION_TAG = re.compile(r"\[EMOTION:\s*([^\]]*)\]", re.IGNORECASE)
TENSION_TAG = re.compile(r"\[TENSION:\s*(-?\d+)[^\]]*\]", re.IGNORECASE)
GENRE_TAG = re.compile(r"\[GENRE:\s*([^\]]+)\]", re.IGNORECASE)
TONE_TAG = re.compile(r"\[TONE:\s*([^\]]+)\]", re.IGNORECASE)
SUMMARY_TAG = re.compile(r"\[SUMMARY:\s*([^\]]+)\]", re.IGNORECASE)
DOCUMENT_TAGS = re.compile(r"\[(?:GENRE|TONE|SUMMARY):[^\]]*\]", re.IGNORECASE)


@dataclass(frozen=True)
class TaggedLine:
    cleaned: str
    emotion: Optional[Emotion] = None
    tension_score: Optional[int] = None


def extract_block_metadata(line: str) -> TaggedLine:
    """Strip inline EMOTION/TENSION tags, returning the clean text and the first valid values."""
    emotion: Optional[Emotion] = None
    tension: Optional[int] = None

    for match in EMOTION_TAG.finditer(line):
        if emotion is None:
            try:
                emotion = Emotion(match.group(1).strip().lower())
            except ValueError:
                pass
    for match in TENSION_TAG.finditer(line):
        if tension is None:
            tension = max(0, min(100, int(match.group(1))))

    cleaned = TENSION_TAG.sub("", EMOTION_TAG.sub("", line))
    cleaned = re.sub(r"\s{2,}", " ", cleaned).strip()
    return TaggedLine(cleaned=cleaned, emotion=emotion, tension_score=tension)


def strip_trailing_tags(text: str) -> str:
    """Remove GENRE/TONE/SUMMARY tags, which describe the response rather than the story."""
    return DOCUMENT_TAGS.sub("", text)


def extract_summary(raw_text: str) -> Optional[str]:
    matches = SUMMARY_TAG.findall(raw_text or "")
    if not matches:
        return None
    summary = matches[-1].strip()
    return summary or None


def extract_genre(raw_text: str) -> Optional[str]:
    match = GENRE_TAG.search(raw_text or "")
    if not match:
        return None
    candidate = re.sub(r"\s+", "_", match.group(1).strip().lower()).replace("-", "_")
    try:
        genre = BookGenre(candidate)
    except ValueError:
        return None
    return None if genre is BookGenre.OTHER else genre.value


def extract_tone_tags(raw_text: str) -> list[str]:
    match = TONE_TAG.search(raw_text or "")
    if not match:
        return []
    return [tag.strip().lower() for tag in match.group(1).split(",") if tag.strip()]


def extract_overall_metadata(raw_text: Optional[str], blocks: Iterable[CinematicBlock]) -> NarrativeMetadata:
    metadata = NarrativeMetadata()
    if raw_text:
        metadata.genre = extract_genre(raw_text)
        metadata.tone_tags = extract_tone_tags(raw_text)

    for index, block in enumerate(blocks):
        if block.type is not BlockType.DIALOGUE or not block.speaker:
            continue
        name = block.speaker.upper()
        appearance = metadata.characters.setdefault(name, CharacterAppearance())
        appearance.appearances.append(index)
        appearance.dialogue_count += 1
    return metadata
