"""Deterministic cinematification used when no model is available.

The engine works paragraph by paragraph. Paragraphs that look like scene
breaks or chapter headers become transitions and title cards; everything else
is split into sentence units (a new unit starts at each line of dialogue) and
each unit becomes dialogue/action blocks plus at most one sound effect and an
optional dramatic beat.
"""

from __future__ import annotations

import logging
import re
from typing import List, NamedTuple, Optional, Sequence

from cinematifier.parser.model import (
    BlockIdGenerator,
    BlockType,
    CinematicBlock,
    Intensity,
    SFXIntensity,
    TransitionType,
)
from cinematifier.parser.rules import infer_speaker, strip_attribution
from cinematifier.segmenter.chapters import match_header
from cinematifier.segmenter.paragraphs import group_sentences, normalize_quotes, split_paragraphs
from cinematifier.segmenter.sentences import split_sentences

logger = logging.getLogger(__name__)

SCENE_BREAK_PATTERNS = (
    re.compile(r"^(later|meanwhile|the next|hours later|days later|suddenly|elsewhere)\b", re.IGNORECASE),
    re.compile(r"^\*{3,}"),
    re.compile(r"^---+"),
)
QUOTED_SPAN = re.compile(r'"([^"]+)"')
SHOUT_CUES = re.compile(r"shout|scream|yell", re.IGNORECASE)
WHISPER_CUES = re.compile(r"whisper|murmur|softly", re.IGNORECASE)
BEAT_CUES = re.compile(r"\.\.\.|…|—$|sudden|shock|realiz|gasp", re.IGNORECASE)
MIN_NARRATION_CHARS = 20

_SUFFIXES = r"(?:e|es|s|d|ed|ing|ion|ions|ous|y)?"
# Suffixes that replace a trailing "e": stride -> striding, pulse -> pulsing.
_E_DROP_SUFFIXES = r"(?:ing|ed|ous|y)"


class SoundCue(NamedTuple):
    sound: str
    intensity: SFXIntensity
    stems: Sequence[str]


# Priority order: when a unit triggers several cues the earliest entry wins.
SOUND_CUES: Sequence[SoundCue] = (
    SoundCue("EXPLOSION", SFXIntensity.EXPLOSIVE, ("explod", "explosion", "blast", "detonat")),
    SoundCue("THUNDER", SFXIntensity.LOUD, ("thunder", "lightning")),
    SoundCue("CRASH", SFXIntensity.LOUD, ("crash", "shatter", "smash")),
    SoundCue("GUNSHOT", SFXIntensity.LOUD, ("gunshot", "shot", "fire", "firing", "gunfire")),
    SoundCue("DOOR", SFXIntensity.MEDIUM, ("knock", "door", "creak")),
    SoundCue("WHISPER", SFXIntensity.SOFT, ("whisper", "murmur", "hush")),
    SoundCue("SCREAM", SFXIntensity.LOUD, ("scream", "shout", "yell")),
    SoundCue("FOOTSTEPS", SFXIntensity.MEDIUM, ("footstep", "stride", "strode", "stomp")),
    SoundCue("WIND HOWLING", SFXIntensity.MEDIUM, ("rain", "storm", "wind")),
    SoundCue("HEARTBEAT", SFXIntensity.SOFT, ("heartbeat", "heart", "pulse", "beat")),
)


def _stem_pattern(stem: str) -> str:
    pattern = stem + _SUFFIXES
    if stem.endswith("e"):
        pattern += "|" + stem[:-1] + _E_DROP_SUFFIXES
    return pattern


SOUND_TRIGGER = re.compile(
    "|".join(
        rf"(?P<cue{index}>\b(?:{'|'.join(_stem_pattern(stem) for stem in cue.stems)})\b)"
        for index, cue in enumerate(SOUND_CUES)
    ),
    re.IGNORECASE,
)


def detect_sound(text: str) -> Optional[SoundCue]:
    """Return the highest-priority sound cue triggered anywhere in ``text``."""
    best: Optional[int] = None
    for match in SOUND_TRIGGER.finditer(text):
        index = int(match.lastgroup[3:])  # type: ignore[index]
        if best is None or index < best:
            best = index
            if best == 0:
                break
    return SOUND_CUES[best] if best is not None else None


def is_scene_break(paragraph: str) -> bool:
    return any(pattern.search(paragraph) for pattern in SCENE_BREAK_PATTERNS)


class OfflineFallbackEngine:
    def __init__(self, ids: BlockIdGenerator) -> None:
        self.ids = ids

    def generate(self, text: str) -> List[CinematicBlock]:
        blocks: List[CinematicBlock] = []
        for paragraph in split_paragraphs(normalize_quotes(text or "")):
            blocks.extend(self._paragraph(paragraph))
        logger.debug("Offline engine produced %d block(s)", len(blocks))
        return blocks

    def _paragraph(self, paragraph: str) -> List[CinematicBlock]:
        if is_scene_break(paragraph):
            return [
                self.ids.transition(TransitionType.CUT_TO, content=paragraph),
                self.ids.beat(),
            ]

        title = match_header(paragraph) if "\n" not in paragraph else None
        if title is not None:
            return [
                CinematicBlock(
                    id=self.ids(),
                    type=BlockType.TITLE_CARD,
                    content=paragraph.upper(),
                    intensity=Intensity.EMPHASIS,
                ),
                self.ids.transition(TransitionType.FADE_IN, content=""),
            ]

        flattened = " ".join(paragraph.split())
        blocks: List[CinematicBlock] = []
        for group in group_sentences(split_sentences(flattened)):
            blocks.extend(self._unit(" ".join(group)))
        return blocks

    def _unit(self, unit: str) -> List[CinematicBlock]:
        blocks: List[CinematicBlock] = []
        quotes = QUOTED_SPAN.findall(unit)
        if quotes:
            speaker = infer_speaker(unit)
            for speech in quotes:
                blocks.append(
                    CinematicBlock(
                        id=self.ids(),
                        type=BlockType.DIALOGUE,
                        content=speech.strip(),
                        speaker=speaker,
                        intensity=self._dialogue_intensity(speech, unit),
                    )
                )
            narration = strip_attribution(QUOTED_SPAN.sub("", unit).strip())
            if len(narration) > MIN_NARRATION_CHARS:
                blocks.append(self.ids.action(narration))
        else:
            intensity = Intensity.NORMAL
            if "!" in unit:
                intensity = Intensity.EMPHASIS
            if "..." in unit or "…" in unit:
                intensity = Intensity.WHISPER
            blocks.append(self.ids.action(unit, intensity))

        cue = detect_sound(unit)
        if cue is not None:
            block_intensity = Intensity.EXPLOSIVE if cue.intensity is SFXIntensity.EXPLOSIVE else Intensity.EMPHASIS
            blocks.append(self.ids.sfx(cue.sound, cue.intensity, block_intensity))

        if BEAT_CUES.search(unit):
            blocks.append(self.ids.beat())
        return blocks

    @staticmethod
    def _dialogue_intensity(speech: str, unit: str) -> Intensity:
        if "!" in speech or SHOUT_CUES.search(unit):
            return Intensity.SHOUT
        if WHISPER_CUES.search(unit):
            return Intensity.WHISPER
        return Intensity.NORMAL
