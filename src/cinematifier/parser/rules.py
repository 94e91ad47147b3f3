"""Line classification rules for cinematified text.

Each rule pairs a predicate (``match``) with a block builder (``build``) so the
priority order lives in one list and every rule can be exercised on its own.
"""

from __future__ import annotations

import abc
import re
from typing import List, Optional, Sequence

from .model import (
    BeatType,
    BlockIdGenerator,
    BlockType,
    CinematicBlock,
    Intensity,
    SFXIntensity,
    Timing,
    TransitionType,
)

SPEECH_VERBS = (
    "said", "says", "whispered", "shouted", "muttered", "replied", "asked",
    "exclaimed", "called", "cried", "growled", "hissed", "barked", "snapped",
    "screamed", "yelled", "murmured", "answered", "demanded", "roared",
    "sobbed", "breathed", "added",
)
_VERBS = "|".join(SPEECH_VERBS)
_NAME = r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?"
SPEAKER_AFTER_VERB = re.compile(rf"\b(?:{_VERBS})\s+(?P<name>{_NAME})")
SPEAKER_BEFORE_VERB = re.compile(rf"(?P<name>{_NAME})\s+(?:{_VERBS})\b")
PRONOUNS = frozenset({"He", "She", "They", "It", "I", "We", "You", "Someone", "Everyone"})

DIALOGUE_LINE = re.compile(r'^"([^"]+)"(.*)$')
INNER_THOUGHT_LINE = re.compile(r"^(?:\*([^*]+)\*|_([^_]+)_)$")
WHISPER_CUES = re.compile(r"whisper|soft|quiet|murmur", re.IGNORECASE)
SHOUT_WORDS = re.compile(r"scream|roar|explod", re.IGNORECASE)
TRAILING_HUSH = re.compile(r"\.{3}|…|[—–-]\s*$")


def infer_speaker(text: str) -> Optional[str]:
    """Find a speaker named in attribution such as ``said Maria`` or ``Maria said``."""
    for pattern in (SPEAKER_AFTER_VERB, SPEAKER_BEFORE_VERB):
        for match in pattern.finditer(text):
            name = match.group("name")
            first = name.split()[0]
            if first in PRONOUNS:
                continue
            return name.upper()
    return None


def guess_sfx_intensity(sound: str) -> SFXIntensity:
    upper = sound.upper()
    if re.search(r"EXPLOSI|DETONA|CANNON|BLAST", upper):
        return SFXIntensity.EXPLOSIVE
    if re.search(r"CRASH|BANG|BOOM|SHATTER|THUNDER|GUNSHOT|ROAR|SLAM|STOMP", upper):
        return SFXIntensity.LOUD
    if re.search(r"SILENCE|WHISPER|SOFT|GENTLE|HUM|DRIP|TICK|CREAK|RUSTL", upper):
        return SFXIntensity.SOFT
    return SFXIntensity.MEDIUM


def timing_for(word_count: int) -> Timing:
    if word_count <= 4:
        return Timing.RAPID
    if word_count <= 8:
        return Timing.QUICK
    if word_count > 30:
        return Timing.SLOW
    return Timing.NORMAL


def sfx_block(ids: BlockIdGenerator, sound: str) -> CinematicBlock:
    intensity = guess_sfx_intensity(sound)
    block_intensity = Intensity.EXPLOSIVE if intensity is SFXIntensity.EXPLOSIVE else Intensity.EMPHASIS
    return ids.sfx(sound, intensity, block_intensity)


class LineRule(abc.ABC):
    name: str = "rule"

    @abc.abstractmethod
    def match(self, line: str) -> Optional[re.Match[str]]:
        raise NotImplementedError

    @abc.abstractmethod
    def build(self, match: re.Match[str], ids: BlockIdGenerator) -> List[CinematicBlock]:
        raise NotImplementedError


class BeatRule(LineRule):
    name = "beat"
    pattern = re.compile(r"^(LONG PAUSE|BEAT|PAUSE|SILENCE|TENSION|RELEASE)\.?\s*$", re.IGNORECASE)

    def match(self, line: str) -> Optional[re.Match[str]]:
        return self.pattern.match(line)

    def build(self, match: re.Match[str], ids: BlockIdGenerator) -> List[CinematicBlock]:
        return [ids.beat(BeatType.coerce(match.group(1)))]


class TransitionRule(LineRule):
    name = "transition"
    pattern = re.compile(
        r"^(CUT TO|FADE IN|FADE OUT|FADE TO BLACK|DISSOLVE TO|SMASH CUT|MATCH CUT|JUMP CUT|WIPE TO|IRIS IN|IRIS OUT)"
        r"(?=$|[\s:.])[:.]?\s*(.*)$"
    )

    def match(self, line: str) -> Optional[re.Match[str]]:
        return self.pattern.match(line)

    def build(self, match: re.Match[str], ids: BlockIdGenerator) -> List[CinematicBlock]:
        description = match.group(2).strip() or None
        return [ids.transition(TransitionType.coerce(match.group(1)), description)]


class StandaloneSfxRule(LineRule):
    name = "sfx"
    pattern = re.compile(r"^SFX:\s*(.+)$", re.IGNORECASE)

    def match(self, line: str) -> Optional[re.Match[str]]:
        return self.pattern.match(line)

    def build(self, match: re.Match[str], ids: BlockIdGenerator) -> List[CinematicBlock]:
        return [sfx_block(ids, match.group(1).strip())]


class CameraDirectionRule(LineRule):
    name = "camera"
    pattern = re.compile(r"^\(([A-Z][A-Z\s'\-]+?)(?::\s*(.+))?\)\s*$")

    def match(self, line: str) -> Optional[re.Match[str]]:
        return self.pattern.match(line)

    def build(self, match: re.Match[str], ids: BlockIdGenerator) -> List[CinematicBlock]:
        return [
            CinematicBlock(
                id=ids(),
                type=BlockType.ACTION,
                content=(match.group(2) or "").strip(),
                camera_direction=" ".join(match.group(1).split()),
            )
        ]


class TextLineRule(LineRule):
    """Fallback rule: dialogue, inner thought, or action narration."""

    name = "text"
    pattern = re.compile(r"^(.+)$", re.DOTALL)

    def match(self, line: str) -> Optional[re.Match[str]]:
        return self.pattern.match(line)

    def build(self, match: re.Match[str], ids: BlockIdGenerator) -> List[CinematicBlock]:
        return self.parse(match.group(1).strip(), ids)

    def parse(self, line: str, ids: BlockIdGenerator) -> List[CinematicBlock]:
        if not line:
            return []
        dialogue = DIALOGUE_LINE.match(line)
        if dialogue:
            return self._dialogue(dialogue.group(1), dialogue.group(2).strip(), ids)

        thought = INNER_THOUGHT_LINE.match(line)
        if thought:
            return [
                CinematicBlock(
                    id=ids(),
                    type=BlockType.INNER_THOUGHT,
                    content=(thought.group(1) or thought.group(2)).strip(),
                    intensity=Intensity.WHISPER,
                )
            ]

        return [
            CinematicBlock(
                id=ids(),
                type=BlockType.ACTION,
                content=line,
                intensity=self._action_intensity(line),
                timing=timing_for(len(line.split())),
            )
        ]

    def _dialogue(self, speech: str, remainder: str, ids: BlockIdGenerator) -> List[CinematicBlock]:
        intensity = Intensity.NORMAL
        if "!" in speech:
            intensity = Intensity.SHOUT
        if WHISPER_CUES.search(remainder):
            intensity = Intensity.WHISPER

        blocks = [
            CinematicBlock(
                id=ids(),
                type=BlockType.DIALOGUE,
                content=speech.strip(),
                speaker=infer_speaker(remainder),
                intensity=intensity,
            )
        ]
        narration = strip_attribution(remainder)
        if len(narration) > 5:
            blocks.append(CinematicBlock(id=ids(), type=BlockType.ACTION, content=narration))
        return blocks

    @staticmethod
    def _action_intensity(line: str) -> Intensity:
        intensity = Intensity.NORMAL
        if "!" in line:
            intensity = Intensity.EMPHASIS
        if TRAILING_HUSH.search(line):
            intensity = Intensity.WHISPER
        if SHOUT_WORDS.search(line):
            intensity = Intensity.SHOUT
        return intensity


class InlineSfxRule(LineRule):
    """Narrative text followed by a trailing ``SFX:`` annotation on the same line."""

    name = "inline_sfx"
    pattern = re.compile(r"^(.+?)\s+SFX:\s*(.+)$", re.IGNORECASE)

    def __init__(self, text_rule: TextLineRule | None = None) -> None:
        self.text_rule = text_rule or TextLineRule()

    def match(self, line: str) -> Optional[re.Match[str]]:
        return self.pattern.match(line)

    def build(self, match: re.Match[str], ids: BlockIdGenerator) -> List[CinematicBlock]:
        blocks = self.text_rule.parse(match.group(1).strip(), ids)
        blocks.append(sfx_block(ids, match.group(2).strip()))
        return blocks


def strip_attribution(remainder: str) -> str:
    """Drop a leading ``said Maria``/``Maria said`` clause, keeping any narration after it."""
    text = remainder.lstrip(" ,.;:\t").rstrip()
    for pattern in (SPEAKER_AFTER_VERB, SPEAKER_BEFORE_VERB):
        match = pattern.match(text)
        if match:
            text = text[match.end():]
            break
    else:
        pronoun = re.match(rf"^(?:he|she|they|i|we|you)\s+(?:{_VERBS})\b", text, re.IGNORECASE)
        if pronoun:
            text = text[pronoun.end():]
    return text.lstrip(" ,.;:\t").rstrip()


def classify(line: str, rules: Sequence[LineRule]) -> tuple[LineRule, re.Match[str]]:
    for rule in rules:
        match = rule.match(line)
        if match:
            return rule, match
    raise LookupError(f"No rule matched line: {line!r}")


_TEXT_RULE = TextLineRule()

DEFAULT_RULES: Sequence[LineRule] = (
    BeatRule(),
    TransitionRule(),
    StandaloneSfxRule(),
    InlineSfxRule(_TEXT_RULE),
    CameraDirectionRule(),
    _TEXT_RULE,
)
