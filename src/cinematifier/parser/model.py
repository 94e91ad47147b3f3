from __future__ import annotations

import time
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class BlockType(str, Enum):
    ACTION = "action"
    DIALOGUE = "dialogue"
    INNER_THOUGHT = "inner_thought"
    SFX = "sfx"
    BEAT = "beat"
    TRANSITION = "transition"
    TITLE_CARD = "title_card"
    FLASHBACK_START = "flashback_start"
    FLASHBACK_END = "flashback_end"
    MONTAGE_START = "montage_start"
    MONTAGE_END = "montage_end"


class Intensity(str, Enum):
    WHISPER = "whisper"
    NORMAL = "normal"
    EMPHASIS = "emphasis"
    SHOUT = "shout"
    EXPLOSIVE = "explosive"


class Timing(str, Enum):
    SLOW = "slow"
    NORMAL = "normal"
    QUICK = "quick"
    RAPID = "rapid"


class SFXIntensity(str, Enum):
    SOFT = "soft"
    MEDIUM = "medium"
    LOUD = "loud"
    EXPLOSIVE = "explosive"


class SFXDuration(str, Enum):
    BRIEF = "brief"
    SUSTAINED = "sustained"
    LINGERING = "lingering"


class BeatType(str, Enum):
    BEAT = "BEAT"
    PAUSE = "PAUSE"
    LONG_PAUSE = "LONG PAUSE"
    SILENCE = "SILENCE"
    TENSION = "TENSION"
    RELEASE = "RELEASE"

    @classmethod
    def coerce(cls, value: str) -> "BeatType":
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.BEAT


class TransitionType(str, Enum):
    FADE_IN = "FADE IN"
    FADE_OUT = "FADE OUT"
    CUT_TO = "CUT TO"
    DISSOLVE_TO = "DISSOLVE TO"
    SMASH_CUT = "SMASH CUT"
    MATCH_CUT = "MATCH CUT"
    JUMP_CUT = "JUMP CUT"
    WIPE_TO = "WIPE TO"
    IRIS_IN = "IRIS IN"
    IRIS_OUT = "IRIS OUT"

    @classmethod
    def coerce(cls, value: str) -> "TransitionType":
        """Map a raw keyword onto the closed set; FADE TO BLACK reads as a fade out."""
        normalized = " ".join(value.strip().upper().split())
        if normalized == "FADE TO BLACK":
            return cls.FADE_OUT
        try:
            return cls(normalized)
        except ValueError:
            return cls.CUT_TO


class Emotion(str, Enum):
    JOY = "joy"
    FEAR = "fear"
    SADNESS = "sadness"
    SUSPENSE = "suspense"
    ANGER = "anger"
    SURPRISE = "surprise"
    NEUTRAL = "neutral"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SFXAnnotation(CamelModel):
    sound: str
    intensity: SFXIntensity = SFXIntensity.MEDIUM
    duration: Optional[SFXDuration] = None


class CinematicBeat(CamelModel):
    type: BeatType = BeatType.BEAT


class SceneTransition(CamelModel):
    type: TransitionType = TransitionType.CUT_TO
    description: Optional[str] = None


_PAYLOAD_FIELDS = {
    BlockType.SFX: "sfx",
    BlockType.BEAT: "beat",
    BlockType.TRANSITION: "transition",
}


class CinematicBlock(CamelModel):
    """Atomic unit of cinematified output."""

    id: str
    type: BlockType
    content: str = ""
    speaker: Optional[str] = None
    sfx: Optional[SFXAnnotation] = None
    beat: Optional[CinematicBeat] = None
    transition: Optional[SceneTransition] = None
    intensity: Intensity = Intensity.NORMAL
    timing: Optional[Timing] = None
    camera_direction: Optional[str] = None
    emotion: Optional[Emotion] = None
    tension_score: Optional[int] = Field(default=None, description="Narrative tension 0-100")

    @field_validator("tension_score", mode="before")
    @classmethod
    def clamp_tension(cls, value: object) -> Optional[int]:
        if value is None:
            return None
        return max(0, min(100, int(value)))  # type: ignore[arg-type]

    @model_validator(mode="after")
    def check_payloads(self) -> "CinematicBlock":
        expected = _PAYLOAD_FIELDS.get(self.type)
        for block_type, field_name in _PAYLOAD_FIELDS.items():
            populated = getattr(self, field_name) is not None
            if field_name == expected and not populated:
                raise ValueError(f"{block_type.value} block requires a {field_name} payload")
            if field_name != expected and populated:
                raise ValueError(f"{field_name} payload is only allowed on {block_type.value} blocks")
        if self.speaker is not None and self.type is not BlockType.DIALOGUE:
            raise ValueError("speaker is only allowed on dialogue blocks")
        return self

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CharacterAppearance(CamelModel):
    appearances: List[int] = Field(default_factory=list, description="Block indices")
    dialogue_count: int = 0


class NarrativeMetadata(CamelModel):
    genre: Optional[str] = None
    tone_tags: List[str] = Field(default_factory=list)
    characters: Dict[str, CharacterAppearance] = Field(default_factory=dict)


class BlockIdGenerator:
    """Issues ``cine-<epoch>-<n>`` ids.

    The counter wraps at ``wrap_at`` to bound id length in long-lived workers;
    the epoch moves forward on each wrap so earlier ids are never reissued.
    """

    def __init__(self, epoch_ms: int | None = None, wrap_at: int = 1_000_000) -> None:
        self.epoch_ms = epoch_ms if epoch_ms is not None else int(time.time() * 1000)
        self.wrap_at = wrap_at
        self._counter = 0

    def __call__(self) -> str:
        if self._counter >= self.wrap_at:
            self._counter = 0
            self.epoch_ms = max(self.epoch_ms + 1, int(time.time() * 1000))
        block_id = f"cine-{self.epoch_ms}-{self._counter}"
        self._counter += 1
        return block_id

    # Block constructors ------------------------------------------------------

    def action(self, content: str, intensity: Intensity = Intensity.NORMAL) -> CinematicBlock:
        return CinematicBlock(id=self(), type=BlockType.ACTION, content=content, intensity=intensity)

    def beat(self, beat_type: BeatType = BeatType.BEAT) -> CinematicBlock:
        return CinematicBlock(id=self(), type=BlockType.BEAT, beat=CinematicBeat(type=beat_type))

    def transition(
        self,
        transition_type: TransitionType = TransitionType.CUT_TO,
        description: str | None = None,
        content: str | None = None,
    ) -> CinematicBlock:
        return CinematicBlock(
            id=self(),
            type=BlockType.TRANSITION,
            content=content if content is not None else (description or ""),
            transition=SceneTransition(type=transition_type, description=description),
        )

    def sfx(
        self,
        sound: str,
        intensity: SFXIntensity,
        block_intensity: Intensity = Intensity.EMPHASIS,
    ) -> CinematicBlock:
        return CinematicBlock(
            id=self(),
            type=BlockType.SFX,
            content=f"SFX: {sound}",
            intensity=block_intensity,
            sfx=SFXAnnotation(sound=sound, intensity=intensity),
        )
