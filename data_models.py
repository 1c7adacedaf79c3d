"""
Data models for the Episode Studio.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class EpisodeStatus(Enum):
    """Lifecycle of an episode"""
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


class SegmentType(Enum):
    OPENING = "opening"
    CONTINUATION = "continuation"


@dataclass(frozen=True)
class Character:
    """The protagonist supplied by the caller"""
    name: str
    gender: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "gender": self.gender, "description": self.description}


@dataclass
class StoryContext:
    """Input to segment generation"""
    setting: str
    character: Optional[Character]
    themes: List[str] = field(default_factory=list)
    variation_seed: Optional[int] = None


@dataclass
class Choice:
    """A player choice shown after a segment"""
    text: str
    genre: str

    @classmethod
    def from_raw(cls, value: Any) -> Optional["Choice"]:
        """Build a choice from model output, tolerating bare strings"""
        if isinstance(value, dict):
            return cls(text=str(value.get("text") or ""), genre=str(value.get("genre") or "random"))
        if isinstance(value, str) and value.strip():
            return cls(text=value.strip(), genre="random")
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "genre": self.genre}


@dataclass
class Segment:
    """Story half of a generated segment"""
    id: str
    video_prompt: str
    narration_text: str
    explicit_setting: Optional[str] = None
    themes: List[str] = field(default_factory=list)
    choices: Optional[List[Choice]] = None
    video_instruction: Optional[str] = None
    setting: Optional[str] = None
    character: Optional[Character] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Segment":
        """Read the camelCase JSON shape the text model is asked to return"""
        raw_choices = payload.get("choices")
        choices = None
        if isinstance(raw_choices, list):
            choices = [c for c in (Choice.from_raw(item) for item in raw_choices) if c is not None]

        themes = payload.get("themes")
        return cls(
            id=str(payload.get("id") or "segment"),
            video_prompt=str(payload.get("videoPrompt") or ""),
            narration_text=str(payload.get("narrationText") or ""),
            explicit_setting=payload.get("explicitSetting") or None,
            themes=[str(t) for t in themes] if isinstance(themes, list) else [],
            choices=choices,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "videoPrompt": self.video_prompt,
            "narrationText": self.narration_text,
            "explicitSetting": self.explicit_setting,
            "themes": list(self.themes),
            "choices": [c.to_dict() for c in self.choices or []],
            "videoInstruction": self.video_instruction,
            "setting": self.setting,
            "character": self.character.to_dict() if self.character else None,
        }


@dataclass
class SceneDescription:
    """Input to video generation"""
    video_prompt: str
    narration_text: Optional[str] = None
    video_instruction: Optional[str] = None
    id: Optional[str] = None
    duration: Optional[int] = None


@dataclass
class VideoResult:
    """Outcome of a video generation, real or placeholder"""
    video_url: str
    has_audio: bool
    duration: int
    prompt: str
    is_placeholder: bool
    generated_at: datetime = field(default_factory=datetime.now)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "videoUrl": self.video_url,
            "hasAudio": self.has_audio,
            "duration": self.duration,
            "prompt": self.prompt,
            "isPlaceholder": self.is_placeholder,
            "generatedAt": _iso(self.generated_at),
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class EpisodeSegment:
    """One orchestrated segment: story plus video"""
    index: int
    type: SegmentType
    story: Segment
    video: VideoResult
    generated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "type": self.type.value,
            "story": self.story.to_dict(),
            "video": self.video.to_dict(),
            "generatedAt": _iso(self.generated_at),
        }


@dataclass
class NarrativeArc:
    """Episode-level plan produced by the coordinator"""
    setup: str
    rising_action: str
    climax: str
    resolution: str
    narrative_beats: List[str] = field(default_factory=list)
    tone_progression: List[str] = field(default_factory=list)
    visual_motifs: List[str] = field(default_factory=list)
    character_arc: str = ""

    @classmethod
    def default(cls) -> "NarrativeArc":
        return cls(
            setup="Introduce character and establish setting",
            rising_action="Present challenges and complications",
            climax="Reach peak moment of conflict or discovery",
            resolution="Conclude with character growth or change",
            narrative_beats=[
                "Establish character in their world",
                "Introduce conflict or mystery",
                "Escalate tension",
                "Reach turning point",
                "Find resolution",
            ],
            tone_progression=["intriguing", "tense", "intense", "dramatic", "satisfying"],
            visual_motifs=["lighting changes", "recurring locations", "symbolic objects"],
            character_arc="Character learns or changes through experience",
        )

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "NarrativeArc":
        """Build an arc from coordinator JSON, filling gaps from the default arc"""
        fallback = cls.default()

        def text(key: str, default: str) -> str:
            value = payload.get(key)
            return str(value) if value else default

        def items(key: str, default: List[str]) -> List[str]:
            value = payload.get(key)
            if isinstance(value, list) and value:
                return [str(v) for v in value]
            return list(default)

        return cls(
            setup=text("setup", fallback.setup),
            rising_action=text("risingAction", fallback.rising_action),
            climax=text("climax", fallback.climax),
            resolution=text("resolution", fallback.resolution),
            narrative_beats=items("narrativeBeats", fallback.narrative_beats),
            tone_progression=items("toneProgression", fallback.tone_progression),
            visual_motifs=items("visualMotifs", fallback.visual_motifs),
            character_arc=text("characterArc", fallback.character_arc),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "setup": self.setup,
            "risingAction": self.rising_action,
            "climax": self.climax,
            "resolution": self.resolution,
            "narrativeBeats": list(self.narrative_beats),
            "toneProgression": list(self.tone_progression),
            "visualMotifs": list(self.visual_motifs),
            "characterArc": self.character_arc,
        }


@dataclass
class EpisodeRequest:
    """Caller input for a complete episode"""
    name: str
    gender: str
    description: str
    setting: str
    themes: List[str] = field(default_factory=list)

    @property
    def character(self) -> Character:
        return Character(name=self.name, gender=self.gender, description=self.description)


@dataclass
class Episode:
    """A complete episode, mutated in place while it is generated"""
    id: str
    character: Character
    setting: str
    themes: List[str] = field(default_factory=list)
    segments: List[EpisodeSegment] = field(default_factory=list)
    narrative_arc: Optional[NarrativeArc] = None
    summary: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    status: EpisodeStatus = EpisodeStatus.GENERATING
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "character": self.character.to_dict(),
            "setting": self.setting,
            "themes": list(self.themes),
            "segments": [s.to_dict() for s in self.segments],
            "narrativeArc": self.narrative_arc.to_dict() if self.narrative_arc else None,
            "summary": self.summary,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "status": self.status.value,
        }
        if self.error:
            result["error"] = self.error
        return result
