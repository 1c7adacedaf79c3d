"""
Repair of semi-structured model output into validated story segments.

The text model is asked for a JSON object but frequently wraps it in a fenced
code block or surrounds it with prose, returns the wrong number of choices, or
forgets to name the location. The helpers here turn that output into a
``Segment`` that satisfies the shape rules:

* exactly ``choices_per_scene`` choices, padded from a fixed rotation or
  truncated, order preserved;
* the video prompt mentions the setting (the setting is prefixed otherwise);
* the narration is only checked, a missing location is logged and left as is.

``repair_segment`` is pure: it returns a new ``Segment`` and never mutates
its input.
"""

import dataclasses
import json
import logging
import re
from typing import Any, Dict, List, Optional

from data_models import Choice, Segment, StoryContext

logger = logging.getLogger(__name__)

CHOICES_PER_SCENE = 4

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class ParseError(Exception):
    """Raised when a model response does not contain a usable JSON object"""
    pass


def _balanced_object_at(text: str, start: int) -> Optional[str]:
    """Return the brace-balanced substring beginning at ``start``, if any"""
    depth = 0
    in_string = False
    escaped = False

    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]

    return None


def _first_object(text: str) -> Optional[Dict[str, Any]]:
    start = text.find("{")
    while start != -1:
        candidate = _balanced_object_at(text, start)
        if candidate is not None:
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, dict):
                return parsed
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> Dict[str, Any]:
    """Extract the first well-formed JSON object from a model response.

    A fenced code block is searched first, then the whole text.
    """
    if not text or not text.strip():
        raise ParseError("Empty response, no JSON object found")

    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        parsed = _first_object(fenced.group(1))
        if parsed is not None:
            return parsed

    parsed = _first_object(text)
    if parsed is None:
        raise ParseError(f"Could not parse JSON from response: {text[:80]!r}")
    return parsed


def parse_segment_response(text: str) -> Segment:
    """Parse a raw text-model response into an unrepaired Segment"""
    segment = Segment.from_dict(extract_json_object(text))
    logger.debug(f"Parsed segment {segment.id} with {len(segment.choices or [])} choices")
    return segment


def default_choices(themes: List[str]) -> List[Choice]:
    """The fixed rotation used to pad short choice lists"""
    def genre(index: int, fallback: str) -> str:
        return themes[index] if len(themes) > index and themes[index] else fallback

    return [
        Choice(text="🔍 Look around carefully", genre=genre(0, "mystery")),
        Choice(text="⚔️ Take decisive action", genre=genre(1, "action")),
        Choice(text="💬 Call out or speak", genre=genre(2, "drama")),
        Choice(text="🎲 Wait and observe", genre="random"),
    ]


def fix_choices(choices: Optional[List[Choice]], themes: List[str],
                count: int = CHOICES_PER_SCENE) -> List[Choice]:
    """Pad or truncate ``choices`` to exactly ``count`` entries"""
    defaults = default_choices(themes)
    fixed = list(choices or [])

    while len(fixed) < count:
        fixed.append(defaults[len(fixed) % len(defaults)])

    return fixed[:count]


def setting_keywords(setting: str) -> List[str]:
    """Significant words of a setting; the whole setting when none qualify"""
    lowered = setting.lower()
    keywords = [word for word in lowered.split() if len(word) > 3]
    return keywords or [lowered.strip()]


def mentions_setting(text: Optional[str], setting: str) -> bool:
    """Check whether ``text`` contains any significant setting keyword"""
    if not text:
        return False
    lowered = text.lower()
    return any(word in lowered for word in setting_keywords(setting))


def video_instruction(context: StoryContext) -> str:
    return (
        f"MUST SHOW: {context.setting} as the primary setting. "
        f"Character {context.character.name} must be visible at this location."
    )


def repair_segment(segment: Segment, context: StoryContext,
                   choices_per_scene: int = CHOICES_PER_SCENE) -> Segment:
    """Return a copy of ``segment`` that satisfies the segment shape rules"""
    setting = context.setting
    choices = segment.choices

    if not choices or len(choices) != choices_per_scene:
        logger.warning(
            f"Invalid choice count: {len(choices or [])}, expected {choices_per_scene}"
        )
        choices = fix_choices(choices, context.themes, choices_per_scene)

    video_prompt = segment.video_prompt
    if not mentions_setting(video_prompt, setting):
        logger.warning(f"Video prompt missing setting '{setting}', adding it")
        video_prompt = f"{setting}: {video_prompt}" if video_prompt else setting

    # Narration is only checked, never rewritten.
    if not mentions_setting(segment.narration_text, setting):
        logger.warning(f"Narration missing location context: {setting}")

    return dataclasses.replace(
        segment,
        explicit_setting=segment.explicit_setting or setting,
        themes=list(segment.themes) if segment.themes else list(context.themes),
        choices=list(choices),
        video_prompt=video_prompt,
        video_instruction=video_instruction(context),
        setting=setting,
        character=context.character,
    )
