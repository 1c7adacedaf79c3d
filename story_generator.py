"""
Story segment generation with branching choices.
Builds prompts from a story context, calls the text model and repairs the
response into a validated segment.
"""

import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from capabilities import ContentFilter, InputValidationError, TextCapability
from config_manager import StoryConfig
from data_models import Choice, Segment, StoryContext
from response_repair import parse_segment_response, repair_segment

logger = logging.getLogger(__name__)


TIME_OF_DAY_OPTIONS = [
    'early morning', 'mid-morning', 'noon', 'afternoon', 'dusk',
    'evening', 'late night', 'midnight', 'pre-dawn'
]
WEATHER_OPTIONS = [
    'clear skies', 'overcast', 'light rain', 'heavy rain', 'fog', 'mist',
    'snow flurries', 'windy conditions', 'humid atmosphere', 'crisp air'
]
CAMERA_ANGLES = [
    'wide establishing shot', 'close-up', 'medium shot', 'low angle',
    'high angle', 'dutch angle', 'over-the-shoulder', 'tracking shot'
]
MOOD_MODIFIERS = [
    'tense', 'peaceful', 'ominous', 'hopeful', 'melancholic', 'energetic',
    'mysterious', 'contemplative', 'anxious', 'serene'
]

LOCATION_VISUALS: Dict[str, str] = {
    'gas station': 'gas pumps, neon signs, convenience store, fluorescent lights, fuel dispensers',
    'coffee shop': 'espresso machine, wooden tables, warm lighting, coffee cups, barista counter',
    'space station': 'metallic corridors, view of stars through windows, control panels, zero gravity elements, futuristic tech',
    'medieval castle': 'stone walls, torches, throne room, medieval banners, suits of armor',
    'hospital': 'medical equipment, white walls, hospital beds, fluorescent lights, sanitized environment',
    'school': 'classroom desks, chalkboard, lockers, hallway, school supplies',
    'library': 'bookshelves, reading tables, dim warm lighting, old books, quiet atmosphere',
    'bar': 'bar counter, bottles on shelves, dim moody lighting, bar stools, neon beer signs',
    'restaurant': 'dining tables, kitchen visible, food service, ambient lighting, customers dining',
    'office': 'desk, computer monitors, cubicles, office supplies, professional environment'
}

# (keywords, fragment); checked in this order for every theme
THEME_ATMOSPHERES: List[Tuple[Tuple[str, ...], str]] = [
    (('horror',), 'dark shadows, ominous atmosphere, eerie lighting'),
    (('christmas',), 'christmas decorations, snow visible, festive lights, holiday atmosphere'),
    (('mystery',), 'fog effects, mysterious lighting, noir cinematography'),
    (('comedy',), 'bright colorful lighting, cheerful atmosphere'),
    (('sci-fi', 'futuristic'), 'neon lights, holographic displays, advanced technology'),
    (('romantic',), 'soft warm lighting, intimate atmosphere'),
]


class StoryGeneratorError(Exception):
    """Base exception for story generation errors"""
    pass


class ValidationError(StoryGeneratorError, InputValidationError):
    """Raised when a required context field is missing"""
    pass


class ContentPolicyError(StoryGeneratorError):
    """Raised when the content filter rejects an input"""
    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True)
class Variation:
    """Cosmetic descriptors injected into prompts to avoid repetition"""
    seed: int
    time_of_day: str
    weather: str
    camera: str
    mood: str


class StoryGenerator:
    """Generates story segments; falls back to canned segments without a text model"""

    def __init__(self,
                 text_capability: Optional[TextCapability] = None,
                 content_filter: Optional[ContentFilter] = None,
                 config: Optional[StoryConfig] = None):
        self.text_capability = text_capability
        self.content_filter = content_filter
        self.config = config or StoryConfig()
        self.use_hardcoded_data = text_capability is None

        logger.info(
            f"StoryGenerator initialized (mode={'HARDCODED' if self.use_hardcoded_data else 'AI'}, "
            f"choices_per_scene={self.config.choices_per_scene})"
        )

    async def generate_segment(self, context: StoryContext,
                               previous_choice: Optional[Choice] = None) -> Segment:
        """Generate a validated story segment for the context"""
        logger.info(
            f"Generating story segment (opening={previous_choice is None}, "
            f"setting={context.setting!r})"
        )

        self.validate_context(context)

        if self.content_filter:
            self.apply_content_filters(context)

        if self.use_hardcoded_data:
            segment = self.generate_hardcoded_segment(context, previous_choice)
        else:
            segment = await self.generate_ai_segment(context, previous_choice)

        segment = repair_segment(segment, context, self.config.choices_per_scene)

        logger.info(f"Story segment {segment.id} generated with {len(segment.choices)} choices")
        return segment

    def validate_context(self, context: StoryContext):
        """Fail fast when a required field is missing"""
        if not context.setting:
            raise ValidationError("Missing required field: setting")
        character = context.character
        if character is None or not character.name:
            raise ValidationError("Missing required field: character.name")
        if not character.gender:
            raise ValidationError("Missing required field: character.gender")
        if not character.description:
            raise ValidationError("Missing required field: character.description")

    def apply_content_filters(self, context: StoryContext):
        """Run the content filter over the user-supplied inputs"""
        checks = [
            ("Setting", context.setting),
            ("Character name", context.character.name),
            ("Character description", context.character.description),
        ]
        for label, text in checks:
            result = self.content_filter(text)
            if not result.passed:
                raise ContentPolicyError(
                    f"{label} failed content filter: {result.reason}", result.reason
                )

    def generate_variation(self, seed: Optional[int] = None) -> Variation:
        """Pick variation elements; the same seed always gives the same picks"""
        if seed is None:
            seed = random.randrange(1_000_000)
        rng = random.Random(seed)
        return Variation(
            seed=seed,
            time_of_day=rng.choice(TIME_OF_DAY_OPTIONS),
            weather=rng.choice(WEATHER_OPTIONS),
            camera=rng.choice(CAMERA_ANGLES),
            mood=rng.choice(MOOD_MODIFIERS),
        )

    def generate_explicit_visual(self, setting: str, themes: Optional[List[str]] = None) -> str:
        """Expand a setting into concrete visual details plus theme atmosphere"""
        visual = setting
        setting_lower = setting.lower()

        for location, details in LOCATION_VISUALS.items():
            if location in setting_lower:
                visual = f"{setting} with {details}"
                break

        for theme in themes or []:
            theme_lower = theme.lower()
            for keywords, fragment in THEME_ATMOSPHERES:
                if any(keyword in theme_lower for keyword in keywords):
                    visual += f", {fragment}"

        return visual

    def format_prompt(self, context: StoryContext, previous_choice: Optional[Choice] = None) -> str:
        """Build the opening or continuation prompt for the text model"""
        setting = context.setting
        themes = context.themes or []
        name = context.character.name
        gender = context.character.gender
        description = context.character.description
        count = self.config.choices_per_scene

        variation = self.generate_variation(context.variation_seed)
        explicit_visual = self.generate_explicit_visual(setting, themes)
        themes_text = ', '.join(themes) if themes else 'general adventure'
        themes_json = json.dumps(themes)

        genre_1 = themes[0] if len(themes) > 0 else 'mystery'
        genre_2 = themes[1] if len(themes) > 1 else 'action'
        genre_3 = themes[2] if len(themes) > 2 else 'drama'

        if previous_choice is None:
            return f"""Create a story with these EXACT specifications:

VARIATION SEED: {variation.seed} (Use this to create a unique opening - never repeat the same scenario)

TIME & ATMOSPHERE:
- Time of day: {variation.time_of_day}
- Weather/Atmosphere: {variation.weather}
- Camera style: {variation.camera}
- Overall mood: {variation.mood}

CHARACTER: {name}, a {gender} {description}
SETTING: {setting} (MUST be the PRIMARY location - this is CRITICAL)
THEMES: {themes_text}
VISUAL ELEMENTS: {explicit_visual}

CRITICAL RULES - MUST FOLLOW:
1. The videoPrompt MUST START with "{setting}" or "{name} at {setting}"
2. The videoPrompt MUST include these visual elements: {explicit_visual}
3. INCORPORATE the time ({variation.time_of_day}) and weather ({variation.weather}) into the scene
4. Use {variation.camera} perspective and capture a {variation.mood} mood
5. The narration MUST take place at "{setting}"
6. The story MUST incorporate these themes: {themes_text}
7. Create a UNIQUE scenario - avoid generic openings

Generate EXACTLY {count} meaningful choices that reflect the themes: {themes_text}

Return ONLY valid JSON with this exact structure:
{{
    "id": "opening",
    "videoPrompt": "{setting}, {explicit_visual}, {variation.time_of_day}, {variation.weather}, {variation.camera}, {name} the {description} is present, {variation.mood} atmosphere",
    "narrationText": "Story opening at {setting} ({self.config.narration_length}). MUST mention {setting} explicitly.",
    "explicitSetting": "{setting}",
    "themes": {themes_json},
    "choices": [
        {{"text": "Choice 1 influenced by {themes_text}", "genre": "{genre_1}"}},
        {{"text": "Choice 2 influenced by {themes_text}", "genre": "{genre_2}"}},
        {{"text": "Choice 3 influenced by {themes_text}", "genre": "{genre_3}"}},
        {{"text": "Choice 4 influenced by {themes_text}", "genre": "random"}}
    ]
}}

Make it cinematic, engaging, and appropriate for all audiences. The setting {setting} is NON-NEGOTIABLE."""

        return f"""Continue the story for {name} at {setting}.

PREVIOUS CHOICE: "{previous_choice.text}"
PREVIOUS GENRE: {previous_choice.genre}

CURRENT CONTEXT:
- Setting: {setting} (MUST remain here)
- Character: {name}, a {gender} {description}
- Themes: {themes_text}
- Variation: {variation.time_of_day}, {variation.weather}, {variation.mood}

CRITICAL RULES:
1. Continue the story based on the previous choice
2. MUST still be at {setting} - DO NOT change location
3. The videoPrompt must show {setting}
4. Generate EXACTLY {count} new meaningful choices
5. Incorporate {themes_text} themes

Return ONLY valid JSON:
{{
    "id": "scene_{int(time.time() * 1000)}",
    "videoPrompt": "{setting}, [continuing action based on previous choice], {name} reacts to the situation",
    "narrationText": "Continuation at {setting} ({self.config.narration_length}). Based on {name}'s decision to {previous_choice.text}...",
    "explicitSetting": "{setting}",
    "themes": {themes_json},
    "choices": [
        {{"text": "New choice 1", "genre": "{genre_1}"}},
        {{"text": "New choice 2", "genre": "{genre_2}"}},
        {{"text": "New choice 3", "genre": "{genre_3}"}},
        {{"text": "New choice 4", "genre": "random"}}
    ]
}}

Make the continuation logical and engaging based on the previous choice."""

    async def generate_ai_segment(self, context: StoryContext,
                                  previous_choice: Optional[Choice]) -> Segment:
        """Call the text model and parse its reply; ParseError propagates"""
        prompt = self.format_prompt(context, previous_choice)

        logger.debug(f"Sending {len(prompt)} character prompt to text model")
        raw_response = await self.text_capability.invoke(prompt)
        logger.debug(f"Raw response received ({len(raw_response or '')} chars)")

        return parse_segment_response(raw_response)

    def generate_hardcoded_segment(self, context: StoryContext,
                                   previous_choice: Optional[Choice]) -> Segment:
        """Canned segment used when no text model is configured"""
        setting = context.setting
        themes = context.themes or []
        character = context.character

        if previous_choice is None:
            return Segment(
                id='opening',
                video_prompt=(
                    f"{setting}, {character.name} the {character.description} stands in the center, "
                    f"atmospheric lighting, cinematic camera angle"
                ),
                narration_text=(
                    f"{character.name}, a {character.gender} {character.description}, finds themselves "
                    f"at {setting}. The atmosphere is thick with anticipation. What will happen next?"
                ),
                explicit_setting=setting,
                themes=list(themes),
                choices=[
                    Choice('🔍 Investigate the surroundings carefully', themes[0] if len(themes) > 0 else 'mystery'),
                    Choice('⚔️ Take immediate action', themes[1] if len(themes) > 1 else 'action'),
                    Choice('💬 Try to communicate with someone nearby', themes[2] if len(themes) > 2 else 'drama'),
                    Choice('🎲 Wait and see what happens', 'random'),
                ],
            )

        return Segment(
            id=f"scene_{int(time.time() * 1000)}",
            video_prompt=f"{setting}, {character.name} continues their journey, reacting to the previous decision",
            narration_text=(
                f"After choosing to {previous_choice.text}, {character.name} finds the situation "
                f"developing in unexpected ways at {setting}."
            ),
            explicit_setting=setting,
            themes=list(themes),
            choices=[
                Choice('🔍 Explore further based on what was discovered', 'mystery'),
                Choice('⚔️ Double down on the previous approach', 'action'),
                Choice('💬 Change tactics and try something different', 'drama'),
                Choice('🎲 Take a risk', 'random'),
            ],
        )
