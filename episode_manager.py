"""
Episode orchestration for the Episode Studio.
Sequences story and video generation across a bounded number of segments and
consults a coordinator model for planning, coherence, pacing and summaries.
"""

import asyncio
import json
import logging
import random
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from capabilities import TextCapability
from config_manager import EpisodeConfig
from data_models import (
    Episode,
    EpisodeRequest,
    EpisodeSegment,
    EpisodeStatus,
    NarrativeArc,
    SceneDescription,
    Segment,
    SegmentType,
    StoryContext,
)
from response_repair import ParseError, extract_json_object
from story_generator import StoryGenerator
from video_generator import VideoGenerator

logger = logging.getLogger(__name__)


class EpisodeManager:
    """Coordinates a single episode at a time.

    The manager owns one current-episode slot. ``generate_episode`` replaces
    it, mutates it while running and leaves it inspectable afterwards, also
    when generation failed. Only one caller may drive a manager at a time;
    concurrent callers need one manager each.
    """

    def __init__(self,
                 coordinator: TextCapability,
                 story_generator: StoryGenerator,
                 video_generator: VideoGenerator,
                 config: Optional[EpisodeConfig] = None):
        if coordinator is None:
            raise ValueError("EpisodeManager requires a coordinator capability")
        if story_generator is None:
            raise ValueError("EpisodeManager requires a story generator")
        if video_generator is None:
            raise ValueError("EpisodeManager requires a video generator")

        self.coordinator = coordinator
        self.story_generator = story_generator
        self.video_generator = video_generator
        self.config = config or EpisodeConfig()

        self.current_episode: Optional[Episode] = None

        # Event callbacks
        self._progress_callback: Optional[Callable] = None
        self._segment_complete_callbacks: List[Callable] = []
        self._error_callbacks: List[Callable] = []

        logger.info(
            f"EpisodeManager initialized (max_segments={self.config.max_segments}, "
            f"min_segments={self.config.min_segments}, enhance_prompts={self.config.enhance_prompts}, "
            f"track_coherence={self.config.track_coherence})"
        )

    def set_progress_callback(self, callback: Callable[[Episode], None]):
        """Set callback invoked after every appended segment"""
        self._progress_callback = callback

    def add_segment_complete_callback(self, callback: Callable[[EpisodeSegment], None]):
        self._segment_complete_callbacks.append(callback)

    def add_error_callback(self, callback: Callable[[Exception, Episode], None]):
        self._error_callbacks.append(callback)

    async def generate_episode(self, request: EpisodeRequest) -> Episode:
        """Generate a complete episode from user input"""
        logger.info(f"Starting episode generation for {request.name} at {request.setting}")

        episode = Episode(
            id=f"episode-{uuid.uuid4().hex[:12]}",
            character=request.character,
            setting=request.setting,
            themes=list(request.themes or []),
        )
        self.current_episode = episode

        try:
            episode.narrative_arc = await self.plan_narrative_arc(request)

            opening = await self.generate_segment(request, None, 0, SegmentType.OPENING)
            await self._append_segment(episode, opening)

            segment_count = 1
            previous = opening

            while segment_count < self.config.max_segments:
                should_continue = await self.should_continue_episode(episode, segment_count)

                if not should_continue and segment_count >= self.config.min_segments:
                    logger.info("Episode concluded by coordinator")
                    break

                logger.info(f"Generating segment {segment_count + 1}/{self.config.max_segments}")
                segment = await self.generate_segment(
                    request, previous, segment_count, SegmentType.CONTINUATION
                )
                await self._append_segment(episode, segment)
                previous = segment
                segment_count += 1

            episode.summary = await self.generate_episode_summary(episode)
            episode.status = EpisodeStatus.COMPLETED
            episode.completed_at = datetime.now()

            logger.info(f"Episode {episode.id} complete with {segment_count} segments")
            return episode

        except Exception as e:
            logger.error(f"Episode generation error: {e}")
            episode.status = EpisodeStatus.ERROR
            episode.error = str(e)

            for callback in self._error_callbacks:
                try:
                    await self._call_async_or_sync(callback, e, episode)
                except Exception as callback_error:
                    logger.warning(f"Error callback failed: {callback_error}")
            raise

    async def generate_segment(self,
                               request: EpisodeRequest,
                               previous: Optional[EpisodeSegment],
                               index: int,
                               segment_type: SegmentType) -> EpisodeSegment:
        """Run the story, coherence, enhancement and video steps for one segment"""
        logger.info(f"Orchestrating segment {index} ({segment_type.value})")

        context = StoryContext(
            setting=request.setting,
            character=request.character,
            themes=list(request.themes or []),
            variation_seed=random.randrange(1_000_000),
        )

        previous_choice = None
        if previous is not None and previous.story.choices:
            previous_choice = previous.story.choices[0]

        story = await self.story_generator.generate_segment(context, previous_choice)

        if self.config.track_coherence and previous is not None:
            coherence = await self.check_narrative_coherence(previous, story, self.current_episode.narrative_arc)
            if coherence.get("coherent") is False:
                logger.warning(f"Coherence issue detected: {coherence.get('issue')}")
                suggested_fix = coherence.get("suggestedFix")
                if suggested_fix:
                    story = replace(story, narration_text=str(suggested_fix))

        if self.config.enhance_prompts:
            enhanced = await self.enhance_video_prompt(
                story.video_prompt, story.narration_text, self.current_episode.narrative_arc, index
            )
            story = replace(story, video_prompt=enhanced)

        video = await self.video_generator.generate_video(SceneDescription(
            id=f"{self.current_episode.id}-segment-{index}",
            video_prompt=story.video_prompt,
            narration_text=story.narration_text,
            video_instruction=story.video_instruction,
            duration=self.config.segment_duration,
        ))

        logger.info(f"Segment {index} complete (placeholder video: {video.is_placeholder})")
        return EpisodeSegment(index=index, type=segment_type, story=story, video=video)

    async def plan_narrative_arc(self, request: EpisodeRequest) -> NarrativeArc:
        """Ask the coordinator for a narrative arc; default arc on any failure"""
        themes = ', '.join(request.themes) if request.themes else 'None specified'
        prompt = f"""You are a narrative orchestrator for an interactive story platform. Plan the narrative arc for an episode.

Character: {request.name} ({request.gender}, {request.description})
Setting: {request.setting}
Themes: {themes}

Create a narrative arc plan with:
1. Setup: What should the opening establish?
2. Rising Action: What challenges or developments should occur?
3. Climax: What should be the peak moment?
4. Resolution: How should the episode conclude?

Also suggest:
- Key narrative beats (3-5 major story points)
- Tone progression (how should mood evolve?)
- Visual motifs (recurring visual elements)
- Character development arc

Return as JSON:
{{
    "setup": "description",
    "risingAction": "description",
    "climax": "description",
    "resolution": "description",
    "narrativeBeats": ["beat1", "beat2"],
    "toneProgression": ["tone1", "tone2"],
    "visualMotifs": ["motif1", "motif2"],
    "characterArc": "description"
}}"""

        try:
            response = await self.coordinator.invoke(prompt)
            arc = NarrativeArc.from_dict(extract_json_object(response))
            logger.info(f"Narrative arc planned: {arc.narrative_beats}")
            return arc
        except ParseError as e:
            logger.warning(f"Could not parse narrative arc, using default: {e}")
        except Exception as e:
            logger.error(f"Narrative arc planning error: {e}")
        return NarrativeArc.default()

    async def check_narrative_coherence(self,
                                        previous: EpisodeSegment,
                                        current: Segment,
                                        arc: Optional[NarrativeArc]) -> Dict[str, Any]:
        """Ask the coordinator whether the new narration follows the previous one"""
        beats = json.dumps(arc.narrative_beats if arc else [])
        prompt = f"""You are a narrative continuity checker. Review these story segments for coherence.

Previous narration: "{previous.story.narration_text}"
Current narration: "{current.narration_text}"
Planned narrative arc: {beats}

Check for:
1. Logical continuity (does current follow from previous?)
2. Character consistency
3. Setting consistency
4. Tone alignment with narrative arc

Return as JSON:
{{
    "coherent": true/false,
    "issue": "description of any issues" or null,
    "suggestedFix": "corrected narration" or null
}}"""

        coherent = {"coherent": True, "issue": None, "suggestedFix": None}
        try:
            response = await self.coordinator.invoke(prompt)
            return {**coherent, **extract_json_object(response)}
        except ParseError:
            return coherent
        except Exception as e:
            logger.error(f"Coherence check error: {e}")
            return coherent

    async def enhance_video_prompt(self,
                                   original_prompt: str,
                                   narration: str,
                                   arc: Optional[NarrativeArc],
                                   index: int) -> str:
        """Rewrite a video prompt with cinematic direction, bounded in length"""
        tone = 'engaging'
        if arc and arc.tone_progression:
            tone = arc.tone_progression[min(index, len(arc.tone_progression) - 1)]

        prompt = f"""You are a video prompt optimizer for AI video generation. Enhance this prompt for an 8-second video.

Original prompt: "{original_prompt}"
Narration: "{narration}"
Narrative context: Segment {index + 1}, tone should be {tone}

Enhance the prompt by:
1. Adding cinematic camera work (angles, movements)
2. Specifying lighting and atmosphere
3. Adding visual details that match the narration
4. Including the narrative tone
5. Ensuring it works well for 8-second video generation

Return ONLY the enhanced prompt text, no JSON, no explanation. Maximum 200 characters."""

        try:
            enhanced = (await self.coordinator.invoke(prompt) or "").strip()
        except Exception as e:
            logger.error(f"Prompt enhancement error: {e}")
            return original_prompt

        if not enhanced:
            return original_prompt

        limit = self.config.max_prompt_length
        if len(enhanced) > limit:
            return enhanced[:limit - 3] + '...'
        return enhanced

    async def should_continue_episode(self, episode: Episode, segment_count: int) -> bool:
        """Decide whether to add another segment"""
        if segment_count < self.config.min_segments:
            return True

        if segment_count >= self.config.max_segments - 1:
            return False

        last_segment = episode.segments[-1]
        beats = json.dumps(episode.narrative_arc.narrative_beats if episode.narrative_arc else [])
        prompt = f"""You are an episode pacing coordinator. Decide if this interactive story episode should continue.

Current segments: {segment_count + 1}
Maximum segments: {self.config.max_segments}
Last narration: "{last_segment.story.narration_text}"
Narrative arc: {beats}

The episode should continue if:
- The story has unresolved narrative threads
- We haven't reached the planned climax yet
- Character development is incomplete
- The setting hasn't been fully explored

The episode should conclude if:
- Main narrative beats are complete
- Natural resolution point reached
- Story feels complete

Return as JSON: {{"continue": true/false, "reason": "brief explanation"}}"""

        try:
            decision = extract_json_object(await self.coordinator.invoke(prompt))
        except ParseError:
            logger.warning("Could not parse continuation decision, continuing")
            return True
        except Exception as e:
            logger.error(f"Continuation decision error: {e}")
            return True

        should_continue = decision.get("continue", True)
        if not isinstance(should_continue, bool):
            should_continue = str(should_continue).strip().lower() not in ("false", "no", "0")

        logger.info(
            f"Coordinator decision: {'Continue' if should_continue else 'Conclude'} - {decision.get('reason')}"
        )
        return should_continue

    async def generate_episode_summary(self, episode: Episode) -> str:
        """Summarize the episode; templated one-liner on failure"""
        fallback = f"An episode featuring {episode.character.name} in {episode.setting}."
        narrations = '\n'.join(
            f"Segment {i + 1}: {segment.story.narration_text}"
            for i, segment in enumerate(episode.segments)
        )

        prompt = f"""Summarize this interactive story episode in 2-3 engaging sentences.

Character: {episode.character.name} ({episode.character.description})
Setting: {episode.setting}
Themes: {', '.join(episode.themes)}

Story segments:
{narrations}

Create a compelling summary that captures the essence of the episode."""

        try:
            summary = (await self.coordinator.invoke(prompt) or "").strip()
        except Exception as e:
            logger.error(f"Summary generation error: {e}")
            return fallback

        return summary or fallback

    def get_current_episode(self) -> Optional[Episode]:
        return self.current_episode

    def get_episode_stats(self) -> Dict[str, Any]:
        """Get a summary of the current episode"""
        if self.current_episode is None:
            return {"has_episode": False}

        episode = self.current_episode
        return {
            "has_episode": True,
            "segment_count": len(episode.segments),
            "status": episode.status.value,
            "duration": len(episode.segments) * self.config.segment_duration,
            "character": episode.character.name,
            "setting": episode.setting
        }

    def reset(self):
        """Drop the current episode"""
        self.current_episode = None
        logger.info("EpisodeManager reset")

    async def _append_segment(self, episode: Episode, segment: EpisodeSegment):
        episode.segments.append(segment)

        for callback in self._segment_complete_callbacks:
            try:
                await self._call_async_or_sync(callback, segment)
            except Exception as e:
                logger.warning(f"Segment completion callback failed: {e}")

        if self._progress_callback:
            try:
                await self._call_async_or_sync(self._progress_callback, episode)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    async def _call_async_or_sync(self, func: Callable, *args, **kwargs):
        """Call function whether it's async or sync"""
        if asyncio.iscoroutinefunction(func):
            return await func(*args, **kwargs)
        return func(*args, **kwargs)
