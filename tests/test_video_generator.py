"""
Tests for VideoGenerator: retries, caching, placeholders and URL extraction.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from capabilities import InputValidationError
from config_manager import PLACEHOLDER_VIDEO_URL, VideoConfig
from data_models import SceneDescription
from doubles import ScriptedVideoModel, video_response
from story_generator import StoryGenerator, StoryGeneratorError
from story_generator import ValidationError as StoryValidationError
from video_generator import (
    AuthorizationError,
    QuotaExceededError,
    ValidationError,
    VideoGenerationError,
    VideoGenerator,
    classify_error,
    extract_video_url,
    is_non_retryable_error,
)

VIDEO_URL = "https://storage.example.com/videos/segment.mp4"


def scene(scene_id="scene-1", prompt="Gas station at night, cinematic"):
    return SceneDescription(video_prompt=prompt, narration_text="Morgan waits.", id=scene_id)


class TestErrorClassification:

    @pytest.mark.parametrize("message, expected", [
        ("401 Unauthorized", AuthorizationError),
        ("403 Forbidden: key revoked", AuthorizationError),
        ("Quota exceeded for project", QuotaExceededError),
        ("Rate limit reached", QuotaExceededError),
    ])
    def test_markers(self, message, expected):
        classified = classify_error(RuntimeError(message))
        assert isinstance(classified, expected)
        assert str(classified) == message
        assert is_non_retryable_error(classified)

    def test_other_errors_unchanged(self):
        error = TimeoutError("deadline exceeded")
        assert classify_error(error) is error
        assert not is_non_retryable_error(error)

    def test_typed_errors_pass_through(self):
        error = QuotaExceededError("already typed")
        assert classify_error(error) is error


class TestExtractVideoUrl:

    def test_video_data_uri(self):
        assert extract_video_url(video_response(VIDEO_URL)) == VIDEO_URL

    def test_file_data_uri(self):
        assert extract_video_url(video_response(VIDEO_URL, field="fileData")) == VIDEO_URL

    def test_text_url(self):
        assert extract_video_url(video_response(f"  {VIDEO_URL}\n", field="text")) == VIDEO_URL

    def test_plain_text_is_ignored(self):
        assert extract_video_url(video_response("I could not render that", field="text")) is None

    def test_later_part_is_found(self):
        response = {"candidates": [{"content": {"parts": [
            {"text": "Here is your video"},
            {"file_data": {"file_uri": VIDEO_URL}},
        ]}}]}
        assert extract_video_url(response) == VIDEO_URL

    def test_attribute_style_response(self):
        part = SimpleNamespace(video_data=SimpleNamespace(uri=VIDEO_URL))
        response = SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])
        assert extract_video_url(response) == VIDEO_URL

    @pytest.mark.parametrize("response", [None, {}, {"candidates": []}, {"candidates": [{"content": {}}]}])
    def test_empty_responses(self, response):
        assert extract_video_url(response) is None


class TestGenerateVideo:

    @pytest.mark.asyncio
    async def test_success(self, fast_video_config):
        model = ScriptedVideoModel(video_response(VIDEO_URL))
        generator = VideoGenerator(model, fast_video_config)

        result = await generator.generate_video(scene())

        assert result.video_url == VIDEO_URL
        assert result.is_placeholder is False
        assert result.has_audio is True
        assert result.duration == 8
        assert result.error is None
        assert model.attempts == 1

    @pytest.mark.asyncio
    async def test_missing_prompt(self, fast_video_config):
        generator = VideoGenerator(ScriptedVideoModel(video_response(VIDEO_URL)), fast_video_config)
        with pytest.raises(ValidationError):
            await generator.generate_video(SceneDescription(video_prompt=""))

    @pytest.mark.asyncio
    async def test_validation_errors_share_base(self, gas_station_context):
        gas_station_context.setting = ""

        with pytest.raises(InputValidationError):
            await VideoGenerator().generate_video(SceneDescription(video_prompt=""))
        with pytest.raises(InputValidationError):
            await StoryGenerator().generate_segment(gas_station_context)

        assert issubclass(StoryValidationError, StoryGeneratorError)
        assert issubclass(ValidationError, VideoGenerationError)

    @pytest.mark.asyncio
    async def test_cache_hit_skips_model(self, fast_video_config):
        model = ScriptedVideoModel(video_response(VIDEO_URL))
        generator = VideoGenerator(model, fast_video_config)

        first = await generator.generate_video(scene())
        second = await generator.generate_video(scene(prompt="a different prompt"))

        assert second is first
        assert model.attempts == 1
        assert generator.get_cache_stats() == {"size": 1, "entries": ["scene-1"]}

    @pytest.mark.asyncio
    async def test_scenes_without_id_are_not_cached(self, fast_video_config):
        model = ScriptedVideoModel(video_response(VIDEO_URL))
        generator = VideoGenerator(model, fast_video_config)

        await generator.generate_video(scene(scene_id=None))
        await generator.generate_video(scene(scene_id=None))

        assert model.attempts == 2
        assert generator.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_clear_cache(self, fast_video_config):
        generator = VideoGenerator(ScriptedVideoModel(video_response(VIDEO_URL)), fast_video_config)
        await generator.generate_video(scene())

        generator.clear_cache()

        assert generator.get_cached_video("scene-1") is None
        assert generator.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_placeholder_mode(self):
        generator = VideoGenerator()

        result = await generator.generate_video(scene())

        assert generator.use_placeholder is True
        assert result.is_placeholder is True
        assert result.video_url == PLACEHOLDER_VIDEO_URL
        assert result.error is None
        assert generator.get_cached_video("scene-1") is result


class TestRetries:

    @pytest.mark.asyncio
    async def test_retry_bound(self, fast_video_config):
        model = ScriptedVideoModel(RuntimeError("backend unavailable"))
        generator = VideoGenerator(model, fast_video_config)

        result = await generator.generate_video(scene())

        assert model.attempts == fast_video_config.max_retries + 1
        assert result.is_placeholder is True
        assert result.error == "backend unavailable"

    @pytest.mark.asyncio
    async def test_placeholder_is_served_from_cache(self):
        model = ScriptedVideoModel(RuntimeError("backend unavailable"), video_response(VIDEO_URL))
        generator = VideoGenerator(model, VideoConfig(max_retries=0, retry_delay=0.0))

        first = await generator.generate_video(scene())
        second = await generator.generate_video(scene())

        assert first.is_placeholder is True
        assert second is first
        assert model.attempts == 1

    @pytest.mark.asyncio
    async def test_clear_cache_allows_retry_after_placeholder(self):
        model = ScriptedVideoModel(RuntimeError("backend unavailable"), video_response(VIDEO_URL))
        generator = VideoGenerator(model, VideoConfig(max_retries=0, retry_delay=0.0))

        await generator.generate_video(scene())
        generator.clear_cache()
        result = await generator.generate_video(scene())

        assert result.video_url == VIDEO_URL
        assert model.attempts == 2

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, fast_video_config):
        model = ScriptedVideoModel(RuntimeError("timeout"), video_response(VIDEO_URL))
        generator = VideoGenerator(model, fast_video_config)

        result = await generator.generate_video(scene())

        assert result.video_url == VIDEO_URL
        assert model.attempts == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["Quota exceeded", "Unauthorized", "rate limit hit", "forbidden"])
    async def test_non_retryable_stops_after_one_attempt(self, fast_video_config, message):
        model = ScriptedVideoModel(RuntimeError(message))
        generator = VideoGenerator(model, fast_video_config)

        result = await generator.generate_video(scene())

        assert model.attempts == 1
        assert result.is_placeholder is True
        assert result.error == message

    @pytest.mark.asyncio
    async def test_missing_url_is_retried(self, fast_video_config):
        model = ScriptedVideoModel({"candidates": []})
        generator = VideoGenerator(model, fast_video_config)

        result = await generator.generate_video(scene())

        assert model.attempts == 3
        assert result.error == "Video URL not found in API response"

    @pytest.mark.asyncio
    async def test_exponential_backoff_delays(self):
        model = ScriptedVideoModel(RuntimeError("boom"))
        generator = VideoGenerator(model, VideoConfig(max_retries=3, retry_delay=1.0))

        with patch("video_generator.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await generator.generate_video(scene())

        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_request_shape_rotates(self, fast_video_config):
        model = ScriptedVideoModel(RuntimeError("boom"))
        generator = VideoGenerator(model, fast_video_config)

        await generator.generate_video(scene())

        first, second, third = model.requests
        assert "generation_config" not in first
        assert second["generation_config"] == {"temperature": 0.7}
        assert "generation_config" not in third
        assert first["video_config"] == {"duration_seconds": 8, "aspect_ratio": "16:9"}

    def test_video_generation_error_hierarchy(self):
        assert issubclass(AuthorizationError, VideoGenerationError)
        assert issubclass(QuotaExceededError, VideoGenerationError)


class TestOptimizePrompt:

    def test_instruction_and_narration_folded_in(self):
        generator = VideoGenerator()
        optimized = generator.optimize_prompt(SceneDescription(
            video_prompt="Gas station at night",
            narration_text="Morgan waits.",
            video_instruction="MUST SHOW: Gas station",
        ))
        assert optimized == (
            "MUST SHOW: Gas station. Gas station at night. Narration: Morgan waits., cinematic quality"
        )

    def test_cinematic_not_duplicated(self):
        optimized = VideoGenerator().optimize_prompt(SceneDescription(video_prompt="Cinematic pan"))
        assert optimized == "Cinematic pan"
