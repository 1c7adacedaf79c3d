"""
Video generation with bounded retries, per-scene caching and a placeholder
fallback. Callers always receive a VideoResult; failures downgrade to a
placeholder instead of raising.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from capabilities import InputValidationError, VideoCapability
from config_manager import VideoConfig
from data_models import SceneDescription, VideoResult

logger = logging.getLogger(__name__)


class VideoGenerationError(Exception):
    """Base exception for video generation errors"""
    pass


class AuthorizationError(VideoGenerationError):
    """Raised when the video service rejects the credentials"""
    pass


class QuotaExceededError(VideoGenerationError):
    """Raised when the video service quota or rate limit is exhausted"""
    pass


class ValidationError(VideoGenerationError, InputValidationError):
    """Raised when a scene description lacks a video prompt"""
    pass


_AUTH_MARKERS = ("unauthorized", "forbidden")
_QUOTA_MARKERS = ("quota", "rate limit")


def classify_error(error: Exception) -> Exception:
    """Classify a raw failure by its message"""
    if isinstance(error, (AuthorizationError, QuotaExceededError)):
        return error

    message = str(error).lower()
    if any(marker in message for marker in _AUTH_MARKERS):
        return AuthorizationError(str(error))
    if any(marker in message for marker in _QUOTA_MARKERS):
        return QuotaExceededError(str(error))
    return error


def is_non_retryable_error(error: Exception) -> bool:
    """Authorization and quota failures are not worth retrying"""
    return isinstance(classify_error(error), (AuthorizationError, QuotaExceededError))


def _field(obj: Any, *names: str) -> Any:
    """Read the first present attribute or key among ``names``"""
    if obj is None:
        return None
    for name in names:
        value = obj.get(name) if isinstance(obj, dict) else getattr(obj, name, None)
        if value:
            return value
    return None


def _parts(candidate: Any) -> List[Any]:
    parts = _field(_field(candidate, "content"), "parts")
    return list(parts) if parts else []


def extract_video_url(response: Any) -> Optional[str]:
    """Find a video URL in a video model response.

    Each part is checked for a video-data URI, then a file-data URI, then a
    plain http(s) URL in its text. The first hit wins.
    """
    candidates: Iterable[Any] = _field(response, "candidates") or []

    for candidate in candidates:
        for part in _parts(candidate):
            video_uri = _field(_field(part, "video_data", "videoData"), "uri")
            if video_uri:
                return video_uri

            file_uri = _field(_field(part, "file_data", "fileData"), "file_uri", "fileUri")
            if file_uri:
                return file_uri

            text = _field(part, "text")
            if isinstance(text, str):
                text = text.strip()
                if text.startswith(("http://", "https://")):
                    return text

    return None


class VideoGenerator:
    """Generates videos for story scenes through a video capability"""

    def __init__(self, video_capability: Optional[VideoCapability] = None,
                 config: Optional[VideoConfig] = None):
        self.video_capability = video_capability
        self.config = config or VideoConfig()
        self.use_placeholder = video_capability is None

        self._cache: Dict[str, VideoResult] = {}

        logger.info(
            f"VideoGenerator initialized (mode={'PLACEHOLDER' if self.use_placeholder else 'VIDEO_MODEL'}, "
            f"duration={self.config.default_duration}, max_retries={self.config.max_retries})"
        )

    async def generate_video(self, scene: SceneDescription) -> VideoResult:
        """Generate (or fetch from cache) the video for a scene"""
        if not scene.video_prompt:
            raise ValidationError("Missing required field: video_prompt")

        logger.info(f"Generating video for scene {scene.id or 'N/A'} (prompt length {len(scene.video_prompt)})")

        if scene.id and scene.id in self._cache:
            logger.info(f"Returning cached video for scene: {scene.id}")
            return self._cache[scene.id]

        prompt = self.optimize_prompt(scene)
        logger.debug(f"Optimized prompt: {prompt[:150]}...")

        result = await self.generate_with_retry(prompt, scene.duration or self.config.default_duration)

        if scene.id:
            self.cache_video(result, scene.id)

        return result

    def optimize_prompt(self, scene: SceneDescription) -> str:
        """Fold instruction and narration into the prompt"""
        optimized = scene.video_prompt

        if scene.video_instruction:
            optimized = f"{scene.video_instruction}. {optimized}"

        if scene.narration_text:
            optimized = f"{optimized}. Narration: {scene.narration_text}"

        if 'cinematic' not in optimized.lower():
            optimized = f"{optimized}, cinematic quality"

        return optimized

    async def generate_with_retry(self, prompt: str, duration: int) -> VideoResult:
        """Attempt generation up to max_retries + 1 times with exponential backoff"""
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_retries + 1):
            try:
                if attempt > 0:
                    delay = self.config.retry_delay * (2 ** (attempt - 1))
                    logger.info(f"Retry attempt {attempt}/{self.config.max_retries} after {delay:.2f}s")
                    await asyncio.sleep(delay)

                return await self._generate_video_api(prompt, duration, attempt)

            except Exception as e:
                last_error = classify_error(e)
                logger.warning(f"Video attempt {attempt + 1} failed: {last_error}")

                if is_non_retryable_error(last_error):
                    logger.error(f"Non-retryable error, stopping retries: {last_error}")
                    break

        logger.error(f"All video attempts failed: {last_error}")
        return self.get_placeholder_video(prompt, last_error)

    def build_request(self, prompt: str, duration: int, attempt: int) -> Dict[str, Any]:
        """Minimal request, then one with temperature, then minimal again"""
        request: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "video_config": {
                "duration_seconds": duration,
                "aspect_ratio": self.config.aspect_ratio,
            },
        }
        if attempt == 1:
            request["generation_config"] = {"temperature": self.config.temperature}
        return request

    async def _generate_video_api(self, prompt: str, duration: int, attempt: int) -> VideoResult:
        if self.use_placeholder:
            logger.info("Using placeholder video (no video model configured)")
            return self._placeholder_result(prompt, error=None)

        response = await self.video_capability.invoke(self.build_request(prompt, duration, attempt))

        video_url = extract_video_url(response)
        if not video_url:
            raise VideoGenerationError("Video URL not found in API response")

        logger.info(f"Video generated on attempt {attempt + 1}")
        return VideoResult(
            video_url=video_url,
            has_audio=True,
            duration=duration,
            prompt=prompt,
            is_placeholder=False,
            generated_at=datetime.now(),
        )

    def get_placeholder_video(self, prompt: str, error: Optional[Exception] = None) -> VideoResult:
        """Stand-in result returned when generation gives up"""
        return self._placeholder_result(prompt, str(error) if error else 'Using placeholder video')

    def _placeholder_result(self, prompt: str, error: Optional[str]) -> VideoResult:
        return VideoResult(
            video_url=self.config.placeholder_url,
            has_audio=True,
            duration=8,
            prompt=prompt,
            is_placeholder=True,
            generated_at=datetime.now(),
            error=error,
        )

    def cache_video(self, result: VideoResult, scene_id: str):
        self._cache[scene_id] = result
        logger.debug(f"Cached video for scene: {scene_id} (cache size: {len(self._cache)})")

    def get_cached_video(self, scene_id: str) -> Optional[VideoResult]:
        return self._cache.get(scene_id)

    def clear_cache(self):
        """Clear the video cache"""
        cleared_count = len(self._cache)
        self._cache.clear()
        logger.info(f"Cleared video cache ({cleared_count} entries removed)")

    def get_cache_stats(self) -> Dict[str, Any]:
        return {"size": len(self._cache), "entries": list(self._cache.keys())}
