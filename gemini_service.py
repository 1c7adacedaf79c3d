"""
Adapters exposing Google Gemini models as text and video capabilities.
"""

import asyncio
import time
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field

import google.generativeai as genai

from capabilities import TextCapability, VideoCapability

logger = logging.getLogger(__name__)


@dataclass
class GenerationResponse:
    """Response object for content generation"""
    content: str
    tokens_used: int = 0
    generation_time: float = 0.0
    model_used: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class GeminiServiceError(Exception):
    """Base exception for Gemini service errors"""
    pass


class _GeminiModel:
    """Shared SDK setup and executor plumbing"""

    def __init__(self, api_key: str, model_name: str, timeout: int = 300):
        self.model_name = model_name
        self._timeout = timeout
        self._stats = {
            "total_requests": 0,
            "errors": 0,
            "total_generation_time": 0.0
        }

        try:
            genai.configure(api_key=api_key)
            self.model = genai.GenerativeModel(model_name)
            logger.info(f"Initialized Gemini model: {model_name}")
        except Exception as e:
            raise GeminiServiceError(f"Failed to initialize Gemini API: {e}") from e

    async def _run(self, func, *args):
        """Run a blocking SDK call in the default executor with a timeout"""
        self._stats["total_requests"] += 1
        start_time = time.time()
        loop = asyncio.get_running_loop()

        try:
            result = await asyncio.wait_for(
                loop.run_in_executor(None, func, *args),
                timeout=self._timeout
            )
        except asyncio.TimeoutError:
            self._stats["errors"] += 1
            raise GeminiServiceError(f"Request timed out after {self._timeout} seconds")
        except GeminiServiceError:
            self._stats["errors"] += 1
            raise
        except Exception as e:
            self._stats["errors"] += 1
            raise GeminiServiceError(str(e)) from e

        self._stats["total_generation_time"] += time.time() - start_time
        return result

    def get_statistics(self) -> Dict[str, Any]:
        """Get service statistics"""
        total = self._stats["total_requests"]
        return {
            **self._stats,
            "model": self.model_name,
            "average_generation_time": self._stats["total_generation_time"] / total if total else 0,
            "error_rate": self._stats["errors"] / total if total else 0
        }


class GeminiService(_GeminiModel, TextCapability):
    """Gemini text model used for segment text and coordination prompts"""

    def __init__(self, api_key: str, model_name: str, temperature: float = 0.7,
                 max_tokens: int = 4000, timeout: int = 300):
        super().__init__(api_key, model_name, timeout)
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate_content(self, prompt: str, temperature: Optional[float] = None) -> GenerationResponse:
        """Generate text for a prompt"""
        start_time = time.time()
        content = await self._run(
            self._sync_generate_content,
            prompt,
            temperature if temperature is not None else self.temperature
        )
        generation_time = time.time() - start_time

        logger.debug(f"Generated {len(content)} characters in {generation_time:.2f}s")
        return GenerationResponse(
            content=content,
            tokens_used=int(len(content.split()) * 1.3),  # Rough estimation
            generation_time=generation_time,
            model_used=self.model_name
        )

    async def invoke(self, prompt: str) -> str:
        response = await self.generate_content(prompt)
        return response.content

    def _sync_generate_content(self, prompt: str, temperature: float) -> str:
        generation_config = genai.types.GenerationConfig(
            max_output_tokens=self.max_tokens,
            temperature=temperature
        )

        response = self.model.generate_content(prompt, generation_config=generation_config)

        if not response or not response.parts:
            raise GeminiServiceError("API returned empty response")

        return response.text


class GeminiVideoService(_GeminiModel, VideoCapability):
    """Gemini video model; returns the raw SDK response for URL extraction"""

    async def invoke(self, request: Dict[str, Any]) -> Any:
        return await self._run(self._sync_generate_video, request)

    def _sync_generate_video(self, request: Dict[str, Any]) -> Any:
        contents = request["contents"]
        video_config = request.get("video_config")
        if video_config:
            settings = (
                f"Duration: {video_config['duration_seconds']} seconds. "
                f"Aspect ratio: {video_config['aspect_ratio']}."
            )
            contents = contents + [{"role": "user", "parts": [{"text": settings}]}]

        generation_config = request.get("generation_config")
        if generation_config:
            return self.model.generate_content(contents, generation_config=generation_config)
        return self.model.generate_content(contents)
