"""
Capability interfaces the episode pipeline depends on.
Gemini adapters implement these; tests supply scripted doubles.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


class TextCapability(ABC):
    """Send a prompt, get raw text back. No guarantee the text is valid JSON."""

    @abstractmethod
    async def invoke(self, prompt: str) -> str:
        """Generate text for the prompt."""
        pass


class VideoCapability(ABC):
    """Video generation. The response exposes zero or more candidates whose
    parts may carry a video URI, a file URI or plain text."""

    @abstractmethod
    async def invoke(self, request: Dict[str, Any]) -> Any:
        """Generate a video for the structured request."""
        pass


@dataclass(frozen=True)
class FilterResult:
    """Outcome of a content filter check"""
    passed: bool
    reason: Optional[str] = None


ContentFilter = Callable[[str], FilterResult]


class InputValidationError(Exception):
    """Raised when a required input field is missing.

    Story and video generators raise their own subclasses.
    """
    pass
