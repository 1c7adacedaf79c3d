"""
Configuration manager for the Episode Studio.
Provides validation, caching, and type-safe configuration handling.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union, List
from dataclasses import dataclass, field
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)

PLACEHOLDER_VIDEO_URL = "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4"
MAX_RETRY_DELAY_SECONDS = 60.0


@dataclass
class ApiConfig:
    """Gemini model configuration with validation"""
    text_model: str = "gemini-2.0-flash-exp"
    video_model: str = "veo-003"
    coordinator_model: str = "gemini-1.5-pro"
    temperature: float = 0.8
    coordinator_temperature: float = 0.7
    max_tokens: int = 4000
    timeout: int = 300

    def __post_init__(self):
        """Validate configuration values"""
        for name in ("temperature", "coordinator_temperature"):
            value = getattr(self, name)
            if not 0.0 <= value <= 2.0:
                raise ValueError(f"{name} must be between 0.0 and 2.0, got {value}")
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.timeout < 1:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


@dataclass
class StoryConfig:
    """Segment generation configuration"""
    choices_per_scene: int = 4
    narration_length: str = "100-150 words"

    def __post_init__(self):
        if self.choices_per_scene < 1:
            raise ValueError(f"choices_per_scene must be positive, got {self.choices_per_scene}")


@dataclass
class VideoConfig:
    """Video generation and retry configuration.

    ``retry_delay`` is the base backoff in seconds, doubled on every retry.
    """
    default_duration: int = 8
    max_retries: int = 2
    retry_delay: float = 1.0  # seconds
    temperature: float = 0.7
    aspect_ratio: str = "16:9"
    placeholder_url: str = PLACEHOLDER_VIDEO_URL

    def __post_init__(self):
        """Validate video configuration"""
        if self.default_duration < 1:
            raise ValueError(f"default_duration must be positive, got {self.default_duration}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries cannot be negative, got {self.max_retries}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay cannot be negative, got {self.retry_delay}")
        if self.retry_delay > MAX_RETRY_DELAY_SECONDS:
            raise ValueError(
                f"retry_delay is in seconds and must be at most {MAX_RETRY_DELAY_SECONDS}, "
                f"got {self.retry_delay}"
            )
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"Temperature must be between 0.0 and 2.0, got {self.temperature}")


@dataclass
class EpisodeConfig:
    """Episode orchestration configuration"""
    max_segments: int = 7
    min_segments: int = 3
    enhance_prompts: bool = True
    track_coherence: bool = True
    segment_duration: int = 8
    max_prompt_length: int = 300

    def __post_init__(self):
        """Validate segment bounds"""
        if self.max_segments < 1:
            raise ValueError(f"max_segments must be positive, got {self.max_segments}")
        if self.min_segments < 0:
            raise ValueError(f"min_segments cannot be negative, got {self.min_segments}")
        if self.min_segments > self.max_segments:
            raise ValueError(
                f"Segment range invalid: min={self.min_segments}, max={self.max_segments}"
            )
        if self.max_prompt_length < 4:
            raise ValueError(f"max_prompt_length too small, got {self.max_prompt_length}")


@dataclass
class UIConfig:
    """UI configuration"""
    show_progress: bool = True
    verbose_logging: bool = False


@dataclass
class AppConfig:
    """Complete application configuration"""
    api: ApiConfig = field(default_factory=ApiConfig)
    story: StoryConfig = field(default_factory=StoryConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    episode: EpisodeConfig = field(default_factory=EpisodeConfig)
    ui: UIConfig = field(default_factory=UIConfig)


_SECTIONS = {
    "api": ApiConfig,
    "story": StoryConfig,
    "video": VideoConfig,
    "episode": EpisodeConfig,
    "ui": UIConfig,
}


class ConfigManager:
    """Configuration manager with caching and validation"""

    _instance: Optional['ConfigManager'] = None
    _config_cache: Dict[str, AppConfig] = {}

    def __new__(cls) -> 'ConfigManager':
        """Singleton pattern for global configuration access"""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, '_initialized'):
            return
        self._initialized = True
        self._config_path: Optional[Path] = None
        self._config: Optional[AppConfig] = None

    @lru_cache(maxsize=32)
    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration as dictionary with caching"""
        return {
            "api": {
                "text_model": "gemini-2.0-flash-exp",
                "video_model": "veo-003",
                "coordinator_model": "gemini-1.5-pro",
                "temperature": 0.8,
                "coordinator_temperature": 0.7,
                "max_tokens": 4000,
                "timeout": 300
            },
            "story": {
                "choices_per_scene": 4,
                "narration_length": "100-150 words"
            },
            "video": {
                "default_duration": 8,
                "max_retries": 2,
                "retry_delay": 1.0,
                "temperature": 0.7,
                "aspect_ratio": "16:9",
                "placeholder_url": PLACEHOLDER_VIDEO_URL
            },
            "episode": {
                "max_segments": 7,
                "min_segments": 3,
                "enhance_prompts": True,
                "track_coherence": True,
                "segment_duration": 8,
                "max_prompt_length": 300
            },
            "ui": {
                "show_progress": True,
                "verbose_logging": False
            }
        }

    def load_config(self, config_path: Union[str, Path] = "config.json") -> AppConfig:
        """Load configuration from file with validation and caching"""
        config_path = Path(config_path)

        cache_key = str(config_path.absolute())
        if cache_key in self._config_cache:
            cached_time = getattr(self._config_cache[cache_key], '_load_time', 0)
            if not config_path.exists() or config_path.stat().st_mtime <= cached_time:
                return self._config_cache[cache_key]

        config_dict = json.loads(json.dumps(self._get_default_config()))

        if config_path.exists():
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    user_config = json.load(f)

                config_dict = self._deep_merge_config(config_dict, user_config)
                logger.info(f"Loaded configuration from {config_path}")

            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON in {config_path}: {e}. Using defaults.")
            except IOError as e:
                logger.warning(f"Error reading {config_path}: {e}. Using defaults.")
        else:
            logger.info(f"Config file {config_path} not found, using defaults.")

        try:
            config = AppConfig(**{
                name: section(**config_dict[name]) for name, section in _SECTIONS.items()
            })
            config._load_time = config_path.stat().st_mtime if config_path.exists() else 0

            self._config_cache[cache_key] = config
            self._config_path = config_path
            self._config = config
            return config

        except (ValueError, TypeError) as e:
            logger.error(f"Configuration validation error: {e}")
            config = AppConfig()
            config._load_time = 0
            return config

    def _deep_merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge user configuration with defaults"""
        result = default.copy()

        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> AppConfig:
        """Get current configuration, loading if necessary"""
        if self._config is None:
            return self.load_config()
        return self._config

    def validate_config(self, config_dict: Dict[str, Any]) -> List[str]:
        """Validate configuration dictionary and return list of errors"""
        errors = []

        for name, section in _SECTIONS.items():
            try:
                section(**config_dict.get(name, {}))
            except (ValueError, TypeError) as e:
                errors.append(f"{name} config error: {e}")

        return errors

    def clear_cache(self) -> None:
        """Clear configuration cache"""
        self._config_cache.clear()
        self._config = None
        self._get_default_config.cache_clear()


# Global configuration manager instance
config_manager = ConfigManager()


def get_config(config_path: Union[str, Path] = "config.json") -> AppConfig:
    """Convenience function to get configuration"""
    return config_manager.load_config(config_path)
