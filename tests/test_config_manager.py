"""
Tests for configuration loading and validation.
"""

import json

import pytest

from config_manager import (
    PLACEHOLDER_VIDEO_URL,
    ApiConfig,
    AppConfig,
    ConfigManager,
    EpisodeConfig,
    VideoConfig,
)


@pytest.fixture
def manager():
    config_manager = ConfigManager()
    config_manager.clear_cache()
    yield config_manager
    config_manager.clear_cache()


class TestConfigDataclasses:

    def test_defaults(self):
        config = AppConfig()
        assert config.api.text_model == "gemini-2.0-flash-exp"
        assert config.api.video_model == "veo-003"
        assert config.api.coordinator_model == "gemini-1.5-pro"
        assert config.story.choices_per_scene == 4
        assert config.video.max_retries == 2
        assert config.video.placeholder_url == PLACEHOLDER_VIDEO_URL
        assert config.episode.max_segments == 7
        assert config.episode.min_segments == 3
        assert config.episode.max_prompt_length == 300

    def test_invalid_temperature(self):
        with pytest.raises(ValueError, match="temperature"):
            ApiConfig(temperature=3.0)

    def test_negative_retries(self):
        with pytest.raises(ValueError, match="max_retries"):
            VideoConfig(max_retries=-1)

    def test_retry_delay_in_milliseconds_rejected(self):
        with pytest.raises(ValueError, match="retry_delay is in seconds"):
            VideoConfig(retry_delay=1000)

    def test_retry_delay_upper_bound_accepted(self):
        assert VideoConfig(retry_delay=60.0).retry_delay == 60.0

    def test_min_above_max(self):
        with pytest.raises(ValueError, match="Segment range invalid"):
            EpisodeConfig(max_segments=2, min_segments=3)


class TestConfigManager:

    def test_singleton(self):
        assert ConfigManager() is ConfigManager()

    def test_missing_file_uses_defaults(self, manager, tmp_path):
        config = manager.load_config(tmp_path / "missing.json")
        assert config.episode.max_segments == 7
        assert config.ui.show_progress is True

    def test_partial_file_is_merged(self, manager, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "episode": {"max_segments": 4, "min_segments": 2},
            "video": {"max_retries": 0}
        }))

        config = manager.load_config(path)

        assert config.episode.max_segments == 4
        assert config.episode.min_segments == 2
        assert config.episode.enhance_prompts is True
        assert config.video.max_retries == 0
        assert config.video.aspect_ratio == "16:9"
        assert manager.get_config() is config

    def test_invalid_json_uses_defaults(self, manager, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        config = manager.load_config(path)

        assert config.api.temperature == 0.8

    def test_invalid_values_fall_back_to_defaults(self, manager, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"episode": {"min_segments": 9, "max_segments": 2}}))

        config = manager.load_config(path)

        assert config.episode.max_segments == 7
        assert config.episode.min_segments == 3

    def test_cached_until_file_changes(self, manager, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"story": {"choices_per_scene": 4}}))

        assert manager.load_config(path) is manager.load_config(path)

    def test_deep_merge(self, manager):
        merged = manager._deep_merge_config(
            {"a": {"b": 1, "c": 2}, "d": 3},
            {"a": {"c": 5}, "e": 6}
        )
        assert merged == {"a": {"b": 1, "c": 5}, "d": 3, "e": 6}

    def test_validate_config(self, manager):
        errors = manager.validate_config({
            "api": {"temperature": 5.0},
            "episode": {"max_segments": 2, "min_segments": 3},
            "video": {"unknown_field": True},
        })

        assert len(errors) == 3
        assert errors[0].startswith("api config error")
        assert errors[1].startswith("video config error")
        assert errors[2].startswith("episode config error")

    def test_validate_defaults_clean(self, manager):
        assert manager.validate_config(manager._get_default_config()) == []
