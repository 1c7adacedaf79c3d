"""
Tests for the Episode Studio command line wiring.
"""

import argparse
import json
from unittest.mock import patch

import pytest

from config_manager import AppConfig, ConfigManager, EpisodeConfig
from data_models import Character, Episode, EpisodeRequest, EpisodeStatus
from episode_manager import EpisodeManager
from episode_studio import (
    EpisodeStudio,
    EpisodeStudioError,
    apply_overrides,
    build_parser,
    parse_themes,
)


@pytest.fixture
def studio(tmp_path):
    ConfigManager().clear_cache()
    with patch("gemini_service.genai"):
        yield EpisodeStudio(api_key="test-key", config_path=tmp_path / "config.json")
    ConfigManager().clear_cache()


def overrides(**kwargs):
    values = dict(max_segments=None, min_segments=None, no_enhance=False, no_coherence=False)
    values.update(kwargs)
    return argparse.Namespace(**values)


class TestEpisodeStudio:

    def test_wiring(self, studio):
        assert studio.api_key == "test-key"
        assert isinstance(studio.episode_manager, EpisodeManager)
        assert studio.text_service.model_name == "gemini-2.0-flash-exp"
        assert studio.coordinator_service.model_name == "gemini-1.5-pro"
        assert studio.video_service.model_name == "veo-003"
        assert studio.story_generator.use_hardcoded_data is False
        assert studio.video_generator.use_placeholder is False

    def test_check_inputs_rejects_explicit_setting(self, studio):
        request = EpisodeRequest("Morgan", "male", "clerk", "nsfw club", ["Mystery"])
        with pytest.raises(EpisodeStudioError, match="content filter"):
            studio.check_inputs(request)

    def test_check_inputs_accepts_clean_request(self, studio):
        studio.check_inputs(EpisodeRequest("Morgan", "male", "night shift worker", "Gas station", ["Mystery"]))

    @pytest.mark.asyncio
    async def test_save_episode(self, studio, tmp_path):
        episode = Episode(
            id="episode-abc",
            character=Character("Morgan", "male", "night shift worker"),
            setting="Gas station",
            summary="A quiet night.",
            status=EpisodeStatus.COMPLETED,
        )
        target = tmp_path / "episode.json"

        saved = await studio.save_episode(episode, target)

        assert saved == target
        payload = json.loads(target.read_text(encoding="utf-8"))
        assert payload["id"] == "episode-abc"
        assert payload["status"] == "completed"
        assert not target.with_suffix(".tmp").exists()

    def test_use_episode_config(self, studio):
        loaded = studio.config
        episode_config = EpisodeConfig(max_segments=4, min_segments=2)

        studio.use_episode_config(episode_config)

        assert studio.episode_manager.config is episode_config
        assert studio.config.episode is episode_config
        assert loaded.episode.max_segments == 7

    def test_missing_api_key(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with patch("gemini_service.genai"), \
                patch("episode_studio.load_dotenv"), \
                patch("episode_studio.Console.input", return_value="  "):
            with pytest.raises(EpisodeStudioError, match="API key is required"):
                EpisodeStudio(config_path=tmp_path / "config.json")


class TestCommandLine:

    def test_parse_themes(self):
        assert parse_themes("Mystery, Suspense,,Horror ") == ["Mystery", "Suspense", "Horror"]
        assert parse_themes(None) == []

    def test_parser_requires_character(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--name", "Morgan"])

    def test_parser_flags(self):
        args = build_parser().parse_args([
            "--name", "Morgan", "--gender", "male", "--description", "clerk",
            "--setting", "Gas station", "--themes", "Mystery", "--max-segments", "4", "--no-enhance"
        ])
        assert args.max_segments == 4
        assert args.no_enhance is True
        assert args.config == "config.json"

    def test_apply_overrides(self):
        config = AppConfig()
        updated = apply_overrides(
            config, overrides(max_segments=4, min_segments=2, no_enhance=True, no_coherence=True)
        )

        assert updated.episode.max_segments == 4
        assert updated.episode.min_segments == 2
        assert updated.episode.enhance_prompts is False
        assert updated.episode.track_coherence is False

    def test_apply_overrides_leaves_loaded_config_untouched(self):
        config = AppConfig()
        apply_overrides(config, overrides(max_segments=4, min_segments=2, no_enhance=True))

        assert config.episode.max_segments == 7
        assert config.episode.min_segments == 3
        assert config.episode.enhance_prompts is True

    def test_apply_overrides_rejects_inverted_range(self):
        with pytest.raises(EpisodeStudioError, match="Segment range invalid"):
            apply_overrides(AppConfig(), overrides(max_segments=2))

    @pytest.mark.parametrize("argv", [
        ["--max-segments", "0", "--min-segments", "0"],
        ["--max-segments", "4", "--min-segments", "-1"],
    ])
    def test_apply_overrides_rejects_invalid_bounds(self, argv):
        args = build_parser().parse_args([
            "--name", "Morgan", "--gender", "male", "--description", "clerk",
            "--setting", "Gas station", *argv
        ])

        with pytest.raises(EpisodeStudioError, match="Invalid episode options"):
            apply_overrides(AppConfig(), args)
