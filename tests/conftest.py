"""
Shared fixtures for the Episode Studio tests.
"""

import pytest

from config_manager import EpisodeConfig, VideoConfig
from data_models import Character, EpisodeRequest, StoryContext


@pytest.fixture
def morgan():
    return Character(name="Morgan", gender="male", description="night shift worker")


@pytest.fixture
def gas_station_context(morgan):
    return StoryContext(setting="Gas station", character=morgan, themes=["Mystery"])


@pytest.fixture
def episode_request():
    return EpisodeRequest(
        name="Alex",
        gender="non-binary",
        description="night shift worker",
        setting="Gas station",
        themes=["Mystery", "Suspense"]
    )


@pytest.fixture
def fast_video_config():
    return VideoConfig(max_retries=2, retry_delay=0.0)


@pytest.fixture
def small_episode_config():
    return EpisodeConfig(max_segments=4, min_segments=2)
