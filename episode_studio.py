#!/usr/bin/env python3
"""
Episode Studio command line entry point.
Generates a complete interactive story episode with Gemini text, video and
coordinator models.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from config_manager import AppConfig, EpisodeConfig, config_manager
from content_filter import check_content_filter
from data_models import Episode, EpisodeRequest, EpisodeSegment
from episode_manager import EpisodeManager
from gemini_service import GeminiService, GeminiVideoService
from story_generator import StoryGenerator
from video_generator import VideoGenerator

logger = logging.getLogger(__name__)


class EpisodeStudioError(Exception):
    """Base exception for episode studio errors"""
    pass


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('episode_studio.log'),
            logging.StreamHandler()
        ]
    )


class EpisodeStudio:
    """Wires Gemini services into an episode manager and runs episodes"""

    def __init__(self, api_key: Optional[str] = None, config_path: Union[str, Path] = "config.json"):
        load_dotenv()

        self.console = Console()
        self.config = self._load_config(config_path)
        self.api_key = self._get_api_key(api_key)

        api = self.config.api
        self.text_service = GeminiService(
            self.api_key, api.text_model, api.temperature, api.max_tokens, api.timeout
        )
        self.coordinator_service = GeminiService(
            self.api_key, api.coordinator_model, api.coordinator_temperature, api.max_tokens, api.timeout
        )
        self.video_service = GeminiVideoService(self.api_key, api.video_model, api.timeout)

        self.story_generator = StoryGenerator(
            self.text_service, check_content_filter, self.config.story
        )
        self.video_generator = VideoGenerator(self.video_service, self.config.video)
        self.episode_manager = EpisodeManager(
            self.coordinator_service, self.story_generator, self.video_generator, self.config.episode
        )
        self.episode_manager.add_segment_complete_callback(self._on_segment_complete)

        logger.info("EpisodeStudio initialized successfully")

    def _load_config(self, config_path: Union[str, Path]) -> AppConfig:
        try:
            config = config_manager.load_config(config_path)
            logger.info(f"Configuration loaded from {config_path}")
            return config
        except Exception as e:
            self.console.print(f"[red]Error loading configuration: {e}[/red]")
            raise EpisodeStudioError(f"Configuration error: {e}") from e

    def _get_api_key(self, provided_key: Optional[str]) -> str:
        api_key = provided_key or os.getenv('GEMINI_API_KEY')

        if not api_key:
            api_key = self.console.input("[yellow]Enter your Google Gemini API key: [/yellow]")

        if not api_key or not api_key.strip():
            raise EpisodeStudioError("API key is required but not provided")

        return api_key.strip()

    def _on_segment_complete(self, segment: EpisodeSegment):
        if self.config.ui.show_progress:
            video_state = "placeholder" if segment.video.is_placeholder else "generated"
            self.console.print(
                f"[green]✅ Segment {segment.index + 1} ({segment.type.value}) ready, video {video_state}[/green]"
            )

    def use_episode_config(self, episode_config: EpisodeConfig):
        """Swap in a new episode configuration for subsequent runs"""
        self.config = replace(self.config, episode=episode_config)
        self.episode_manager.config = episode_config
        logger.info(
            f"Episode configuration updated (min_segments={episode_config.min_segments}, "
            f"max_segments={episode_config.max_segments})"
        )

    def check_inputs(self, request: EpisodeRequest):
        """Filter the raw user inputs before any model is called"""
        text = f"{request.name} {request.description} {request.setting} {' '.join(request.themes)}"
        result = check_content_filter(text)
        if not result.passed:
            raise EpisodeStudioError(f"Input failed content filter: {result.reason}")

    async def run_episode(self, request: EpisodeRequest) -> Episode:
        self.check_inputs(request)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console
        ) as progress:
            progress.add_task(f"Generating episode for {request.name} at {request.setting}...", total=None)
            return await self.episode_manager.generate_episode(request)

    def display_episode(self, episode: Episode):
        table = Table(title=f"🎬 {episode.id}", show_header=True, header_style="bold blue")
        table.add_column("No.", style="dim", width=4)
        table.add_column("Type", style="cyan")
        table.add_column("Narration", style="green")
        table.add_column("Video", style="yellow")

        for segment in episode.segments:
            narration = segment.story.narration_text
            table.add_row(
                str(segment.index + 1),
                segment.type.value,
                narration[:80] + ("..." if len(narration) > 80 else ""),
                "placeholder" if segment.video.is_placeholder else segment.video.video_url
            )

        self.console.print(table)
        self.console.print(Panel(episode.summary or "", title="📝 Summary", border_style="green", expand=False))

    async def save_episode(self, episode: Episode, filename: Optional[Path] = None) -> Path:
        """Write the episode as JSON atomically"""
        if filename is None:
            filename = Path(f"episode_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json")

        temp_file = filename.with_suffix('.tmp')
        payload = episode.to_dict()

        def write_file():
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            temp_file.replace(filename)

        await asyncio.get_running_loop().run_in_executor(None, write_file)
        logger.info(f"Episode saved to {filename}")
        return filename


def parse_themes(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [theme.strip() for theme in value.split(',') if theme.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate an interactive story episode with Gemini",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --name Morgan --gender male --description "night shift worker" --setting "Gas station"
  %(prog)s ... --themes "Mystery,Suspense" --max-segments 4
  %(prog)s ... --config custom.json --output episode.json
        """
    )

    parser.add_argument("--name", required=True, help="Character name")
    parser.add_argument("--gender", required=True, help="Character gender")
    parser.add_argument("--description", required=True, help="Character description")
    parser.add_argument("--setting", required=True, help="Story setting")
    parser.add_argument("--themes", help="Comma separated themes, in priority order")
    parser.add_argument("--min-segments", type=int, help="Override minimum segment count")
    parser.add_argument("--max-segments", type=int, help="Override maximum segment count")
    parser.add_argument("--no-enhance", action="store_true", help="Skip coordinator prompt enhancement")
    parser.add_argument("--no-coherence", action="store_true", help="Skip coherence checks")
    parser.add_argument("--config", "-c", default="config.json",
                        help="Path to configuration file (default: config.json)")
    parser.add_argument("--api-key", help="Google Gemini API key (or set GEMINI_API_KEY env var)")
    parser.add_argument("--output", "-o", help="Where to save the episode JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    return parser


def apply_overrides(config: AppConfig, args) -> AppConfig:
    """Return a copy of ``config`` with command line overrides applied.

    The episode section is rebuilt so its validation runs again; the loaded
    (and cached) configuration is left untouched.
    """
    changes = {}
    if args.max_segments is not None:
        changes["max_segments"] = args.max_segments
    if args.min_segments is not None:
        changes["min_segments"] = args.min_segments
    if args.no_enhance:
        changes["enhance_prompts"] = False
    if args.no_coherence:
        changes["track_coherence"] = False

    try:
        episode = replace(config.episode, **changes)
    except ValueError as e:
        raise EpisodeStudioError(f"Invalid episode options: {e}") from e

    return replace(config, episode=episode)


def main():
    console = Console()
    args = build_parser().parse_args()

    configure_logging(args.verbose)

    try:
        console.print("[bold blue]🎬 Episode Studio[/bold blue]\n")

        studio = EpisodeStudio(args.api_key, args.config)
        studio.use_episode_config(apply_overrides(studio.config, args).episode)

        request = EpisodeRequest(
            name=args.name,
            gender=args.gender,
            description=args.description,
            setting=args.setting,
            themes=parse_themes(args.themes)
        )

        async def run_async():
            episode = await studio.run_episode(request)
            studio.display_episode(episode)
            output = Path(args.output) if args.output else None
            saved = await studio.save_episode(episode, output)
            console.print(f"[green]📁 Episode saved: {saved}[/green]")

        asyncio.run(run_async())

    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️ Generation interrupted by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]❌ Episode generation failed: {e}[/red]")
        logger.exception("Fatal error in main")
        sys.exit(1)


if __name__ == "__main__":
    main()
