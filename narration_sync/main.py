#!/usr/bin/env python3
"""
Narration Sync - Main CLI

Narrates chapter text and writes the audio plus a word timing map for
read-along highlighting.

Features:
- Provider-sized chunking with seamless merging
- Character-level timing from the narration provider
- Transcription-based refinement when timing is missing
- Graceful fallback timing with an accuracy rating
"""

import dataclasses
import os
import sys
from pathlib import Path
from typing import Optional

import click

from narration_sync import __version__
from narration_sync.readalong.errors import NarrationError
from narration_sync.readalong.models import VoiceConfig
from narration_sync.readalong.orchestrator import NarrationPipeline
from narration_sync.readalong.pacing import add_pause_markers
from narration_sync.readalong.settings import EngineSettings
from narration_sync.readalong.synthesis import available_providers
from narration_sync.readalong.synthesis_edge import EDGE_VOICES
from narration_sync.readalong.synthesis_elevenlabs import ELEVENLABS_VOICES
from narration_sync.readalong.text_chunker import chunk_text
from narration_sync.utils import logger
from narration_sync.utils.config import config


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    Narration Sync

    Narrate text and time every word for read-along playback.
    """
    pass


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "-o", "--output",
    type=click.Path(file_okay=False),
    default="output",
    show_default=True,
    help="Output directory",
)
@click.option(
    "-p", "--provider",
    default=None,
    help=f"Narration provider (default: {config.primary_provider})",
)
@click.option(
    "-v", "--voice",
    default=None,
    help=f"Voice shortcut or provider voice ID (default: {config.voice})",
)
@click.option(
    "--language",
    default=None,
    help=f"Language hint (default: {config.language})",
)
@click.option(
    "--max-size",
    type=int,
    default=None,
    help="Maximum segment size sent to the provider",
)
@click.option(
    "--no-transcription",
    is_flag=True,
    help="Never refine timing with transcription",
)
@click.option(
    "--learner-pauses",
    is_flag=True,
    help="Insert pause markers for slow learner narration",
)
def narrate(
    input_file: str,
    output: str,
    provider: Optional[str],
    voice: Optional[str],
    language: Optional[str],
    max_size: Optional[int],
    no_transcription: bool,
    learner_pauses: bool,
):
    """
    Narrate a UTF-8 text file and write audio plus timing JSON.
    """
    input_path = Path(input_file)
    output_dir = Path(output)
    output_dir.mkdir(parents=True, exist_ok=True)

    logger.header(f"Narrating: {input_path.name}")

    text = input_path.read_text(encoding="utf-8")
    logger.info(f"Read {len(text):,} characters")

    overrides = {}
    if max_size:
        overrides["max_chunk_size"] = max_size
    if no_transcription:
        overrides["transcription_mode"] = "off"
    if learner_pauses:
        overrides["learner_pauses"] = True
    if provider:
        overrides["primary_provider"] = provider.lower()

    try:
        settings = EngineSettings.from_config()
        if overrides:
            settings = dataclasses.replace(settings, **overrides)
        transform = add_pause_markers if settings.learner_pauses else None
        segment_count = len(
            chunk_text(text, settings.max_chunk_size, settings.chunk_unit, transform=transform)
        )
    except (ValueError, NarrationError) as e:
        logger.error(str(e))
        sys.exit(1)

    voice_config = VoiceConfig(
        provider=provider,
        voice_id=voice or config.voice,
        rate=float(config.get("provider", "rate", default=1.0)),
        language=language or config.language,
        model_id=config.get("provider", "model_id"),
    )

    pipeline = NarrationPipeline(settings)
    with logger.create_progress() as progress:
        task = progress.add_task("Synthesizing segments", total=segment_count)
        try:
            result = pipeline.narrate(
                text,
                voice_config,
                on_chunk_done=lambda segment: progress.advance(task),
            )
        except NarrationError as e:
            logger.error(str(e))
            sys.exit(1)

    audio_path = output_dir / f"{input_path.stem}.{result.audio_format}"
    audio_path.write_bytes(result.audio_bytes)
    logger.success(f"Saved audio: {audio_path}")

    result.timeline.save(output_dir / f"{input_path.stem}.timing.json")

    if result.failed_segments:
        logger.warning(f"Segments with fallback audio: {result.failed_segments}")
    logger.info(f"Duration: {result.timeline.total_duration_sec:.1f} seconds")
    logger.info(f"Accuracy: {result.accuracy.value}")


@cli.command()
def voices():
    """
    List voice shortcuts for each provider.
    """
    logger.header("Available Voices")

    for name, voices_map in (("elevenlabs", ELEVENLABS_VOICES), ("edge", EDGE_VOICES)):
        logger.section(name)
        for shortcut, voice_id in voices_map.items():
            marker = "*" if shortcut == config.voice else " "
            logger.console.print(f"  {marker} {shortcut:<10} - {voice_id}")

    logger.console.print(f"\nCurrent default: {config.voice}")
    logger.console.print("For all Edge voices, run: edge-tts --list-voices")


@cli.command()
def info():
    """
    Show configuration and provider credentials status.
    """
    logger.header("Narration Sync")

    settings = EngineSettings.from_config()

    logger.section("Providers")
    logger.field("Primary", settings.primary_provider)
    logger.field("Secondary", settings.secondary_provider)
    logger.field("Registered", ", ".join(available_providers()))
    logger.field("Voice", config.voice)
    logger.field("Language", config.language)

    logger.section("Timing")
    logger.field("Max segment", f"{settings.max_chunk_size} {settings.chunk_unit}")
    logger.field("Chunk pause", f"{settings.inter_chunk_pause}s")
    logger.field("Transcription", settings.transcription_mode)
    logger.field("On failure", settings.on_chunk_failure)

    logger.section("Credentials")
    for key in ("ELEVENLABS_API_KEY", "OPENAI_API_KEY"):
        status = "[green]SET[/green]" if os.environ.get(key) else "[red]MISSING[/red]"
        logger.console.print(f"  {key:<20} {status}")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
