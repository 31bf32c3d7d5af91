"""
Read-Along Module

Narrates text through speech providers and produces word-level timing
that stays in sync with the merged audio.
"""

from narration_sync.readalong.errors import (
    ChunkSynthesisFailure,
    InvalidInput,
    JobFailed,
    NarrationCancelled,
    NarrationError,
)
from narration_sync.readalong.models import (
    Accuracy,
    NarrationResult,
    Timeline,
    VoiceConfig,
    WordTiming,
)
from narration_sync.readalong.orchestrator import NarrationPipeline, narrate
from narration_sync.readalong.retry import CancellationToken
from narration_sync.readalong.settings import EngineSettings
from narration_sync.readalong.text_chunker import chunk_text

__all__ = [
    "Accuracy",
    "CancellationToken",
    "ChunkSynthesisFailure",
    "EngineSettings",
    "InvalidInput",
    "JobFailed",
    "NarrationCancelled",
    "NarrationError",
    "NarrationPipeline",
    "NarrationResult",
    "Timeline",
    "VoiceConfig",
    "WordTiming",
    "chunk_text",
    "narrate",
]
