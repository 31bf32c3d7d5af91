"""
Engine settings.

The alignment thresholds, gap penalty and pause lengths are empirically
tuned values; they live here so they can be re-tuned against real
provider output without touching the algorithms.
"""

from dataclasses import dataclass
from typing import Optional

from narration_sync.utils.config import Config, config as default_config


TRANSCRIPTION_MODES = ("off", "missing", "always")
CHUNK_FAILURE_POLICIES = ("fallback", "abort")


@dataclass(frozen=True)
class EngineSettings:
    """Immutable per-request engine settings."""

    # Providers
    primary_provider: str = "elevenlabs"
    secondary_provider: Optional[str] = "edge"

    # Chunking
    max_chunk_size: int = 4500
    chunk_unit: str = "chars"

    # Alignment
    lookahead_window: int = 5
    similarity_high: float = 0.7
    similarity_low: float = 0.4
    gap_penalty: float = 1.2

    # Timing
    inter_chunk_pause: float = 0.5
    min_word_duration: float = 0.05

    # Retry
    max_attempts: int = 3
    base_delay: float = 1.0
    call_timeout: float = 600.0

    # Transcription
    transcription_mode: str = "missing"
    transcription_model: str = "whisper-1"

    # Fallback and classification
    fallback_words_per_second: float = 2.0
    perfect_threshold: float = 0.9
    good_threshold: float = 0.7

    # Processing
    workers: int = 2
    on_chunk_failure: str = "fallback"
    learner_pauses: bool = False
    sample_rate: int = 24000

    def __post_init__(self):
        if self.transcription_mode not in TRANSCRIPTION_MODES:
            raise ValueError(
                f"transcription mode must be one of {TRANSCRIPTION_MODES}, "
                f"got '{self.transcription_mode}'"
            )
        if self.on_chunk_failure not in CHUNK_FAILURE_POLICIES:
            raise ValueError(
                f"on_chunk_failure must be one of {CHUNK_FAILURE_POLICIES}, "
                f"got '{self.on_chunk_failure}'"
            )
        if self.chunk_unit not in ("chars", "bytes"):
            raise ValueError(f"chunk unit must be 'chars' or 'bytes', got '{self.chunk_unit}'")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> "EngineSettings":
        """Build settings from the YAML-backed configuration."""
        cfg = cfg or default_config
        # YAML reads a bare `off` as False
        mode = cfg.get("transcription", "mode", default="missing")
        if mode is False:
            mode = "off"
        return cls(
            primary_provider=cfg.primary_provider,
            secondary_provider=cfg.secondary_provider,
            max_chunk_size=int(cfg.get("chunking", "max_size", default=4500)),
            chunk_unit=cfg.get("chunking", "unit", default="chars"),
            lookahead_window=int(cfg.get("alignment", "lookahead_window", default=5)),
            similarity_high=float(cfg.get("alignment", "similarity_high", default=0.7)),
            similarity_low=float(cfg.get("alignment", "similarity_low", default=0.4)),
            gap_penalty=float(cfg.get("alignment", "gap_penalty", default=1.2)),
            inter_chunk_pause=float(cfg.get("timing", "inter_chunk_pause", default=0.5)),
            min_word_duration=float(cfg.get("timing", "min_word_duration", default=0.05)),
            max_attempts=int(cfg.get("retry", "max_attempts", default=3)),
            base_delay=float(cfg.get("retry", "base_delay", default=1.0)),
            call_timeout=float(cfg.get("retry", "timeout", default=600.0)),
            transcription_mode=mode,
            transcription_model=cfg.get("transcription", "model", default="whisper-1"),
            fallback_words_per_second=float(
                cfg.get("fallback", "words_per_second", default=2.0)
            ),
            perfect_threshold=float(cfg.get("accuracy", "perfect", default=0.9)),
            good_threshold=float(cfg.get("accuracy", "good", default=0.7)),
            workers=int(cfg.get("processing", "workers", default=2)),
            on_chunk_failure=cfg.get("processing", "on_chunk_failure", default="fallback"),
            learner_pauses=bool(cfg.get("pacing", "learner_pauses", default=False)),
            sample_rate=cfg.sample_rate,
        )
