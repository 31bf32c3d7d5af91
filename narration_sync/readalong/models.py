"""
Timing Data Model

Segments, provider character timing, word timings and the final
timeline handed to the playback UI. Supports JSON export for the web
reader's word highlighting.
"""

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from narration_sync.utils import logger


@dataclass(frozen=True)
class TextSegment:
    """A provider-sized slice of the original text."""

    text: str  # Exact slice of the original text, whitespace included
    start_offset: int  # Offset of the slice in the original text
    end_offset: int  # Exclusive end offset
    ordinal: int  # Position in the segment list

    @property
    def speech_text(self) -> str:
        """The slice without surrounding whitespace, as sent to providers."""
        return self.text.strip()

    @property
    def speech_offset(self) -> int:
        """Absolute offset of speech_text in the original text."""
        return self.start_offset + (len(self.text) - len(self.text.lstrip()))


@dataclass(frozen=True)
class CharTiming:
    """One character of a provider's text representation."""

    char: str
    start_ms: float
    duration_ms: float


@dataclass
class CharAlignment:
    """Parallel character timing arrays in the provider's own text."""

    chars: List[str] = field(default_factory=list)
    start_ms: List[float] = field(default_factory=list)
    duration_ms: List[float] = field(default_factory=list)

    def __post_init__(self):
        # Providers occasionally send ragged arrays; keep the common prefix
        size = min(len(self.chars), len(self.start_ms), len(self.duration_ms))
        self.chars = list(self.chars[:size])
        self.start_ms = [float(v) for v in self.start_ms[:size]]
        self.duration_ms = [float(v) for v in self.duration_ms[:size]]

    def __len__(self) -> int:
        return len(self.chars)

    def __iter__(self) -> Iterator[CharTiming]:
        for char, start, duration in zip(self.chars, self.start_ms, self.duration_ms):
            yield CharTiming(char, start, duration)

    @property
    def text(self) -> str:
        return "".join(self.chars)

    @property
    def is_empty(self) -> bool:
        return len(self.chars) == 0

    @property
    def end_ms(self) -> float:
        """End of the last valid character, in milliseconds."""
        ends = [
            s + d
            for s, d in zip(self.start_ms, self.duration_ms)
            if math.isfinite(s) and math.isfinite(d)
        ]
        return max(ends) if ends else 0.0

    @classmethod
    def from_entries(cls, entries: Sequence[CharTiming]) -> "CharAlignment":
        return cls(
            chars=[e.char for e in entries],
            start_ms=[e.start_ms for e in entries],
            duration_ms=[e.duration_ms for e in entries],
        )


@dataclass
class RawChunkResult:
    """Synthesis output for one segment."""

    segment: TextSegment
    audio_bytes: bytes = b""
    char_alignment: Optional[CharAlignment] = None
    provider: str = ""
    audio_format: str = "mp3"
    speech_text: str = ""  # Exact text sent to the provider (pause markers included)
    failed: bool = False
    error: Optional[str] = None

    @property
    def has_alignment(self) -> bool:
        return self.char_alignment is not None and not self.char_alignment.is_empty


@dataclass(frozen=True)
class WordTiming:
    """Start/end of one word of the original text."""

    word: str
    start_sec: float
    end_sec: float
    source_char_start: int  # Offset into the original text
    source_char_end: int  # Exclusive end offset
    is_synthetic: bool = False  # Produced by the fallback generator
    is_interpolated: bool = False  # Estimated from neighbours, not measured

    @property
    def is_matched(self) -> bool:
        return not self.is_synthetic and not self.is_interpolated

    @property
    def duration(self) -> float:
        return self.end_sec - self.start_sec

    def shifted(self, seconds: float) -> "WordTiming":
        """Return a copy moved later by ``seconds``."""
        return WordTiming(
            word=self.word,
            start_sec=self.start_sec + seconds,
            end_sec=self.end_sec + seconds,
            source_char_start=self.source_char_start,
            source_char_end=self.source_char_end,
            is_synthetic=self.is_synthetic,
            is_interpolated=self.is_interpolated,
        )

    def with_times(self, start_sec: float, end_sec: float) -> "WordTiming":
        return WordTiming(
            word=self.word,
            start_sec=start_sec,
            end_sec=end_sec,
            source_char_start=self.source_char_start,
            source_char_end=self.source_char_end,
            is_synthetic=self.is_synthetic,
            is_interpolated=self.is_interpolated,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON export."""
        return {
            "word": self.word,
            "start": round(self.start_sec, 3),
            "end": round(self.end_sec, 3),
        }


@dataclass(frozen=True)
class AlignmentResult:
    """Index maps between two aligned token sequences; None marks a gap."""

    map_a_to_b: Tuple[Optional[int], ...]
    map_b_to_a: Tuple[Optional[int], ...]
    score: float

    @property
    def matched_pairs(self) -> List[Tuple[int, int]]:
        return [(i, j) for i, j in enumerate(self.map_a_to_b) if j is not None]


class Accuracy(str, Enum):
    """Coarse quality label of a timeline."""

    PERFECT = "perfect"
    GOOD = "good"
    FALLBACK = "fallback"


def classify_accuracy(
    matched: int,
    total: int,
    perfect_threshold: float = 0.9,
    good_threshold: float = 0.7,
) -> Accuracy:
    """
    Classify a timeline from the share of directly matched words.

    A timeline is perfect only when it is strictly above the perfect
    threshold (or fully matched). An inclusive ``>= 0.9`` would rate a
    ten-word passage with one word missing from the transcription as
    perfect, but that passage must rate as good, so the comparison is
    strict and 9/10 falls through to the good band.
    """
    if total <= 0:
        return Accuracy.FALLBACK
    ratio = matched / total
    if ratio == 1.0 or ratio > perfect_threshold:
        return Accuracy.PERFECT
    if ratio >= good_threshold:
        return Accuracy.GOOD
    return Accuracy.FALLBACK


@dataclass(frozen=True)
class Timeline:
    """Final ordered word timestamps covering the full narration."""

    words: Tuple[WordTiming, ...]
    total_duration_sec: float
    accuracy: Accuracy

    @property
    def matched_count(self) -> int:
        return sum(1 for w in self.words if w.is_matched)

    @property
    def matched_ratio(self) -> float:
        return self.matched_count / len(self.words) if self.words else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON export."""
        return {
            "words": [w.to_dict() for w in self.words],
            "totalDuration": round(self.total_duration_sec, 3),
            "accuracy": self.accuracy.value,
        }

    def save(self, output_path: Path) -> Path:
        """Save the timeline to a JSON file."""
        output_path = Path(output_path)
        if output_path.suffix != ".json":
            output_path = output_path.with_suffix(".json")
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

        logger.success(f"Saved timing map: {output_path}")
        return output_path

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Timeline":
        """
        Load a timeline from its exported form.

        Character offsets are not part of the export, so they are
        recomputed by assuming words were separated by single spaces.
        """
        words = []
        cursor = 0
        for entry in data.get("words", []):
            text = entry.get("word") or entry.get("text", "")
            words.append(WordTiming(
                word=text,
                start_sec=float(entry["start"]),
                end_sec=float(entry["end"]),
                source_char_start=cursor,
                source_char_end=cursor + len(text),
            ))
            cursor += len(text) + 1

        return cls(
            words=tuple(words),
            total_duration_sec=float(data.get("totalDuration", 0.0)),
            accuracy=Accuracy(data.get("accuracy", Accuracy.FALLBACK.value)),
        )


@dataclass
class VoiceConfig:
    """Voice selection supplied by the chapter service."""

    provider: Optional[str] = None  # None means the configured primary chain
    voice_id: Optional[str] = None
    rate: float = 1.0
    language: str = "es"
    model_id: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)


class PipelineState(str, Enum):
    """States of a narration request."""

    CHUNKING = "chunking"
    SYNTHESIZING = "synthesizing"
    ALIGNING = "aligning"
    DEGRADED = "degraded"
    FALLBACK = "fallback"
    MERGING = "merging"
    NORMALIZING = "normalizing"
    DONE = "done"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class NarrationResult:
    """Audio artifact plus its word timeline."""

    audio_bytes: bytes
    audio_format: str
    timeline: Timeline
    state_history: List[PipelineState] = field(default_factory=list)
    failed_segments: List[int] = field(default_factory=list)

    @property
    def accuracy(self) -> Accuracy:
        return self.timeline.accuracy
