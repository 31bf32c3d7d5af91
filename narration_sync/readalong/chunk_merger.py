"""
Chunk Merger

Stitches per-chunk audio and chunk-relative word timings into one
continuous narration. Each chunk's words are shifted by the running
offset; a fixed pause separates consecutive chunks in both the audio
and the timeline.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

from narration_sync.readalong.audio import join_audio, measure_duration
from narration_sync.readalong.errors import AudioDecodeError
from narration_sync.readalong.models import RawChunkResult, WordTiming
from narration_sync.utils import logger


@dataclass
class ChunkTiming:
    """One chunk ready for merging."""

    result: RawChunkResult
    words: List[WordTiming] = field(default_factory=list)
    duration_sec: float = 0.0


@dataclass
class MergedNarration:
    audio_bytes: bytes
    audio_format: str
    words: List[WordTiming]
    total_duration_sec: float


def chunk_duration(result: RawChunkResult, words: Sequence[WordTiming]) -> float:
    """
    Duration of a chunk in seconds.

    Measured audio first, then the end of its character timing, then the
    end of its last word.
    """
    if result.audio_bytes:
        try:
            return measure_duration(result.audio_bytes)
        except AudioDecodeError as e:
            logger.debug(f"Segment {result.segment.ordinal}: {e}")

    if result.has_alignment:
        end_ms = result.char_alignment.end_ms
        if end_ms > 0:
            return end_ms / 1000.0

    if words:
        return max(w.end_sec for w in words)
    return 0.0


def merge_chunks(
    chunks: Sequence[ChunkTiming],
    inter_chunk_pause: float = 0.5,
    sample_rate: int = 24000,
) -> MergedNarration:
    """
    Merge ordered chunks into one audio artifact and timeline.

    Args:
        chunks: Chunks in segment order
        inter_chunk_pause: Seconds of silence between chunks
        sample_rate: Sample rate of the joined audio

    Returns:
        MergedNarration with words shifted onto the global timeline
    """
    words: List[WordTiming] = []
    cumulative_offset = 0.0

    for i, chunk in enumerate(chunks):
        if i > 0:
            cumulative_offset += inter_chunk_pause
        words.extend(w.shifted(cumulative_offset) for w in chunk.words)
        cumulative_offset += chunk.duration_sec

    audio_bytes, audio_format = join_audio(
        [(c.result.audio_bytes, c.result.audio_format) for c in chunks if c.result.audio_bytes],
        inter_chunk_pause,
        sample_rate,
    )

    logger.debug(
        f"Merged {len(chunks)} chunks: {len(words)} words, {cumulative_offset:.2f}s"
    )
    return MergedNarration(
        audio_bytes=audio_bytes,
        audio_format=audio_format,
        words=words,
        total_duration_sec=cumulative_offset,
    )
