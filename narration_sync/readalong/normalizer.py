"""
Timing Normalizer

Rescales a merged timeline onto the measured duration of the final
audio so highlighting does not drift, then enforces ordering and a
minimum word duration.
"""

import math
from typing import List, Sequence, Tuple

from narration_sync.readalong.errors import NormalizationDegenerate
from narration_sync.readalong.models import WordTiming
from narration_sync.utils import logger


def _forward_clamp(
    words: Sequence[WordTiming], scale: float, min_duration: float
) -> List[WordTiming]:
    clamped = []
    last_end = 0.0
    for w in words:
        start = max(w.start_sec * scale, last_end)
        end = max(w.end_sec * scale, start + min_duration)
        clamped.append(w.with_times(start, end))
        last_end = end
    return clamped


def _pin_to_end(
    words: List[WordTiming], actual: float, min_duration: float
) -> List[WordTiming]:
    """Walk backwards from ``actual`` so no word overlaps its successor."""
    pinned = list(words)
    next_start = actual
    for i in range(len(pinned) - 1, -1, -1):
        w = pinned[i]
        end = actual if i == len(pinned) - 1 else min(w.end_sec, next_start)
        start = max(0.0, min(w.start_sec, end - min_duration))
        pinned[i] = w.with_times(start, end)
        next_start = start
    return pinned


def normalize_timeline(
    words: Sequence[WordTiming],
    raw_total: float,
    actual_duration: float,
    min_word_duration: float = 0.05,
) -> Tuple[List[WordTiming], float]:
    """
    Scale word timings onto the measured audio duration.

    Args:
        words: Merged word timings in text order
        raw_total: Duration the merged timeline assumed
        actual_duration: Measured duration of the final audio
        min_word_duration: Shortest duration any word may have

    Returns:
        (normalized words, total duration), total equal to actual_duration

    Raises:
        NormalizationDegenerate: If either duration is zero, negative or not finite
    """
    for label, value in (("actual duration", actual_duration), ("timeline duration", raw_total)):
        if not math.isfinite(value) or value <= 0:
            raise NormalizationDegenerate(f"Cannot normalize: {label} is {value}")

    if not words:
        return [], actual_duration

    scale = actual_duration / raw_total
    # Too many words for the audio: shrink the floor so they still fit
    min_duration = min(min_word_duration, actual_duration / len(words))

    normalized = _forward_clamp(words, scale, min_duration)
    overflow = normalized[-1].end_sec
    if overflow > actual_duration:
        normalized = _forward_clamp(normalized, actual_duration / overflow, min_duration)
    normalized = _pin_to_end(normalized, actual_duration, min_duration)

    logger.debug(
        f"Normalized {len(normalized)} words: {raw_total:.2f}s -> "
        f"{actual_duration:.2f}s (scale {scale:.3f})"
    )
    return normalized, actual_duration
