"""
Fallback Generator

Synthetic word timings at a uniform speaking rate, used when no real
timing can be obtained for some or all of the text.
"""

import math
from typing import List

from narration_sync.readalong.models import WordTiming
from narration_sync.readalong.text_chunker import iter_words

DEFAULT_WORDS_PER_SECOND = 2.0


def generate_fallback_timings(
    text: str,
    rate: float,
    base_offset: int = 0,
    default_rate: float = DEFAULT_WORDS_PER_SECOND,
) -> List[WordTiming]:
    """
    Space the words of ``text`` evenly at ``rate`` words per second.

    Args:
        text: Text to time
        rate: Words per second
        base_offset: Offset of ``text`` in the original text
        default_rate: Used when ``rate`` is not a positive finite number

    Returns:
        Synthetic WordTimings starting at 0
    """
    if not (isinstance(rate, (int, float)) and math.isfinite(rate) and rate > 0):
        rate = default_rate if default_rate > 0 else DEFAULT_WORDS_PER_SECOND

    return [
        WordTiming(
            word=word,
            start_sec=i / rate,
            end_sec=(i + 1) / rate,
            source_char_start=start,
            source_char_end=end,
            is_synthetic=True,
        )
        for i, (word, start, end) in enumerate(iter_words(text or "", base_offset))
    ]


def fallback_duration(word_count: int, rate: float) -> float:
    """Length of a synthetic timeline for ``word_count`` words."""
    if not (math.isfinite(rate) and rate > 0):
        rate = DEFAULT_WORDS_PER_SECOND
    return word_count / rate
