"""
Character Aligner

Maps every character of a segment's original text onto the provider's
own text representation, then derives word start/end times from the
provider's character timing.

The provider's text can differ from the original: normalized
punctuation, pause markers, expanded numbers. A two-pointer scan with a
small lookahead resynchronizes across such differences, and positions
it cannot map are interpolated from their mapped neighbours.
"""

import math
import unicodedata
from dataclasses import dataclass
from typing import List

from narration_sync.readalong.errors import AlignmentDataMissing
from narration_sync.readalong.models import CharAlignment, RawChunkResult, WordTiming
from narration_sync.readalong.text_chunker import iter_words


@dataclass
class CharMapping:
    """Original index -> provider index, plus which entries were direct matches."""

    positions: List[int]
    matched: List[bool]

    @property
    def matched_count(self) -> int:
        return sum(self.matched)


def _fold(char: str) -> str:
    decomposed = unicodedata.normalize("NFD", char)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.casefold()


def chars_match(a: str, b: str) -> bool:
    """Compare characters ignoring case and diacritics."""
    return a == b or _fold(a) == _fold(b)


def _fill_missing(positions: List[int], provider_length: int) -> List[int]:
    """Interpolate or extrapolate unmapped positions from mapped neighbours."""
    size = len(positions)
    filled = list(positions)
    last = provider_length - 1

    mapped = [i for i, p in enumerate(positions) if p >= 0]
    if not mapped:
        return [
            min(last, max(0, round(i / size * provider_length)))
            for i in range(size)
        ]

    before = -1
    next_idx = 0
    for i in range(size):
        if positions[i] >= 0:
            before = i
            next_idx += 1
            continue
        after = mapped[next_idx] if next_idx < len(mapped) else -1

        if before == -1:
            value = positions[after] - (after - i)
        elif after == -1:
            value = positions[before] + (i - before)
        else:
            ratio = (i - before) / (after - before)
            value = round(positions[before] + ratio * (positions[after] - positions[before]))

        filled[i] = max(0, min(last, value))
    return filled


def build_char_mapping(original: str, provider_text: str, lookahead: int = 5) -> CharMapping:
    """
    Map each character of ``original`` to an index in ``provider_text``.

    Args:
        original: Original segment text
        provider_text: Text as represented in the provider's timing data
        lookahead: How far either pointer may skip to resynchronize

    Returns:
        CharMapping with one position per original character
    """
    if not provider_text:
        return CharMapping([0] * len(original), [False] * len(original))

    if original == provider_text:
        return CharMapping(list(range(len(original))), [True] * len(original))

    positions = [-1] * len(original)
    orig_ptr = 0
    prov_ptr = 0

    while orig_ptr < len(original) and prov_ptr < len(provider_text):
        orig_char = original[orig_ptr]

        if chars_match(orig_char, provider_text[prov_ptr]):
            positions[orig_ptr] = prov_ptr
            orig_ptr += 1
            prov_ptr += 1
            continue

        synced = False
        # Skip extra provider characters
        for step in range(1, lookahead + 1):
            if prov_ptr + step >= len(provider_text):
                break
            if chars_match(orig_char, provider_text[prov_ptr + step]):
                prov_ptr += step
                positions[orig_ptr] = prov_ptr
                orig_ptr += 1
                prov_ptr += 1
                synced = True
                break

        if not synced:
            # Skip original characters the provider dropped
            for step in range(1, lookahead + 1):
                if orig_ptr + step >= len(original):
                    break
                if chars_match(original[orig_ptr + step], provider_text[prov_ptr]):
                    orig_ptr += step
                    positions[orig_ptr] = prov_ptr
                    orig_ptr += 1
                    prov_ptr += 1
                    synced = True
                    break

        if not synced:
            orig_ptr += 1
            prov_ptr += 1

    matched = [p >= 0 for p in positions]
    return CharMapping(_fill_missing(positions, len(provider_text)), matched)


def require_alignment(result: RawChunkResult) -> CharAlignment:
    """
    Return a chunk's character timing.

    Raises:
        AlignmentDataMissing: If the provider returned none
    """
    if not result.has_alignment:
        raise AlignmentDataMissing(
            f"Segment {result.segment.ordinal}: {result.provider or 'provider'} "
            f"returned no character timing"
        )
    return result.char_alignment


def _anchor_indices(word: str) -> List[int]:
    """Indices of the first and last alphanumeric characters of a word."""
    alnum = [i for i, c in enumerate(word) if c.isalnum()]
    if not alnum:
        return [0, len(word) - 1]
    return [alnum[0], alnum[-1]]


def align_chunk_words(
    speech_text: str,
    speech_offset: int,
    alignment: CharAlignment,
    lookahead: int = 5,
) -> List[WordTiming]:
    """
    Derive chunk-relative word timings from provider character timing.

    Args:
        speech_text: Original text of the segment as narrated
        speech_offset: Offset of speech_text in the original text
        alignment: Provider character timing for the segment
        lookahead: Resynchronization window

    Returns:
        One WordTiming per whitespace-delimited word, times relative to the chunk

    Raises:
        AlignmentDataMissing: If the alignment is empty
    """
    if alignment is None or alignment.is_empty:
        raise AlignmentDataMissing("No character timing for segment")

    mapping = build_char_mapping(speech_text, alignment.text, lookahead)
    total_ms = alignment.end_ms
    text_length = max(1, len(speech_text))

    words = []
    for word, start, end in iter_words(speech_text):
        first = mapping.positions[start]
        last = mapping.positions[end - 1]
        start_ms = alignment.start_ms[first]
        end_ms = alignment.start_ms[last] + alignment.duration_ms[last]

        anchors = _anchor_indices(word)
        direct = all(mapping.matched[start + i] for i in anchors)

        if not (math.isfinite(start_ms) and math.isfinite(end_ms) and end_ms > start_ms):
            # Proportional estimate from the word's position in the text
            start_ms = start / text_length * total_ms
            end_ms = start_ms + len(word) / text_length * total_ms
            direct = False

        words.append(WordTiming(
            word=word,
            start_sec=start_ms / 1000.0,
            end_sec=end_ms / 1000.0,
            source_char_start=speech_offset + start,
            source_char_end=speech_offset + end,
            is_interpolated=not direct,
        ))

    return words
