"""
Text Chunker Module

Splits chapter text into provider-sized segments for narration.
Segments break at sentence boundaries where possible, then at word
boundaries, and never lose or duplicate a character of the original.
"""

import re
from typing import Callable, Iterator, List, Optional, Tuple

from narration_sync.readalong.errors import InvalidInput
from narration_sync.readalong.models import TextSegment

# Sentence-ending punctuation followed by whitespace, or a blank line
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?…])\s+|\n\s*\n")
WORD_PATTERN = re.compile(r"\S+")
WORD_WITH_SPACE = re.compile(r"\S+\s*")

Span = Tuple[int, int]


def _measure_for(unit: str) -> Callable[[str], int]:
    if unit == "bytes":
        return lambda s: len(s.encode("utf-8"))
    if unit == "chars":
        return len
    raise InvalidInput(f"Unknown chunk size unit '{unit}'")


def iter_words(text: str, base_offset: int = 0) -> Iterator[Tuple[str, int, int]]:
    """
    Yield whitespace-delimited words with their offsets.

    Args:
        text: Text to scan
        base_offset: Added to every offset (e.g. a segment's position)

    Yields:
        (word, start, end) with end exclusive
    """
    for match in WORD_PATTERN.finditer(text):
        yield match.group(0), base_offset + match.start(), base_offset + match.end()


def sentence_spans(text: str) -> List[Span]:
    """
    Split text into contiguous sentence spans.

    Each span owns the whitespace that follows it, so the spans cover
    the text end to end.
    """
    spans = []
    start = 0
    for match in SENTENCE_BOUNDARY.finditer(text):
        if match.end() <= start:
            continue
        spans.append((start, match.end()))
        start = match.end()
    if start < len(text):
        spans.append((start, len(text)))
    return spans


def split_into_sentences(text: str) -> List[str]:
    """Convenience wrapper returning sentence strings."""
    return [text[s:e] for s, e in sentence_spans(text)]


def _hard_split(text: str, start: int, end: int, max_size: int, measure) -> List[Span]:
    """Split an oversized word on character boundaries."""
    spans = []
    piece_start = start
    size = 0
    for i in range(start, end):
        char_size = measure(text[i])
        if size + char_size > max_size and i > piece_start:
            spans.append((piece_start, i))
            piece_start = i
            size = 0
        size += char_size
    spans.append((piece_start, end))
    return spans


def _word_spans(text: str, start: int, end: int, max_size: int, measure) -> List[Span]:
    """Split an oversized sentence into word spans (each with its trailing space)."""
    spans: List[Span] = []
    sentence = text[start:end]

    for i, match in enumerate(WORD_WITH_SPACE.finditer(sentence)):
        word_start = start + match.start()
        word_end = start + match.end()
        if i == 0:
            word_start = start  # leading whitespace rides with the first word
        if measure(text[word_start:word_end]) <= max_size:
            spans.append((word_start, word_end))
        else:
            spans.extend(_hard_split(text, word_start, word_end, max_size, measure))

    if not spans:
        # All whitespace: keep it so offsets stay contiguous
        spans.extend(_hard_split(text, start, end, max_size, measure))
    return spans


def chunk_text(
    text: str,
    max_size: int,
    unit: str = "chars",
    transform: Optional[Callable[[str], str]] = None,
) -> List[TextSegment]:
    """
    Split text into provider-sized segments.

    Args:
        text: Original chapter text
        max_size: Maximum size of one segment
        unit: "chars" or "bytes" (UTF-8), depending on the provider limit
        transform: Rewrite applied to a segment before it is sent to the
            provider (e.g. learner pause markers); sizes are measured on
            the rewritten, stripped text

    Returns:
        Ordered list of TextSegment; empty for empty/whitespace input

    Raises:
        InvalidInput: If max_size is not positive
    """
    if max_size <= 0:
        raise InvalidInput(f"max_size must be positive, got {max_size}")
    measure = _measure_for(unit)
    if transform is not None:
        base_measure = measure
        measure = lambda s: base_measure(transform(s.strip()))

    if not text or not text.strip():
        return []

    if measure(text) <= max_size:
        return [TextSegment(text=text, start_offset=0, end_offset=len(text), ordinal=0)]

    pieces: List[Span] = []
    for start, end in sentence_spans(text):
        if measure(text[start:end]) <= max_size:
            pieces.append((start, end))
        else:
            pieces.extend(_word_spans(text, start, end, max_size, measure))

    segments: List[TextSegment] = []

    def emit(seg_start: int, seg_end: int) -> None:
        segments.append(TextSegment(
            text=text[seg_start:seg_end],
            start_offset=seg_start,
            end_offset=seg_end,
            ordinal=len(segments),
        ))

    # Measure the grown span as a whole; a rewrite need not be additive
    seg_start, seg_end = pieces[0]
    for start, end in pieces[1:]:
        if measure(text[seg_start:end]) <= max_size:
            seg_end = end
        else:
            emit(seg_start, seg_end)
            seg_start, seg_end = start, end
    emit(seg_start, seg_end)

    return segments
