"""
Global Sequence Aligner

Needleman-Wunsch alignment of the original words against transcribed
words. Tolerates recognizer noise such as dropped, inserted or misheard
words: substitutions of similar words stay cheap, unrelated words cost
more than skipping one of them.
"""

import math
import re
import unicodedata
from typing import List, Optional, Sequence, Tuple

from narration_sync.readalong.models import AlignmentResult, WordTiming
from narration_sync.readalong.transcription import TranscribedWord

_NON_WORD = re.compile(r"[^\w]", re.UNICODE)

# Diagonal, gap in b, gap in a
_DIAG, _UP, _LEFT = 0, 1, 2


def normalize_token(token: str) -> str:
    """Lowercase, strip accents and drop punctuation."""
    decomposed = unicodedata.normalize("NFD", token.lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return _NON_WORD.sub("", stripped)


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def word_similarity(a: str, b: str) -> float:
    """1 - levenshtein / max length, on normalized tokens."""
    na, nb = normalize_token(a), normalize_token(b)
    longest = max(len(na), len(nb))
    if longest == 0:
        return 1.0 if a == b else 0.0
    return 1.0 - levenshtein(na, nb) / longest


def words_match(a: str, b: str) -> bool:
    na, nb = normalize_token(a), normalize_token(b)
    if not na and not nb:
        return a == b
    return na == nb


def substitution_cost(a: str, b: str, high: float = 0.7, low: float = 0.4) -> float:
    """0 for a match, then 1, 2 or 3 by decreasing similarity."""
    if words_match(a, b):
        return 0.0
    similarity = word_similarity(a, b)
    if similarity > high:
        return 1.0
    if similarity > low:
        return 2.0
    return 3.0


def global_align(
    seq_a: Sequence[str],
    seq_b: Sequence[str],
    gap_penalty: float = 1.2,
    high: float = 0.7,
    low: float = 0.4,
) -> AlignmentResult:
    """
    Align two token sequences with minimal total cost.

    Args:
        seq_a: First token sequence (original words)
        seq_b: Second token sequence (transcribed words)
        gap_penalty: Cost of leaving a token unaligned
        high: Similarity above which a substitution costs 1
        low: Similarity above which a substitution costs 2

    Returns:
        AlignmentResult whose maps are mutually consistent
    """
    m, n = len(seq_a), len(seq_b)
    score = [[0.0] * (n + 1) for _ in range(m + 1)]
    trace = [[_DIAG] * (n + 1) for _ in range(m + 1)]

    for i in range(1, m + 1):
        score[i][0] = i * gap_penalty
        trace[i][0] = _UP
    for j in range(1, n + 1):
        score[0][j] = j * gap_penalty
        trace[0][j] = _LEFT

    for i in range(1, m + 1):
        row, prev_row = score[i], score[i - 1]
        for j in range(1, n + 1):
            diag = prev_row[j - 1] + substitution_cost(seq_a[i - 1], seq_b[j - 1], high, low)
            up = prev_row[j] + gap_penalty
            left = row[j - 1] + gap_penalty
            # Ties prefer the diagonal
            if diag <= up and diag <= left:
                row[j], trace[i][j] = diag, _DIAG
            elif up <= left:
                row[j], trace[i][j] = up, _UP
            else:
                row[j], trace[i][j] = left, _LEFT

    map_a: List[Optional[int]] = [None] * m
    map_b: List[Optional[int]] = [None] * n
    i, j = m, n
    while i > 0 or j > 0:
        move = trace[i][j]
        if move == _DIAG and i > 0 and j > 0:
            map_a[i - 1] = j - 1
            map_b[j - 1] = i - 1
            i -= 1
            j -= 1
        elif move == _UP or j == 0:
            i -= 1
        else:
            j -= 1

    return AlignmentResult(tuple(map_a), tuple(map_b), max(0.0, score[m][n]))


def align_words_to_transcript(
    words: Sequence[Tuple[str, int, int]],
    transcript_words: Sequence[TranscribedWord],
    gap_penalty: float = 1.2,
    high: float = 0.7,
    low: float = 0.4,
    duration_sec: Optional[float] = None,
) -> List[WordTiming]:
    """
    Time original words from a word-level transcription.

    Aligned words take the transcribed timing. Runs of unaligned words are
    spread evenly between the previous aligned word's end and the next
    aligned word's start, or the audio's edges.

    Args:
        words: (word, source_char_start, source_char_end) in text order
        transcript_words: Transcribed words with chunk-relative times
        gap_penalty: Alignment gap cost
        high: Upper similarity band
        low: Lower similarity band
        duration_sec: Audio duration, used as the right edge

    Returns:
        One WordTiming per input word, chunk-relative
    """
    alignment = global_align(
        [w[0] for w in words],
        [t.word for t in transcript_words],
        gap_penalty,
        high,
        low,
    )

    right_edge = duration_sec
    if right_edge is None or not math.isfinite(right_edge):
        right_edge = transcript_words[-1].end_sec if transcript_words else 0.0

    timings: List[Optional[WordTiming]] = [None] * len(words)
    for i, j in alignment.matched_pairs:
        word, start, end = words[i]
        heard = transcript_words[j]
        timings[i] = WordTiming(word, heard.start_sec, heard.end_sec, start, end)

    i = 0
    while i < len(words):
        if timings[i] is not None:
            i += 1
            continue
        run_start = i
        while i < len(words) and timings[i] is None:
            i += 1

        count = i - run_start
        left = timings[run_start - 1].end_sec if run_start > 0 else 0.0
        right = timings[i].start_sec if i < len(words) else right_edge
        right = max(right, left)
        slot = (right - left) / count
        bounds = [left + n * slot for n in range(count)] + [right]

        for n, k in enumerate(range(run_start, i)):
            word, start, end = words[k]
            timings[k] = WordTiming(
                word, bounds[n], bounds[n + 1], start, end, is_interpolated=True
            )

    return timings
