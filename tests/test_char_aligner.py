import math

import pytest

from narration_sync.readalong.char_aligner import (
    align_chunk_words,
    build_char_mapping,
    chars_match,
    require_alignment,
)
from narration_sync.readalong.errors import AlignmentDataMissing
from narration_sync.readalong.models import CharAlignment, RawChunkResult, TextSegment

from conftest import char_alignment_for


@pytest.mark.parametrize("text", ["Hola mundo.", "¿Qué pasó, señor?", "a"])
def test_identical_texts_map_to_identity(text):
    mapping = build_char_mapping(text, text)
    assert mapping.positions == list(range(len(text)))
    assert all(mapping.matched)


def test_chars_match_ignores_case_and_accents():
    assert chars_match("á", "a")
    assert chars_match("Ñ", "n")
    assert chars_match("E", "é")
    assert not chars_match("a", "b")


def test_resyncs_across_pause_markers():
    original = "Hola, mundo."
    provider = "Hola,... mundo......"
    mapping = build_char_mapping(original, provider)
    assert all(mapping.matched)
    assert provider[mapping.positions[original.index("m")]] == "m"
    assert mapping.positions == sorted(mapping.positions)


def test_skips_characters_missing_from_provider():
    original = "el «gato» negro"
    provider = "el gato negro"
    mapping = build_char_mapping(original, provider)
    g = original.index("g")
    assert provider[mapping.positions[g]] == "g"
    assert not mapping.matched[original.index("«")]


def test_unmapped_positions_stay_in_range():
    original = "xxxxxxxxxx"
    provider = "abc"
    mapping = build_char_mapping(original, provider)
    assert len(mapping.positions) == len(original)
    assert all(0 <= p < len(provider) for p in mapping.positions)
    assert mapping.matched_count == 0


def test_empty_provider_text_does_not_fail():
    mapping = build_char_mapping("Hola", "")
    assert len(mapping.positions) == 4
    assert mapping.matched_count == 0


def test_word_timings_from_identical_text():
    alignment = char_alignment_for("Hola mundo.", seconds_per_char=0.1)
    words = align_chunk_words("Hola mundo.", 10, alignment)

    assert [w.word for w in words] == ["Hola", "mundo."]
    assert words[0].start_sec == pytest.approx(0.0)
    assert words[0].end_sec == pytest.approx(0.4)
    assert words[1].start_sec == pytest.approx(0.5)
    assert words[1].end_sec == pytest.approx(1.1)
    assert (words[0].source_char_start, words[0].source_char_end) == (10, 14)
    assert (words[1].source_char_start, words[1].source_char_end) == (15, 21)
    assert all(w.is_matched for w in words)


def test_trailing_punctuation_difference_keeps_word_matched():
    alignment = char_alignment_for("Hola mundo", seconds_per_char=0.1)
    words = align_chunk_words("Hola mundo!", 0, alignment)
    assert [w.is_matched for w in words] == [True, True]


def test_invalid_times_fall_back_to_proportional_estimate():
    alignment = CharAlignment(
        chars=list("ab cd"),
        start_ms=[0.0, 100.0, 200.0, math.nan, 400.0],
        duration_ms=[100.0] * 5,
    )
    words = align_chunk_words("ab cd", 0, alignment)
    assert words[0].is_matched
    assert words[1].is_interpolated
    assert math.isfinite(words[1].start_sec)
    assert words[1].end_sec > words[1].start_sec


def test_empty_alignment_raises():
    with pytest.raises(AlignmentDataMissing):
        align_chunk_words("Hola", 0, CharAlignment())


def test_require_alignment():
    seg = TextSegment("Hola", 0, 4, 3)
    with pytest.raises(AlignmentDataMissing):
        require_alignment(RawChunkResult(segment=seg, audio_bytes=b"x"))

    alignment = char_alignment_for("Hola")
    assert require_alignment(RawChunkResult(segment=seg, char_alignment=alignment)) is alignment
