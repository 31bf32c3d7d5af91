import pytest

from narration_sync.readalong.sequence_aligner import (
    align_words_to_transcript,
    global_align,
    levenshtein,
    normalize_token,
    substitution_cost,
    word_similarity,
)
from narration_sync.readalong.text_chunker import iter_words

from conftest import transcribed

TEN_WORDS = "uno dos tres cuatro cinco seis siete ocho nueve diez"


def test_normalize_token():
    assert normalize_token("¡Mañana!") == "manana"
    assert normalize_token("Él,") == "el"


def test_levenshtein():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("casa", "casa") == 0


def test_similarity_and_cost_bands():
    assert substitution_cost("Mundo.", "mundo") == 0
    assert word_similarity("mundo", "mundos") == pytest.approx(1 - 1 / 6)
    assert substitution_cost("mundo", "mundos") == 1
    assert substitution_cost("gato", "pato") == 1
    assert substitution_cost("perro", "pera") == 2
    assert substitution_cost("gato", "elefante") == 3


@pytest.mark.parametrize("a, b", [
    ("el gato negro", "el gato negro"),
    ("el gato negro duerme", "el negro duerme"),
    ("hola", "hola hola hola"),
    ("", "uno dos"),
    ("uno dos", ""),
    ("la casa azul del mar", "a casa azules de mar y"),
])
def test_score_non_negative_and_maps_consistent(a, b):
    result = global_align(a.split(), b.split())
    assert result.score >= 0
    for i, j in enumerate(result.map_a_to_b):
        if j is not None:
            assert result.map_b_to_a[j] == i
    for j, i in enumerate(result.map_b_to_a):
        if i is not None:
            assert result.map_a_to_b[i] == j


def test_identical_sequences_align_with_zero_cost():
    words = TEN_WORDS.split()
    result = global_align(words, words)
    assert result.score == 0
    assert list(result.map_a_to_b) == list(range(10))


def test_omitted_word_becomes_a_gap():
    words = TEN_WORDS.split()
    heard = words[:4] + words[5:]
    result = global_align(words, heard)
    assert result.map_a_to_b[4] is None
    assert result.map_a_to_b[3] == 3
    assert result.map_a_to_b[5] == 4
    assert result.score == pytest.approx(1.2)


def test_misheard_word_is_substituted():
    result = global_align(["el", "gato", "negro"], ["el", "pato", "negro"])
    assert list(result.map_a_to_b) == [0, 1, 2]
    assert result.score == 1


def test_omitted_word_interpolated_between_neighbours():
    words = list(iter_words(TEN_WORDS))
    heard = transcribed(
        (w, i * 0.3, i * 0.3 + 0.2)
        for i, w in enumerate(TEN_WORDS.split())
        if w != "cinco"
    )
    timings = align_words_to_transcript(words, heard, duration_sec=3.0)

    assert len(timings) == 10
    cuatro, cinco, seis = timings[3], timings[4], timings[5]
    assert cinco.is_interpolated
    assert cuatro.is_matched and seis.is_matched
    assert cuatro.end_sec <= cinco.start_sec < cinco.end_sec <= seis.start_sec
    assert sum(t.is_matched for t in timings) == 9


def test_matched_words_take_transcribed_times_and_offsets():
    words = list(iter_words("Hola mundo.", base_offset=5))
    timings = align_words_to_transcript(words, transcribed([("hola", 0.1, 0.4), ("mundo", 0.5, 0.9)]))
    assert [(t.start_sec, t.end_sec) for t in timings] == [(0.1, 0.4), (0.5, 0.9)]
    assert [(t.source_char_start, t.source_char_end) for t in timings] == [(5, 9), (10, 16)]


def test_empty_transcript_spreads_words_over_duration():
    words = list(iter_words("uno dos tres cuatro"))
    timings = align_words_to_transcript(words, [], duration_sec=2.0)
    assert [t.start_sec for t in timings] == pytest.approx([0.0, 0.5, 1.0, 1.5])
    assert timings[-1].end_sec == pytest.approx(2.0)
    assert all(t.is_interpolated for t in timings)
