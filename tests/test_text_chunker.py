import pytest

from narration_sync.readalong.errors import InvalidInput
from narration_sync.readalong.pacing import add_pause_markers
from narration_sync.readalong.text_chunker import chunk_text, iter_words, split_into_sentences


SAMPLE = (
    "Había una vez un gato. El gato vivía en Madrid! ¿Quién lo sabía? "
    "Nadie lo sabía.\n\nUn día, el gato salió a pasear por la ciudad."
)


@pytest.mark.parametrize("text", ["Hola mundo.", "  Hola.  ", SAMPLE, "ñ" * 10])
def test_text_under_limit_is_single_segment(text):
    segments = chunk_text(text, 4500)
    assert len(segments) == 1
    assert segments[0].text == text
    assert segments[0].start_offset == 0
    assert segments[0].end_offset == len(text)
    assert segments[0].ordinal == 0


@pytest.mark.parametrize("max_size", [20, 35, 50, 80])
def test_segments_reconstruct_original(max_size):
    segments = chunk_text(SAMPLE, max_size)
    assert "".join(s.text for s in segments) == SAMPLE
    assert all(len(s.text) <= max_size for s in segments)
    assert [s.ordinal for s in segments] == list(range(len(segments)))


def test_offsets_are_contiguous():
    segments = chunk_text(SAMPLE, 30)
    assert segments[0].start_offset == 0
    for prev, cur in zip(segments, segments[1:]):
        assert prev.end_offset == cur.start_offset
    assert segments[-1].end_offset == len(SAMPLE)
    for s in segments:
        assert SAMPLE[s.start_offset:s.end_offset] == s.text


def test_prefers_sentence_boundaries():
    text = "Uno dos tres. Cuatro cinco seis. Siete ocho nueve."
    segments = chunk_text(text, 35)
    assert [s.text for s in segments] == ["Uno dos tres. Cuatro cinco seis. ", "Siete ocho nueve."]


def test_long_sentence_splits_on_words():
    text = "palabra " * 30
    segments = chunk_text(text, 50)
    assert "".join(s.text for s in segments) == text
    for s in segments:
        assert len(s.text) <= 50
        assert s.text.startswith("palabra")


def test_oversized_word_is_hard_split():
    text = "a" * 120
    segments = chunk_text(text, 50)
    assert [len(s.text) for s in segments] == [50, 50, 20]


def test_byte_limit_never_splits_a_character():
    text = "ñ" * 30
    segments = chunk_text(text, 25, unit="bytes")
    assert "".join(s.text for s in segments) == text
    assert all(len(s.text.encode("utf-8")) <= 25 for s in segments)


@pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
def test_empty_input_yields_no_segments(text):
    assert chunk_text(text, 100) == []


@pytest.mark.parametrize("max_size", [0, -5])
def test_non_positive_limit_is_rejected(max_size):
    with pytest.raises(InvalidInput):
        chunk_text("Hola.", max_size)


def test_unknown_unit_is_rejected():
    with pytest.raises(InvalidInput):
        chunk_text("Hola.", 10, unit="tokens")


def test_speech_text_and_offset():
    segments = chunk_text("Uno dos.   Tres cuatro.", 12)
    second = segments[1]
    assert second.speech_text == second.text.strip()
    original = "Uno dos.   Tres cuatro."
    assert original[second.speech_offset:].startswith(second.speech_text)


def test_split_into_sentences():
    sentences = split_into_sentences("Hola. ¿Qué tal? Bien!")
    assert sentences == ["Hola. ", "¿Qué tal? ", "Bien!"]


def test_iter_words_offsets():
    words = list(iter_words("  Hola  mundo.", base_offset=10))
    assert words == [("Hola", 12, 16), ("mundo.", 18, 24)]


def test_sizes_measured_on_rewritten_text():
    text = " ".join(["Uno, dos, y tres."] * 40)
    segments = chunk_text(text, 300, transform=add_pause_markers)

    assert "".join(s.text for s in segments) == text
    assert all(len(add_pause_markers(s.speech_text)) <= 300 for s in segments)
    # Without the rewrite the same text fits in fewer segments
    assert len(segments) > len(chunk_text(text, 300))
