from narration_sync.readalong.pacing import add_pause_markers, strip_pause_markers


def test_sentence_pause_inserted():
    paced = add_pause_markers("Hola. Adiós.")
    assert paced.startswith("Hola......")
    assert paced.endswith("Adiós......")


def test_clause_pause_after_comma_and_colon():
    assert add_pause_markers("uno, dos") == "uno,... dos"
    assert add_pause_markers("nota: algo") == "nota: ... algo"


def test_connective_gets_short_pauses():
    assert add_pause_markers("pan y vino") == "pan.. y. vino"


def test_line_breaks_get_pauses():
    paced = add_pause_markers("uno\ndos\n\ntres")
    assert "uno...\ndos" in paced
    assert "dos...\n\ntres" in paced


def test_strip_removes_markers_and_keeps_words():
    paced = add_pause_markers("Había una vez, en un pueblo, un gato que cantaba.")
    stripped = strip_pause_markers(paced)
    assert ".." not in stripped
    assert stripped.split() == ["Había", "una", "vez,", "en", "un", "pueblo,", "un", "gato", "que.", "cantaba"]


def test_strip_normalizes_punctuation_noise():
    text = "Él dijo “hola”… y—se   fue"
    assert strip_pause_markers(text) == "Él dijo hola y-se fue"
