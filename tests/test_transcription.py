import dataclasses
from types import SimpleNamespace

import pytest

from narration_sync.readalong.errors import ProviderError, TranscriptionFailure, TransientProviderError
from narration_sync.readalong.transcription import (
    TranscriptionClient,
    TranscriptionResult,
    WhisperTranscriptionProvider,
)

from conftest import FakeTranscriber, transcribed, transcription_client


def test_payload_with_top_level_words():
    result = TranscriptionResult.from_payload({
        "text": "Hola mundo",
        "duration": 1.5,
        "words": [
            {"word": " Hola", "start": 0.0, "end": 0.4},
            {"word": "mundo", "start": 0.5, "end": 0.45},
            {"word": " ", "start": 0.9, "end": 1.0},
        ],
    })
    assert [(w.word, w.start_sec, w.end_sec) for w in result.words] == [
        ("Hola", 0.0, 0.4),
        ("mundo", 0.5, 0.5),
    ]
    assert result.duration_sec == 1.5
    assert result.transcript_text == "Hola mundo"


def test_payload_with_segment_words():
    result = TranscriptionResult.from_payload({
        "segments": [
            {"words": [{"word": "uno", "start": 0.0, "end": 0.3}]},
            {"words": [{"word": "dos", "start": 0.4, "end": 0.7}]},
        ],
    })
    assert [w.word for w in result.words] == ["uno", "dos"]
    assert result.transcript_text == "uno dos"
    assert result.duration_sec is None


def test_transient_errors_are_retried():
    provider = FakeTranscriber(
        words=transcribed([("hola", 0.0, 0.4)]),
        errors=[TransientProviderError("timeout"), TransientProviderError("429")],
    )
    result = transcription_client(provider).transcribe(b"audio", "es")
    assert provider.calls == 3
    assert [w.word for w in result.words] == ["hola"]


def test_exhausted_retries_raise_transcription_failure():
    provider = FakeTranscriber(always_fail=TransientProviderError("timeout"))
    with pytest.raises(TranscriptionFailure):
        transcription_client(provider).transcribe(b"audio", "es")
    assert provider.calls == 3


def test_permanent_error_is_not_retried():
    provider = FakeTranscriber(always_fail=ProviderError("bad audio"))
    with pytest.raises(TranscriptionFailure):
        transcription_client(provider).transcribe(b"audio", "es")
    assert provider.calls == 1


def test_from_settings_disabled(settings):
    assert TranscriptionClient.from_settings(dataclasses.replace(settings, transcription_mode="off")) is None
    # No OPENAI_API_KEY in the test environment
    assert TranscriptionClient.from_settings(settings) is None


def test_whisper_requests_word_timestamps(monkeypatch):
    captured = {}

    def create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(model_dump=lambda: {
            "text": "hola",
            "duration": 0.6,
            "words": [{"word": "hola", "start": 0.1, "end": 0.5}],
        })

    provider = WhisperTranscriptionProvider(api_key="test-key")
    monkeypatch.setattr(provider.client.audio.transcriptions, "create", create)

    result = provider.transcribe(b"audio", "es-ES", 30.0, "wav")

    assert captured["response_format"] == "verbose_json"
    assert captured["timestamp_granularities"] == ["word"]
    assert captured["language"] == "es"
    assert captured["file"] == ("chunk.wav", b"audio")
    assert result.words[0].end_sec == 0.5


def test_pause_markers_stripped_from_words():
    result = TranscriptionResult.from_payload({
        "words": [
            {"word": "tres.....", "start": 0.0, "end": 0.4},
            {"word": "...", "start": 0.4, "end": 0.9},
            {"word": "cuatro", "start": 0.9, "end": 1.3},
        ],
    })
    assert [w.word for w in result.words] == ["tres", "cuatro"]
