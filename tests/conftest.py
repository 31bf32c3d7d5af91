import base64
import io
import json
import threading

import numpy as np
import pytest
import soundfile as sf

from narration_sync.readalong.errors import ProviderError
from narration_sync.readalong.models import CharAlignment
from narration_sync.readalong.retry import RetryPolicy
from narration_sync.readalong.settings import EngineSettings
from narration_sync.readalong.synthesis import SynthesisClient, SynthesisProvider, SynthesisResponse
from narration_sync.readalong.transcription import (
    TranscribedWord,
    TranscriptionClient,
    TranscriptionProvider,
    TranscriptionResult,
)

SAMPLE_RATE = 24000
SECONDS_PER_CHAR = 0.06


def make_wav(seconds: float, sample_rate: int = SAMPLE_RATE) -> bytes:
    samples = np.zeros(int(round(seconds * sample_rate)), dtype=np.float32)
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


def char_alignment_for(text: str, seconds_per_char: float = SECONDS_PER_CHAR) -> CharAlignment:
    step_ms = seconds_per_char * 1000.0
    return CharAlignment(
        chars=list(text),
        start_ms=[i * step_ms for i in range(len(text))],
        duration_ms=[step_ms] * len(text),
    )


class FakeProvider(SynthesisProvider):
    """Narrates at a fixed pace and reports exact character timing."""

    def __init__(self, name="fake", with_alignment=True, errors=None, fail_on=None):
        self.name = name
        self.with_alignment = with_alignment
        self.errors = list(errors or [])
        self.fail_on = fail_on
        self.calls = []
        self._lock = threading.Lock()

    def synthesize(self, text, voice, timeout, token=None):
        with self._lock:
            self.calls.append(text)
            error = self.errors.pop(0) if self.errors else None
        if token is not None:
            token.raise_if_cancelled()
        if error is not None:
            raise error
        if self.fail_on and self.fail_on in text:
            raise ProviderError(f"refused: {self.fail_on}")
        alignment = char_alignment_for(text) if self.with_alignment else None
        return SynthesisResponse(
            audio_bytes=make_wav(len(text) * SECONDS_PER_CHAR),
            char_alignment=alignment,
            audio_format="wav",
        )


class FakeTranscriber(TranscriptionProvider):
    """Returns scripted transcribed words, optionally failing first."""

    name = "fake-transcriber"

    def __init__(self, words=None, errors=None, always_fail=None):
        self.words = list(words or [])
        self.errors = list(errors or [])
        self.always_fail = always_fail
        self.calls = 0

    def transcribe(self, audio_bytes, language, timeout, audio_format="mp3"):
        self.calls += 1
        if self.always_fail is not None:
            raise self.always_fail
        if self.errors:
            raise self.errors.pop(0)
        return TranscriptionResult(
            transcript_text=" ".join(w.word for w in self.words),
            words=self.words,
        )


# Streaming HTTP doubles for the ElevenLabs provider
class FakeResponse:
    def __init__(self, status_code=200, lines=(), text="", error=None):
        self.status_code = status_code
        self._lines = list(lines)
        self.text = text
        self.error = error

    def iter_lines(self):
        yield from self._lines
        if self.error is not None:
            raise self.error

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def post(self, url, **kwargs):
        self.requests.append((url, kwargs))
        return self.response


def stream_line(audio, chars, starts, ends):
    return json.dumps({
        "audio_base64": base64.b64encode(audio).decode("ascii"),
        "alignment": {
            "characters": chars,
            "character_start_times_seconds": starts,
            "character_end_times_seconds": ends,
        },
    }).encode("utf-8")


def transcribed(pairs):
    """[(word, start, end), ...] -> TranscribedWord list."""
    return [TranscribedWord(w, s, e) for w, s, e in pairs]


@pytest.fixture(autouse=True)
def no_credentials(monkeypatch):
    # Never reach real providers from tests
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("NARRATION_PROVIDER", raising=False)


@pytest.fixture
def settings():
    return EngineSettings(
        secondary_provider=None,
        base_delay=0.0,
        workers=2,
        transcription_mode="missing",
    )


@pytest.fixture
def no_delay():
    return RetryPolicy(max_attempts=3, base_delay=0.0)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def synthesis_client(fake_provider, no_delay):
    return SynthesisClient([fake_provider], policy=no_delay)


def transcription_client(provider, policy=None):
    return TranscriptionClient(provider, policy=policy or RetryPolicy(3, 0.0))
