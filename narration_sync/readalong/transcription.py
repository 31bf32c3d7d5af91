"""
Transcription client.

Transcribes narrated audio with word-level timestamps. Used to refine
timing when a provider returns no character timing, or for every chunk
when transcription mode is "always".
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from narration_sync.readalong.errors import (
    ProviderError,
    TranscriptionFailure,
    TransientProviderError,
)
from narration_sync.readalong.pacing import strip_pause_markers
from narration_sync.readalong.retry import CancellationToken, RetryPolicy, call_with_retry
from narration_sync.readalong.settings import EngineSettings
from narration_sync.utils import logger


@dataclass(frozen=True)
class TranscribedWord:
    """One recognized word with its audio time span."""

    word: str
    start_sec: float
    end_sec: float


@dataclass
class TranscriptionResult:
    """Transcript text and word timings of one audio chunk."""

    transcript_text: str
    words: List[TranscribedWord] = field(default_factory=list)
    duration_sec: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TranscriptionResult":
        """Build from a verbose_json transcription payload."""
        raw_words = payload.get("words")
        if not raw_words:
            raw_words = []
            for seg in payload.get("segments") or []:
                raw_words.extend(seg.get("words") or [])

        words = []
        for w in raw_words:
            # Paced narration can come back with its pause markers attached
            text = strip_pause_markers(w.get("word") or w.get("text") or "")
            if not text:
                continue
            start = float(w.get("start", 0.0))
            end = float(w.get("end", start))
            words.append(TranscribedWord(text, start, max(start, end)))

        duration = payload.get("duration")
        return cls(
            transcript_text=payload.get("text") or " ".join(w.word for w in words),
            words=words,
            duration_sec=float(duration) if duration is not None else None,
        )


class TranscriptionProvider:
    """Interface for transcription backends."""

    name = "base"

    def transcribe(
        self,
        audio_bytes: bytes,
        language: Optional[str],
        timeout: float,
        audio_format: str = "mp3",
    ) -> TranscriptionResult:
        raise NotImplementedError


class WhisperTranscriptionProvider(TranscriptionProvider):
    """Word-level transcription through the OpenAI audio API."""

    name = "whisper"

    def __init__(self, model: str = "whisper-1", api_key: Optional[str] = None):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ProviderError("OPENAI_API_KEY is required for transcription")
        self.model = model
        self.client = OpenAI(api_key=api_key)

    def transcribe(
        self,
        audio_bytes: bytes,
        language: Optional[str],
        timeout: float,
        audio_format: str = "mp3",
    ) -> TranscriptionResult:
        kwargs = {}
        if language:
            kwargs["language"] = language.split("-")[0]
        try:
            resp = self.client.audio.transcriptions.create(
                model=self.model,
                file=(f"chunk.{audio_format}", audio_bytes),
                response_format="verbose_json",
                timestamp_granularities=["word"],
                timeout=timeout,
                **kwargs,
            )
        except (
            openai.APITimeoutError,
            openai.APIConnectionError,
            openai.RateLimitError,
            openai.InternalServerError,
        ) as e:
            raise TransientProviderError(f"Transcription request failed: {e}") from e
        except openai.APIError as e:
            raise ProviderError(f"Transcription rejected: {e}") from e

        payload = resp.model_dump() if hasattr(resp, "model_dump") else resp
        return TranscriptionResult.from_payload(payload)


class TranscriptionClient:
    """Runs a transcription provider with retries."""

    def __init__(
        self,
        provider: TranscriptionProvider,
        policy: Optional[RetryPolicy] = None,
        timeout: float = 600.0,
    ):
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> Optional["TranscriptionClient"]:
        """Build the default client; None when transcription is off or unavailable."""
        if settings.transcription_mode == "off":
            return None
        try:
            provider = WhisperTranscriptionProvider(model=settings.transcription_model)
        except ProviderError as e:
            logger.warning(f"Transcription disabled: {e}")
            return None
        return cls(
            provider,
            policy=RetryPolicy(settings.max_attempts, settings.base_delay),
            timeout=settings.call_timeout,
        )

    def transcribe(
        self,
        audio_bytes: bytes,
        language: Optional[str] = None,
        token: Optional[CancellationToken] = None,
        audio_format: str = "mp3",
    ) -> TranscriptionResult:
        """
        Transcribe one audio chunk.

        Args:
            audio_bytes: Encoded audio
            language: Language hint (e.g. "es")
            token: Optional cancellation token
            audio_format: Container/codec of audio_bytes

        Returns:
            TranscriptionResult with word timestamps relative to the chunk

        Raises:
            TranscriptionFailure: After retries are exhausted or on a permanent error
        """
        try:
            return call_with_retry(
                lambda: self.provider.transcribe(audio_bytes, language, self.timeout, audio_format),
                self.policy,
                token=token,
                label=f"{self.provider.name} transcription",
            )
        except ProviderError as e:
            raise TranscriptionFailure(str(e)) from e
