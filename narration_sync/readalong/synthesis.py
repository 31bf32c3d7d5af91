"""
Synthesis Client

Invokes narration providers for one segment at a time and returns audio
plus whatever character timing the provider reports.

Provider chain:
1. The voice's provider, or the configured primary (NARRATION_PROVIDER overrides)
2. The configured secondary provider, once the primary exhausts its retries

Providers are loaded lazily so a missing optional dependency only
disables that provider.
"""

import importlib
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from narration_sync.readalong.errors import (
    ChunkSynthesisFailure,
    ProviderError,
)
from narration_sync.readalong.models import CharAlignment, RawChunkResult, TextSegment, VoiceConfig
from narration_sync.readalong.pacing import add_pause_markers
from narration_sync.readalong.retry import CancellationToken, RetryPolicy, call_with_retry
from narration_sync.readalong.settings import EngineSettings
from narration_sync.utils import logger


@dataclass
class SynthesisResponse:
    """What a provider returns for one request."""

    audio_bytes: bytes
    char_alignment: Optional[CharAlignment] = None
    audio_format: str = "mp3"


class SynthesisProvider:
    """Interface every narration provider implements."""

    name = "base"

    def synthesize(
        self,
        text: str,
        voice: VoiceConfig,
        timeout: float,
        token: Optional[CancellationToken] = None,
    ) -> SynthesisResponse:
        """
        Narrate ``text``.

        Raises:
            TransientProviderError: Timeout, rate limit, connection or 5xx failure
            ProviderError: Any failure that retrying will not fix
        """
        raise NotImplementedError


class AlignmentBuffer:
    """
    Accumulates streamed audio parts and alignment frames.

    Streaming providers push every frame here as it arrives and call
    ``mark_complete()`` on the provider's completion signal. The result is
    consumed exactly once through ``finish()``.
    """

    def __init__(self):
        self._audio_parts: List[bytes] = []
        self._chars: List[str] = []
        self._start_ms: List[float] = []
        self._duration_ms: List[float] = []
        self._complete = False
        self._consumed = False

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def frame_chars(self) -> int:
        return len(self._chars)

    def add_audio(self, data: bytes) -> None:
        if data:
            self._audio_parts.append(data)

    def add_frame(
        self,
        chars: Sequence[str],
        start_ms: Sequence[float],
        duration_ms: Sequence[float],
    ) -> None:
        """
        Append one alignment frame.

        Frames whose times restart from zero are rebased onto the end of
        the frames received so far.
        """
        if self._complete:
            raise ProviderError("Alignment frame received after completion")

        size = min(len(chars), len(start_ms), len(duration_ms))
        if size == 0:
            return

        offset = 0.0
        if self._start_ms and start_ms[0] < self._start_ms[-1]:
            offset = self._start_ms[-1] + self._duration_ms[-1]

        self._chars.extend(chars[:size])
        self._start_ms.extend(float(s) + offset for s in start_ms[:size])
        self._duration_ms.extend(float(d) for d in duration_ms[:size])

    def mark_complete(self) -> None:
        self._complete = True

    def finish(self) -> Tuple[bytes, Optional[CharAlignment]]:
        """
        Return the accumulated audio and alignment.

        Raises:
            ProviderError: If the stream never completed or was already consumed
        """
        if not self._complete:
            raise ProviderError("Stream ended before the completion signal")
        if self._consumed:
            raise ProviderError("Alignment buffer already consumed")
        self._consumed = True

        audio = b"".join(self._audio_parts)
        if not self._chars:
            return audio, None
        return audio, CharAlignment(
            chars=self._chars,
            start_ms=self._start_ms,
            duration_ms=self._duration_ms,
        )


# Lazily imported provider classes
_PROVIDER_PATHS: Dict[str, str] = {
    "elevenlabs": "narration_sync.readalong.synthesis_elevenlabs:ElevenLabsProvider",
    "edge": "narration_sync.readalong.synthesis_edge:EdgeProvider",
}

_PROVIDER_FACTORIES: Dict[str, Callable[[], SynthesisProvider]] = {}


def register_provider(name: str, factory: Callable[[], SynthesisProvider]) -> None:
    """Register a provider factory under ``name``."""
    _PROVIDER_FACTORIES[name.lower()] = factory


def available_providers() -> List[str]:
    return sorted(set(_PROVIDER_PATHS) | set(_PROVIDER_FACTORIES))


def get_provider(name: str) -> SynthesisProvider:
    """
    Instantiate a provider by name.

    Raises:
        ProviderError: If the name is unknown or its dependencies are missing
    """
    key = name.lower()
    if key in _PROVIDER_FACTORIES:
        return _PROVIDER_FACTORIES[key]()

    if key not in _PROVIDER_PATHS:
        raise ProviderError(
            f"Unknown narration provider '{name}'. "
            f"Available: {', '.join(available_providers())}"
        )

    module_name, class_name = _PROVIDER_PATHS[key].split(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ProviderError(f"Provider '{name}' is not available: {e}") from e
    return getattr(module, class_name)()


class SynthesisClient:
    """
    Narrates segments through a provider chain with retries.
    """

    def __init__(
        self,
        providers: Sequence[SynthesisProvider],
        policy: Optional[RetryPolicy] = None,
        timeout: float = 600.0,
        learner_pauses: bool = False,
    ):
        """
        Initialize the synthesis client.

        Args:
            providers: Providers to try in order
            policy: Retry policy applied to each provider
            timeout: Per-call timeout in seconds
            learner_pauses: Insert pause markers for slow narration
        """
        if not providers:
            raise ProviderError("At least one narration provider is required")
        self.providers = list(providers)
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self.learner_pauses = learner_pauses

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        voice: Optional[VoiceConfig] = None,
    ) -> "SynthesisClient":
        """Build the provider chain from settings and the requested voice."""
        names = []
        for name in (voice.provider if voice else None,
                     settings.primary_provider,
                     settings.secondary_provider):
            if name and name.lower() not in names:
                names.append(name.lower())

        providers = []
        for name in names:
            try:
                providers.append(get_provider(name))
            except ProviderError as e:
                logger.warning(str(e))

        return cls(
            providers,
            policy=RetryPolicy(settings.max_attempts, settings.base_delay),
            timeout=settings.call_timeout,
            learner_pauses=settings.learner_pauses,
        )

    def prepare_text(self, segment: TextSegment) -> str:
        """Text actually sent to the provider for a segment."""
        text = segment.speech_text
        if self.learner_pauses:
            text = add_pause_markers(text)
        return text

    def synthesize(
        self,
        segment: TextSegment,
        voice: VoiceConfig,
        token: Optional[CancellationToken] = None,
    ) -> RawChunkResult:
        """
        Narrate one segment.

        Args:
            segment: Segment to narrate
            voice: Voice configuration
            token: Optional cancellation token

        Returns:
            RawChunkResult; char_alignment is None when the provider has no timing

        Raises:
            ChunkSynthesisFailure: When every provider in the chain failed
            NarrationCancelled: If the token is cancelled
        """
        speech_text = self.prepare_text(segment)
        errors = []

        for provider in self.providers:
            label = f"{provider.name} segment {segment.ordinal}"
            try:
                response = call_with_retry(
                    lambda: provider.synthesize(speech_text, voice, self.timeout, token),
                    self.policy,
                    token=token,
                    label=label,
                )
            except ProviderError as e:
                errors.append(f"{provider.name}: {e}")
                logger.warning(f"{label} failed: {e}")
                continue

            if not response.audio_bytes:
                errors.append(f"{provider.name}: no audio returned")
                logger.warning(f"{label} returned no audio")
                continue

            if response.char_alignment is None or response.char_alignment.is_empty:
                logger.debug(f"{label}: no character timing in response")

            return RawChunkResult(
                segment=segment,
                audio_bytes=response.audio_bytes,
                char_alignment=response.char_alignment,
                provider=provider.name,
                audio_format=response.audio_format,
                speech_text=speech_text,
            )

        raise ChunkSynthesisFailure(segment.ordinal, "; ".join(errors) or "no providers")
