"""
Edge narration provider using edge-tts.

Uses Microsoft Edge's neural voices. Edge reports word boundaries
rather than character timing, so each boundary word is spread evenly
over its characters to produce a CharAlignment in the provider's own
text representation.
"""

import asyncio
import concurrent.futures
from typing import List, Optional

import aiohttp
import edge_tts
from edge_tts import exceptions as edge_exceptions

from narration_sync.readalong.errors import ProviderError, TransientProviderError
from narration_sync.readalong.models import VoiceConfig
from narration_sync.readalong.retry import CancellationToken
from narration_sync.readalong.synthesis import AlignmentBuffer, SynthesisProvider, SynthesisResponse
from narration_sync.utils import logger

# Voice shortcuts
EDGE_VOICES = {
    "isabel": "es-ES-ElviraNeural",
    "lola": "es-MX-DaliaNeural",
    "diego": "es-ES-AlvaroNeural",
    "carlos": "es-MX-JorgeNeural",
    "male": "en-US-GuyNeural",
    "female": "en-US-JennyNeural",
    "narrator": "en-US-DavisNeural",
}

# Default voice per language hint
DEFAULT_VOICES = {
    "es": "es-ES-ElviraNeural",
    "en": "en-US-DavisNeural",
}

# Edge reports offsets in 100-nanosecond ticks
TICKS_PER_MS = 10_000

_TRANSIENT_ERRORS = (
    edge_exceptions.NoAudioReceived,
    edge_exceptions.WebSocketError,
    edge_exceptions.UnexpectedResponse,
    edge_exceptions.UnknownResponse,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
)


def resolve_voice(voice: VoiceConfig) -> str:
    """Map a voice configuration to an Edge voice name."""
    voice_id = voice.voice_id
    if voice_id and voice_id.lower() in EDGE_VOICES:
        return EDGE_VOICES[voice_id.lower()]
    if voice_id and voice_id.endswith("Neural"):
        return voice_id
    language = (voice.language or "es").split("-")[0].lower()
    return DEFAULT_VOICES.get(language, DEFAULT_VOICES["es"])


def rate_string(rate: float) -> str:
    """Convert speed multiplier to edge-tts rate string."""
    # Speed 1.0 = +0%, 0.5 = -50%, 2.0 = +100%
    percentage = int(round((rate - 1.0) * 100))
    if percentage >= 0:
        return f"+{percentage}%"
    else:
        return f"{percentage}%"


class EdgeProvider(SynthesisProvider):
    """Narration through edge-tts with word-boundary timing."""

    name = "edge"

    def _add_word(self, buffer: AlignmentBuffer, word: str, offset: int, duration: int,
                  previous_end_ms: Optional[float]) -> float:
        start_ms = offset / TICKS_PER_MS
        duration_ms = duration / TICKS_PER_MS

        chars: List[str] = []
        starts: List[float] = []
        durations: List[float] = []

        if previous_end_ms is not None:
            # Separator between words spans the silence between them
            chars.append(" ")
            starts.append(previous_end_ms)
            durations.append(max(0.0, start_ms - previous_end_ms))

        per_char = duration_ms / len(word)
        for i, char in enumerate(word):
            chars.append(char)
            starts.append(start_ms + i * per_char)
            durations.append(per_char)

        buffer.add_frame(chars, starts, durations)
        return start_ms + duration_ms

    async def _stream(self, text: str, voice: VoiceConfig, token: Optional[CancellationToken]):
        communicate = edge_tts.Communicate(
            text,
            resolve_voice(voice),
            rate=rate_string(voice.rate),
            boundary="WordBoundary",
        )
        buffer = AlignmentBuffer()
        previous_end_ms = None

        async for chunk in communicate.stream():
            if token is not None:
                token.raise_if_cancelled()
            if chunk["type"] == "audio":
                buffer.add_audio(chunk["data"])
            elif chunk["type"] == "WordBoundary" and chunk.get("text"):
                previous_end_ms = self._add_word(
                    buffer, chunk["text"], chunk["offset"], chunk["duration"], previous_end_ms
                )

        buffer.mark_complete()
        return buffer.finish()

    def _run(self, coro):
        """Run a coroutine whether or not an event loop is already running."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro)
        # We're in an async context, use a separate thread
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
            return executor.submit(asyncio.run, coro).result()

    def synthesize(
        self,
        text: str,
        voice: VoiceConfig,
        timeout: float,
        token: Optional[CancellationToken] = None,
    ) -> SynthesisResponse:
        try:
            audio, alignment = self._run(
                asyncio.wait_for(self._stream(text, voice, token), timeout=timeout)
            )
        except _TRANSIENT_ERRORS as e:
            raise TransientProviderError(f"Edge TTS failed: {e!r}") from e
        except ValueError as e:
            raise ProviderError(f"Edge TTS rejected the request: {e}") from e

        logger.debug(
            f"Edge TTS returned {len(audio)} bytes, "
            f"{len(alignment) if alignment else 0} timed characters"
        )
        return SynthesisResponse(audio_bytes=audio, char_alignment=alignment, audio_format="mp3")


def list_voices():
    """List built-in Edge voice shortcuts."""
    return dict(EDGE_VOICES)
