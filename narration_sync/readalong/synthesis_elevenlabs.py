"""
ElevenLabs narration provider.

Streams audio with character timestamps from the ElevenLabs HTTP API.
Each streamed line is a JSON object holding a base64 audio part and,
usually, an alignment frame for the characters voiced in that part.
"""

import base64
import json
import os
from typing import Dict, Optional

import requests

from narration_sync.readalong.errors import ProviderError, TransientProviderError
from narration_sync.readalong.models import VoiceConfig
from narration_sync.readalong.retry import CancellationToken
from narration_sync.readalong.synthesis import AlignmentBuffer, SynthesisProvider, SynthesisResponse
from narration_sync.utils import logger
from narration_sync.utils.config import config

API_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}/stream/with-timestamps"

# Spanish narrator voices
ELEVENLABS_VOICES = {
    "isabel": "EXAVITQu4vr4xnSDxMaL",
    "diego": "GBv7mTt0atIp3Br8iCZE",
    "lola": "pFZP5JQG7iQjIQuC4Bku",
    "carlos": "IKne3meq5aSn9XLyUdCD",
}

DEFAULT_VOICE = "isabel"
DEFAULT_MODEL = "eleven_multilingual_v2"

# Tuned for slow, clear speech for learners
DEFAULT_VOICE_SETTINGS = {
    "stability": 0.85,
    "similarity_boost": 0.75,
}

# Dropped or stalled connections, worth another attempt
_RETRYABLE_REQUEST_ERRORS = (
    requests.Timeout,
    requests.ConnectionError,
    requests.exceptions.ChunkedEncodingError,
)


def resolve_voice_id(voice_id: Optional[str]) -> str:
    """Map a shortcut name to an ElevenLabs voice ID."""
    if voice_id and voice_id.lower() in ELEVENLABS_VOICES:
        return ELEVENLABS_VOICES[voice_id.lower()]
    # Edge voice names cannot be used here
    if not voice_id or voice_id.endswith("Neural"):
        return ELEVENLABS_VOICES[DEFAULT_VOICE]
    return voice_id


class ElevenLabsProvider(SynthesisProvider):
    """Narration with per-character timing from ElevenLabs."""

    name = "elevenlabs"

    def __init__(self, api_key: Optional[str] = None, session: Optional[requests.Session] = None):
        self.api_key = api_key or os.environ.get("ELEVENLABS_API_KEY")
        if not self.api_key:
            raise ProviderError("ELEVENLABS_API_KEY is not set")
        self.session = session or requests.Session()

    def _build_payload(self, text: str, voice: VoiceConfig) -> Dict:
        voice_settings = dict(DEFAULT_VOICE_SETTINGS)
        voice_settings.update(voice.params.get("voice_settings", {}))
        if voice.rate != 1.0:
            voice_settings["speed"] = voice.rate
        return {
            "text": text,
            "model_id": voice.model_id or config.get("provider", "model_id", default=DEFAULT_MODEL),
            "voice_settings": voice_settings,
        }

    def synthesize(
        self,
        text: str,
        voice: VoiceConfig,
        timeout: float,
        token: Optional[CancellationToken] = None,
    ) -> SynthesisResponse:
        voice_id = resolve_voice_id(voice.voice_id)
        url = API_URL.format(voice_id=voice_id)
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            response = self.session.post(
                url,
                headers=headers,
                json=self._build_payload(text, voice),
                stream=True,
                timeout=timeout,
            )
        except requests.RequestException as e:
            raise _request_error("ElevenLabs request failed", e) from e

        with response:
            self._check_status(response)
            buffer = AlignmentBuffer()
            try:
                for line in response.iter_lines():
                    if token is not None:
                        token.raise_if_cancelled()
                    if not line:
                        continue
                    self._consume_line(buffer, line)
            except requests.RequestException as e:
                raise _request_error("ElevenLabs stream interrupted", e) from e
            buffer.mark_complete()

        audio, alignment = buffer.finish()
        logger.debug(
            f"ElevenLabs returned {len(audio)} bytes, "
            f"{len(alignment) if alignment else 0} timed characters"
        )
        return SynthesisResponse(audio_bytes=audio, char_alignment=alignment, audio_format="mp3")

    def _check_status(self, response: requests.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        detail = response.text[:200]
        if status == 429 or status >= 500:
            raise TransientProviderError(f"ElevenLabs returned {status}: {detail}")
        raise ProviderError(f"ElevenLabs returned {status}: {detail}")

    def _consume_line(self, buffer: AlignmentBuffer, line: bytes) -> None:
        try:
            frame = json.loads(line)
        except ValueError as e:
            raise ProviderError(f"Malformed stream frame from ElevenLabs: {e}") from e

        audio_b64 = frame.get("audio_base64")
        if audio_b64:
            try:
                buffer.add_audio(base64.b64decode(audio_b64))
            except ValueError as e:
                raise ProviderError(f"Undecodable audio frame from ElevenLabs: {e}") from e

        alignment = frame.get("alignment") or frame.get("normalized_alignment")
        if not alignment:
            return

        chars = alignment.get("characters") or []
        starts = alignment.get("character_start_times_seconds") or []
        ends = alignment.get("character_end_times_seconds") or []
        buffer.add_frame(
            chars,
            [s * 1000.0 for s in starts],
            [(e - s) * 1000.0 for s, e in zip(starts, ends)],
        )


def _request_error(context: str, error: requests.RequestException) -> ProviderError:
    """Map a requests failure onto the provider error taxonomy."""
    if isinstance(error, _RETRYABLE_REQUEST_ERRORS):
        return TransientProviderError(f"{context}: {error}")
    return ProviderError(f"{context}: {error}")


def list_voices():
    """List built-in ElevenLabs voice shortcuts."""
    return dict(ELEVENLABS_VOICES)
