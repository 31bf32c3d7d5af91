"""
Audio helpers: measure, decode, join and encode narration audio.

Decoding goes through soundfile (libsndfile), which reads WAV, FLAC,
OGG and, with libsndfile 1.1+, MP3.
"""

import io
from typing import List, Sequence, Tuple

import numpy as np
import soundfile as sf

from narration_sync.readalong.errors import AudioDecodeError
from narration_sync.utils import logger


def measure_duration(audio_bytes: bytes) -> float:
    """
    Duration of encoded audio in seconds.

    Raises:
        AudioDecodeError: If the bytes cannot be read
    """
    if not audio_bytes:
        raise AudioDecodeError("No audio data")
    try:
        info = sf.info(io.BytesIO(audio_bytes))
    except (RuntimeError, TypeError) as e:
        raise AudioDecodeError(f"Cannot read audio: {e}") from e
    if info.samplerate <= 0:
        raise AudioDecodeError("Audio reports no sample rate")
    return info.frames / info.samplerate


def _resample(audio: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resampling."""
    if source_rate == target_rate or len(audio) == 0:
        return audio
    samples = int(round(len(audio) * target_rate / source_rate))
    source_times = np.arange(len(audio)) / source_rate
    target_times = np.arange(samples) / target_rate
    return np.interp(target_times, source_times, audio).astype(np.float32)


def decode(audio_bytes: bytes, sample_rate: int) -> np.ndarray:
    """
    Decode audio to mono float32 samples at ``sample_rate``.

    Raises:
        AudioDecodeError: If the bytes cannot be decoded
    """
    try:
        audio, source_rate = sf.read(io.BytesIO(audio_bytes), dtype="float32")
    except (RuntimeError, TypeError) as e:
        raise AudioDecodeError(f"Cannot decode audio: {e}") from e

    # Convert to mono if stereo
    if audio.ndim > 1:
        audio = audio.mean(axis=1)

    return _resample(audio.astype(np.float32), source_rate, sample_rate)


def silence(seconds: float, sample_rate: int) -> np.ndarray:
    return np.zeros(max(0, int(round(seconds * sample_rate))), dtype=np.float32)


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode float samples as 16-bit PCM WAV."""
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


def silence_wav(seconds: float, sample_rate: int) -> bytes:
    """A WAV file holding ``seconds`` of silence."""
    return encode_wav(silence(seconds, sample_rate), sample_rate)


def join_audio(
    parts: Sequence[Tuple[bytes, str]],
    pause_sec: float,
    sample_rate: int,
) -> Tuple[bytes, str]:
    """
    Join encoded audio parts into one artifact.

    Args:
        parts: (audio_bytes, audio_format) per chunk, in order
        pause_sec: Silence inserted between parts
        sample_rate: Sample rate of the joined artifact

    Returns:
        (audio_bytes, audio_format). WAV with real silence when every part
        decodes, otherwise the raw bytes concatenated.
    """
    if not parts:
        return b"", "wav"

    try:
        decoded = [decode(audio, sample_rate) for audio, _ in parts]
    except AudioDecodeError as e:
        logger.warning(f"Falling back to raw audio concatenation: {e}")
        return b"".join(audio for audio, _ in parts), parts[0][1]

    pieces: List[np.ndarray] = []
    gap = silence(pause_sec, sample_rate)
    for i, samples in enumerate(decoded):
        if i > 0:
            pieces.append(gap)
        pieces.append(samples)

    return encode_wav(np.concatenate(pieces), sample_rate), "wav"
