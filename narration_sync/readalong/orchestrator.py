"""
Narration Pipeline

Orchestrates a narration request from text to audio plus word timeline:
1. Chunk the text into provider-sized segments
2. Synthesize segments concurrently, reassembled in order
3. Align each chunk (character timing, or transcription refinement)
4. Substitute fallback timing for chunks that could not be aligned
5. Merge chunks onto one timeline
6. Normalize the timeline to the measured audio duration

The request's progress is an explicit state machine; every transition is
recorded in the result's state history.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from narration_sync.readalong.audio import measure_duration, silence_wav
from narration_sync.readalong.char_aligner import align_chunk_words, require_alignment
from narration_sync.readalong.chunk_merger import ChunkTiming, MergedNarration, chunk_duration, merge_chunks
from narration_sync.readalong.errors import (
    AlignmentDataMissing,
    AudioDecodeError,
    ChunkSynthesisFailure,
    InvalidInput,
    JobFailed,
    NarrationError,
    NormalizationDegenerate,
    ProviderError,
    TranscriptionFailure,
)
from narration_sync.readalong.fallback import fallback_duration, generate_fallback_timings
from narration_sync.readalong.models import (
    Accuracy,
    NarrationResult,
    PipelineState,
    RawChunkResult,
    TextSegment,
    Timeline,
    VoiceConfig,
    WordTiming,
    classify_accuracy,
)
from narration_sync.readalong.normalizer import normalize_timeline
from narration_sync.readalong.pacing import add_pause_markers
from narration_sync.readalong.retry import CancellationToken
from narration_sync.readalong.sequence_aligner import align_words_to_transcript
from narration_sync.readalong.settings import EngineSettings
from narration_sync.readalong.synthesis import SynthesisClient
from narration_sync.readalong.text_chunker import chunk_text, iter_words
from narration_sync.readalong.transcription import TranscriptionClient
from narration_sync.utils import logger
from narration_sync.utils.config import config

S = PipelineState

# Legal transitions; FAILED is reachable from every non-terminal state
TRANSITIONS: Dict[Optional[PipelineState], Tuple[PipelineState, ...]] = {
    None: (S.CHUNKING,),
    S.CHUNKING: (S.SYNTHESIZING, S.REJECTED),
    S.SYNTHESIZING: (S.ALIGNING, S.DEGRADED),
    S.ALIGNING: (S.MERGING, S.DEGRADED),
    S.DEGRADED: (S.FALLBACK,),
    S.FALLBACK: (S.MERGING, S.DONE),
    S.MERGING: (S.NORMALIZING,),
    S.NORMALIZING: (S.DONE, S.DEGRADED),
    S.DONE: (),
    S.REJECTED: (),
    S.FAILED: (),
}

TERMINAL_STATES = (S.DONE, S.REJECTED, S.FAILED)

TOTAL_STEPS = 5


class PipelineStateMachine:
    """Tracks and validates the state of one narration request."""

    def __init__(self):
        self.history: List[PipelineState] = []

    @property
    def current(self) -> Optional[PipelineState]:
        return self.history[-1] if self.history else None

    def advance(self, state: PipelineState) -> None:
        current = self.current
        allowed = TRANSITIONS[current]
        if state == S.FAILED and current not in TERMINAL_STATES:
            allowed = allowed + (S.FAILED,)
        if state not in allowed:
            name = current.value if current else "start"
            raise ValueError(f"Illegal pipeline transition {name} -> {state.value}")
        self.history.append(state)
        logger.debug(f"Pipeline state: {state.value}")


@dataclass
class _AlignedChunk:
    timing: ChunkTiming
    degraded: bool = False  # Fallback timing was substituted
    forced_fallback: bool = False  # Transcription failed for this chunk


class NarrationPipeline:
    """
    Turns text into narrated audio with per-word timing.

    One instance can serve many requests; each call to ``narrate`` owns
    its own segments, buffers and offsets.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        synthesis_client: Optional[SynthesisClient] = None,
        transcription_client: Optional[TranscriptionClient] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            settings: Engine settings (defaults to the YAML configuration)
            synthesis_client: Client used for every request (built per
                request from settings and voice when omitted)
            transcription_client: Client for timing refinement (built from
                settings on first use when omitted)
        """
        self.settings = settings or EngineSettings.from_config()
        self.synthesis_client = synthesis_client
        self._transcription_client = transcription_client
        self._transcription_resolved = transcription_client is not None

    @property
    def transcription_client(self) -> Optional[TranscriptionClient]:
        if not self._transcription_resolved:
            self._transcription_client = TranscriptionClient.from_settings(self.settings)
            self._transcription_resolved = True
        return self._transcription_client

    def _provider_text_transform(self) -> Optional[Callable[[str], str]]:
        """Rewrite the synthesis client applies to segment text, if any."""
        pacing = self.settings.learner_pauses
        if self.synthesis_client is not None:
            pacing = self.synthesis_client.learner_pauses
        return add_pause_markers if pacing else None

    def narrate(
        self,
        text: str,
        voice: Optional[VoiceConfig] = None,
        token: Optional[CancellationToken] = None,
        on_chunk_done: Optional[Callable[[TextSegment], None]] = None,
    ) -> NarrationResult:
        """
        Narrate text and time every word.

        Args:
            text: Original chapter text
            voice: Voice configuration (defaults from settings.yaml)
            token: Cancellation token owned by the caller
            on_chunk_done: Called after each segment is synthesized

        Returns:
            NarrationResult with audio, timeline and state history

        Raises:
            InvalidInput: If the text is empty or whitespace
            JobFailed: If a chunk failed and on_chunk_failure is "abort"
            NarrationCancelled: If the token was cancelled
        """
        voice = voice or VoiceConfig(voice_id=config.voice, language=config.language)
        token = token or CancellationToken()
        machine = PipelineStateMachine()

        machine.advance(S.CHUNKING)
        logger.step("Chunking text", 1, TOTAL_STEPS)
        if not text or not text.strip():
            machine.advance(S.REJECTED)
            raise InvalidInput("Text to narrate is empty")
        try:
            segments = chunk_text(
                text,
                self.settings.max_chunk_size,
                self.settings.chunk_unit,
                transform=self._provider_text_transform(),
            )
        except InvalidInput:
            machine.advance(S.REJECTED)
            raise
        segments = [s for s in segments if s.speech_text]

        try:
            return self._run(text, segments, voice, token, machine, on_chunk_done)
        except NarrationError as e:
            machine.advance(S.FAILED)
            logger.error(f"Narration failed: {e}")
            raise

    def _run(
        self,
        text: str,
        segments: List[TextSegment],
        voice: VoiceConfig,
        token: CancellationToken,
        machine: PipelineStateMachine,
        on_chunk_done: Optional[Callable[[TextSegment], None]],
    ) -> NarrationResult:
        machine.advance(S.SYNTHESIZING)
        logger.step(f"Synthesizing {len(segments)} segment(s)", 2, TOTAL_STEPS)
        try:
            client = self.synthesis_client or SynthesisClient.from_settings(self.settings, voice)
        except ProviderError as e:
            # No usable provider: every segment has failed synthesis
            logger.error(f"No narration provider available: {e}")
            if self.settings.on_chunk_failure == "abort":
                raise JobFailed(f"Aborting narration: {e}") from e
            results = [RawChunkResult(segment=s, failed=True, error=str(e)) for s in segments]
        else:
            results = self._synthesize_all(client, segments, voice, token, on_chunk_done)
        failed = [r.segment.ordinal for r in results if r.failed]

        token.raise_if_cancelled()
        logger.step("Aligning word timing", 3, TOTAL_STEPS)
        if len(failed) == len(results):
            machine.advance(S.DEGRADED)
            aligned = [self._fallback_chunk(r) for r in results]
        else:
            machine.advance(S.ALIGNING)
            aligned = []
            for result in results:
                token.raise_if_cancelled()
                if result.failed:
                    aligned.append(self._fallback_chunk(result))
                else:
                    aligned.append(self._align_chunk(result, voice, token))
            if any(a.degraded for a in aligned):
                machine.advance(S.DEGRADED)

        if machine.current == S.DEGRADED:
            machine.advance(S.FALLBACK)
            logger.warning(
                f"Fallback timing used for {sum(a.degraded for a in aligned)} "
                f"of {len(aligned)} segment(s)"
            )

        token.raise_if_cancelled()
        machine.advance(S.MERGING)
        logger.step("Merging chunks", 4, TOTAL_STEPS)
        merged = merge_chunks(
            [a.timing for a in aligned],
            self.settings.inter_chunk_pause,
            self.settings.sample_rate,
        )

        machine.advance(S.NORMALIZING)
        logger.step("Normalizing timeline", 5, TOTAL_STEPS)
        forced = any(a.forced_fallback for a in aligned)
        try:
            words, total = normalize_timeline(
                merged.words,
                merged.total_duration_sec,
                self._measure(merged),
                self.settings.min_word_duration,
            )
        except NormalizationDegenerate as e:
            logger.warning(f"{e}; using fallback timing for the whole text")
            machine.advance(S.DEGRADED)
            machine.advance(S.FALLBACK)
            words = generate_fallback_timings(
                text, self.settings.fallback_words_per_second,
                default_rate=self.settings.fallback_words_per_second,
            )
            total = fallback_duration(len(words), self.settings.fallback_words_per_second)
            forced = True

        if forced:
            accuracy = Accuracy.FALLBACK
        else:
            accuracy = classify_accuracy(
                sum(1 for w in words if w.is_matched),
                len(words),
                self.settings.perfect_threshold,
                self.settings.good_threshold,
            )

        timeline = Timeline(words=tuple(words), total_duration_sec=total, accuracy=accuracy)
        machine.advance(S.DONE)
        logger.success(
            f"Narrated {len(words)} words ({total:.1f}s, accuracy: {accuracy.value})"
        )

        return NarrationResult(
            audio_bytes=merged.audio_bytes,
            audio_format=merged.audio_format,
            timeline=timeline,
            state_history=list(machine.history),
            failed_segments=failed,
        )

    def _synthesize_all(
        self,
        client: SynthesisClient,
        segments: List[TextSegment],
        voice: VoiceConfig,
        token: CancellationToken,
        on_chunk_done: Optional[Callable[[TextSegment], None]],
    ) -> List[RawChunkResult]:
        """Synthesize segments concurrently; results come back in segment order."""
        results: Dict[int, RawChunkResult] = {}
        executor = ThreadPoolExecutor(max_workers=max(1, self.settings.workers))
        try:
            futures = {
                executor.submit(client.synthesize, segment, voice, token): segment
                for segment in segments
            }
            for future in as_completed(futures):
                segment = futures[future]
                try:
                    results[segment.ordinal] = future.result()
                except ChunkSynthesisFailure as e:
                    logger.warning(str(e))
                    if self.settings.on_chunk_failure == "abort":
                        raise JobFailed(f"Aborting narration: {e}") from e
                    results[segment.ordinal] = RawChunkResult(
                        segment=segment, failed=True, error=str(e)
                    )
                if on_chunk_done:
                    on_chunk_done(segment)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        return [results[s.ordinal] for s in segments]

    def _fallback_chunk(self, result: RawChunkResult) -> _AlignedChunk:
        """Synthetic timing for a chunk; silence stands in for missing audio."""
        segment = result.segment
        rate = self.settings.fallback_words_per_second
        words = generate_fallback_timings(
            segment.speech_text, rate, segment.speech_offset, default_rate=rate
        )
        synthetic_total = fallback_duration(len(words), rate)

        if result.failed or not result.audio_bytes:
            result = RawChunkResult(
                segment=segment,
                audio_bytes=silence_wav(synthetic_total, self.settings.sample_rate),
                provider=result.provider,
                audio_format="wav",
                speech_text=result.speech_text,
                failed=result.failed,
                error=result.error,
            )
            duration = synthetic_total
        else:
            # Spread the synthetic words over the audio that exists
            duration = chunk_duration(result, words)
            if duration > 0 and synthetic_total > 0:
                scale = duration / synthetic_total
                words = [w.with_times(w.start_sec * scale, w.end_sec * scale) for w in words]

        return _AlignedChunk(ChunkTiming(result, words, duration), degraded=True)

    def _align_chunk(
        self,
        result: RawChunkResult,
        voice: VoiceConfig,
        token: CancellationToken,
    ) -> _AlignedChunk:
        segment = result.segment
        settings = self.settings
        duration = chunk_duration(result, [])

        def char_words() -> List[WordTiming]:
            return align_chunk_words(
                segment.speech_text,
                segment.speech_offset,
                require_alignment(result),
                settings.lookahead_window,
            )

        wants_transcription = (
            settings.transcription_mode == "always"
            or (settings.transcription_mode == "missing" and not result.has_alignment)
        )
        transcription = self.transcription_client if wants_transcription else None

        if transcription is None:
            try:
                words = char_words()
            except AlignmentDataMissing as e:
                logger.warning(f"{e}; no transcription configured")
                return self._fallback_chunk(result)
            return _AlignedChunk(ChunkTiming(result, words, duration or chunk_duration(result, words)))

        try:
            heard = transcription.transcribe(
                result.audio_bytes, voice.language, token, result.audio_format
            )
        except TranscriptionFailure as e:
            logger.warning(f"Segment {segment.ordinal}: transcription failed: {e}")
            fallback = self._fallback_chunk(result)
            fallback.forced_fallback = True
            return fallback

        if not duration:
            duration = heard.duration_sec or (heard.words[-1].end_sec if heard.words else 0.0)

        words = align_words_to_transcript(
            list(iter_words(segment.speech_text, segment.speech_offset)),
            heard.words,
            settings.gap_penalty,
            settings.similarity_high,
            settings.similarity_low,
            duration_sec=duration or None,
        )
        return _AlignedChunk(ChunkTiming(result, words, duration))

    def _measure(self, merged: MergedNarration) -> float:
        """Measured duration of the merged audio, or the timeline's own total."""
        try:
            return measure_duration(merged.audio_bytes)
        except AudioDecodeError as e:
            logger.debug(f"Using computed duration: {e}")
            return merged.total_duration_sec


def narrate(
    text: str,
    voice: Optional[VoiceConfig] = None,
    token: Optional[CancellationToken] = None,
) -> NarrationResult:
    """Convenience function running the default pipeline."""
    return NarrationPipeline().narrate(text, voice, token)
