"""
Narration error taxonomy.

Transient provider errors are retried inside the synthesis and
transcription clients and never reach the orchestrator. Everything else
propagates to the orchestrator, which decides between degrading to
fallback timing and failing the job.
"""


class NarrationError(Exception):
    """Base class for all narration engine errors."""
    pass


class InvalidInput(NarrationError):
    """Raised for empty/whitespace text or unusable chunking limits."""
    pass


class ProviderError(NarrationError):
    """A provider call failed in a way that retrying will not fix."""
    pass


class TransientProviderError(ProviderError):
    """Timeout, rate limit, connection drop or 5xx from a provider."""
    pass


class ChunkSynthesisFailure(NarrationError):
    """A segment could not be synthesized by any provider in the chain."""

    def __init__(self, ordinal: int, message: str):
        super().__init__(f"Segment {ordinal}: {message}")
        self.ordinal = ordinal


class AlignmentDataMissing(NarrationError):
    """The provider returned audio without character timing."""
    pass


class AudioDecodeError(NarrationError):
    """Audio bytes could not be decoded or measured."""
    pass


class TranscriptionFailure(NarrationError):
    """The transcription provider failed after exhausting retries."""
    pass


class NormalizationDegenerate(NarrationError):
    """Measured audio duration is zero, negative or not finite."""
    pass


class JobFailed(NarrationError):
    """The whole narration job was aborted."""
    pass


class NarrationCancelled(NarrationError):
    """The caller cancelled the request."""
    pass
