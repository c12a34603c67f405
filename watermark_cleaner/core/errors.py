"""Exception hierarchy shared across the cleanup pipeline."""

from __future__ import annotations


class CleanupError(Exception):
    """Base class for every error raised by the pipeline."""


class ProviderError(CleanupError):
    """A remote removal provider did not return a usable result."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class TransientProviderError(ProviderError):
    """Retryable failure: timeouts, connection resets, HTTP 5xx or 429."""


class FatalProviderError(ProviderError):
    """Non-retryable rejection by a provider."""


class PayloadTooLargeError(ProviderError):
    """The submitted payload exceeds what the provider accepts.

    This is the only provider error allowed to cross a unit boundary: the
    chunk splitter reacts to it by bisecting the page range.
    """


class PipelineStageError(CleanupError):
    """Unrecoverable structural failure tied to a named pipeline stage."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage
        self.detail = message


class DecodeError(PipelineStageError):
    """Input media could not be decoded."""

    def __init__(self, message: str, stage: str = "decode") -> None:
        super().__init__(stage, message)


class UnsupportedMediaError(DecodeError):
    """Input bytes do not match any supported media kind."""


class ReassemblyError(PipelineStageError):
    """Page or frame count changed between split and reassembly."""

    def __init__(self, message: str, stage: str = "reassemble") -> None:
        super().__init__(stage, message)


class OperationCancelled(CleanupError):
    """The run's deadline elapsed or the caller cancelled it."""
