"""Exception hierarchy shared by the chunker, the vector store and the backend clients.

Errors that signal misuse (bad configuration, wrong vector size, store not
loaded) propagate to the caller.  Backend errors carry the HTTP status so
the retry policy can decide whether another attempt makes sense.
"""

from __future__ import annotations


class HelpdeskRagError(Exception):
    """Base class for every error raised by this package."""


class InvalidConfigurationError(HelpdeskRagError, ValueError):
    """Chunking (or other) parameters are out of their allowed range."""


class ChunkingError(HelpdeskRagError):
    """Splitting a single article failed; fatal to that article only."""


class ChunkingOverflowError(ChunkingError):
    """The splitter exceeded its iteration safety bound."""


class ChunkingTimeoutError(ChunkingError):
    """The splitter ran past its wall-clock allowance."""


class DimensionMismatchError(HelpdeskRagError, ValueError):
    """A query vector and a stored vector have different lengths."""


class NotLoadedError(HelpdeskRagError, RuntimeError):
    """A vector-store accessor was used before :meth:`load`."""


class BackendError(HelpdeskRagError):
    """A call to a remote backend failed.

    Parameters
    ----------
    message:
        Human-readable description.
    status_code:
        HTTP status returned by the backend, ``None`` for transport errors.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Client errors (4xx) are permanent, except 429 (rate limited)."""
        if self.status_code is None:
            return True
        return not (400 <= self.status_code < 500 and self.status_code != 429)


class BackendTimeoutError(BackendError):
    """The backend did not answer within the configured timeout."""

    @property
    def retryable(self) -> bool:
        return True


class EmbeddingInterruptedError(HelpdeskRagError):
    """Embedding an article stopped on an unexpected error.

    ``embeddings`` holds the embeddings built before the failure.
    """

    def __init__(self, message: str, embeddings: list) -> None:
        super().__init__(message)
        self.embeddings = embeddings
