"""Deterministic, boundary-aware text chunking.

A sliding window of ``size`` characters walks over the article body.  When
the window does not reach the end of the text its end is pulled back to the
last sentence terminator (or whitespace) inside the window, and the next
window starts ``overlap`` characters before that end.
"""

from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass

from helpdesk_rag.exceptions import (
    ChunkingOverflowError,
    ChunkingTimeoutError,
    InvalidConfigurationError,
)
from helpdesk_rag.retrieval.models import Article, Chunk

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 10 * 1024 * 1024
TRUNCATION_MARKER = "\n\n[Content truncated due to size]"
ITERATION_MARGIN = 100

_SENTENCE_END = re.compile(r"[.!?]\s")


@dataclass(frozen=True)
class ChunkingOptions:
    """Chunk size and overlap in characters, plus boundary preferences.

    Raises :class:`~helpdesk_rag.exceptions.InvalidConfigurationError` unless
    ``size > 0`` and ``0 <= overlap < size``.
    """

    size: int = 1000
    overlap: int = 200
    preserve_words: bool = True
    preserve_sentences: bool = True

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise InvalidConfigurationError(f"Invalid chunk size: {self.size}")
        if self.overlap < 0 or self.overlap >= self.size:
            raise InvalidConfigurationError(
                f"Invalid overlap: {self.overlap} (must be 0 <= overlap < size)"
            )


def _find_sentence_end(text: str, target: int, minimum: int) -> int:
    """Position just after the last ``[.!?]`` followed by whitespace in ``[minimum, target)``."""
    last = -1
    for match in _SENTENCE_END.finditer(text, minimum, target + 1):
        last = match.start() + 1
    return last if last > minimum else target


def _find_word_end(text: str, target: int, minimum: int) -> int:
    """Last whitespace position scanning back from *target*, never reaching *minimum*."""
    for i in range(target, minimum, -1):
        if text[i].isspace():
            return i
    return target


def split_text(
    text: str,
    options: ChunkingOptions,
    *,
    deadline: float | None = None,
) -> list[str]:
    """Split *text* into trimmed, overlapping pieces of at most ``options.size`` characters.

    Parameters
    ----------
    text:
        The text to split.
    options:
        Window size, overlap and boundary preferences.
    deadline:
        Optional :func:`time.monotonic` value after which splitting is
        abandoned with :class:`ChunkingTimeoutError`.

    Returns
    -------
    list[str]
        Non-empty pieces in document order.
    """
    length = len(text)
    size, overlap = options.size, options.overlap
    max_iterations = math.ceil(length / max(1, size - overlap)) + ITERATION_MARGIN

    pieces: list[str] = []
    start = 0
    iterations = 0

    while start < length:
        if iterations >= max_iterations:
            raise ChunkingOverflowError(
                f"Text splitting exceeded maximum iterations ({max_iterations})"
            )
        if deadline is not None and time.monotonic() > deadline:
            raise ChunkingTimeoutError(f"Chunking timed out at offset {start}/{length}")
        iterations += 1

        end = start + size
        if end < length:
            if options.preserve_sentences:
                boundary = _find_sentence_end(text, end, start)
            elif options.preserve_words:
                boundary = _find_word_end(text, end, start)
            else:
                boundary = end
            if boundary > start:
                end = boundary

        piece = text[start:end].strip()
        if piece:
            pieces.append(piece)

        if end >= length:
            break

        next_start = end - overlap
        if next_start <= start:
            forced = start + max(1, size // 2)
            if forced > end:
                logger.warning("Forcing progress skips characters %d..%d of %d", end, forced, length)
            else:
                logger.debug("Forcing progress: next start %d <= start %d", next_start, start)
            start = forced
        else:
            start = next_start

    logger.debug("Split %d chars into %d pieces in %d iterations", length, len(pieces), iterations)
    return pieces


class Chunker:
    """Turn articles into :class:`~helpdesk_rag.retrieval.models.Chunk` records.

    Parameters
    ----------
    options:
        Chunking configuration (defaults to ``ChunkingOptions()``).
    timeout:
        Wall-clock allowance per article, in seconds; ``None`` disables it.
    """

    def __init__(self, options: ChunkingOptions | None = None, *, timeout: float | None = None) -> None:
        self.options = options or ChunkingOptions()
        self.timeout = timeout

    def chunk_article(self, article: Article) -> list[Chunk]:
        """Split one article; always returns at least one chunk."""
        content = article.body or ""

        if not content:
            logger.warning("Article %d has empty content, creating empty chunk", article.id)
            return self._build(article, [""])

        if len(content) > MAX_CONTENT_LENGTH:
            logger.warning(
                "Article %d content is very large (%d chars), truncating to %d",
                article.id,
                len(content),
                MAX_CONTENT_LENGTH,
            )
            content = content[:MAX_CONTENT_LENGTH] + TRUNCATION_MARKER

        if len(content) <= self.options.size:
            return self._build(article, [content.strip()])

        deadline = time.monotonic() + self.timeout if self.timeout is not None else None
        pieces = split_text(content, self.options, deadline=deadline)
        if not pieces:
            pieces = [""]
        return self._build(article, pieces)

    @staticmethod
    def _build(article: Article, pieces: list[str]) -> list[Chunk]:
        total = len(pieces)
        return [
            Chunk(
                id=Chunk.make_id(article.id, index),
                article_id=article.id,
                title=article.title,
                content=piece,
                chunk_index=index,
                total_chunks=total,
                url=article.html_url,
                created_at=article.created_at,
                updated_at=article.updated_at,
            )
            for index, piece in enumerate(pieces)
        ]
