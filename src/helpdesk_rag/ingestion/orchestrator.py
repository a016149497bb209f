"""Drive articles through chunking and embedding, one at a time.

Failures are isolated: an article that cannot be chunked is skipped, a
failed embedding batch is retried chunk by chunk, and a chunk that still
fails is left without an embedding.  Any other embedding error marks the
article failed but keeps the embeddings made before it.  The run itself
never aborts.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Protocol, Sequence

from helpdesk_rag.exceptions import BackendError, ChunkingError, EmbeddingInterruptedError
from helpdesk_rag.ingestion.chunker import Chunker, ChunkingOptions
from helpdesk_rag.retrieval.models import Article, Chunk, Embedding, utcnow

logger = logging.getLogger(__name__)

EMBEDDING_BATCH_SIZE = 5
BATCH_DELAY = 0.5
CHUNKING_TIMEOUT = 30.0


class Embedder(Protocol):
    """What the orchestrator needs from an embedding backend client."""

    model: str

    def embed(self, texts: Sequence[str]): ...


@dataclass
class IngestionResult:
    """Everything produced by one run.

    ``chunks`` may contain entries without a matching embedding when
    embedding failed for them; callers treat these as expected.
    """

    chunks: list[Chunk] = field(default_factory=list)
    embeddings: list[Embedding] = field(default_factory=list)
    failed_article_ids: list[int] = field(default_factory=list)

    @property
    def missing_embeddings(self) -> int:
        return len(self.chunks) - len(self.embeddings)


class IngestionOrchestrator:
    """Sequential chunk → embed pipeline.

    Parameters
    ----------
    embedder:
        Embedding backend client (see :class:`~helpdesk_rag.clients.embeddings.EmbeddingClient`).
    options:
        Chunking configuration.
    batch_size:
        Chunks per embedding request.
    batch_delay:
        Pause between successful batches, in seconds.
    chunk_timeout:
        Wall-clock allowance for chunking one article, in seconds.
    sleep / clock:
        Injectable for tests.
    """

    def __init__(
        self,
        embedder: Embedder,
        options: ChunkingOptions | None = None,
        *,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        batch_delay: float = BATCH_DELAY,
        chunk_timeout: float | None = CHUNKING_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.embedder = embedder
        self.chunker = Chunker(options, timeout=chunk_timeout)
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep
        self._clock = clock

    @property
    def options(self) -> ChunkingOptions:
        return self.chunker.options

    def process_articles(self, articles: Sequence[Article]) -> IngestionResult:
        """Chunk and embed every article, absorbing per-article failures."""
        logger.info("Processing %d articles into chunks and embeddings...", len(articles))
        started = time.monotonic()
        result = IngestionResult()

        for position, article in enumerate(articles, 1):
            logger.info("[%d/%d] Processing %r (ID: %d)", position, len(articles), article.title, article.id)

            try:
                chunks = self.chunker.chunk_article(article)
            except ChunkingError as exc:
                logger.error("Failed to chunk article %d, skipping: %s", article.id, exc)
                result.failed_article_ids.append(article.id)
                continue
            except Exception:
                logger.exception("Unexpected error chunking article %d, skipping", article.id)
                result.failed_article_ids.append(article.id)
                continue

            logger.info("  -> created %d chunks", len(chunks))
            result.chunks.extend(chunks)

            try:
                embeddings = self.embed_chunks(chunks)
            except EmbeddingInterruptedError as exc:
                logger.error("Failed to create embeddings for article %d: %s", article.id, exc)
                result.failed_article_ids.append(article.id)
                result.embeddings.extend(exc.embeddings)
                continue

            result.embeddings.extend(embeddings)
            logger.info("  -> %d/%d embeddings created", len(embeddings), len(chunks))

            if position % 5 == 0 or position == len(articles):
                elapsed = time.monotonic() - started
                remaining = elapsed / position * (len(articles) - position)
                logger.info(
                    "Progress: %d/%d articles (%d%%) - %.0fs elapsed, ~%.0fs remaining",
                    position,
                    len(articles),
                    position * 100 // len(articles),
                    elapsed,
                    remaining,
                )

        logger.info(
            "Article processing completed in %.0fs: %d chunks, %d embeddings",
            time.monotonic() - started,
            len(result.chunks),
            len(result.embeddings),
        )
        return result

    def embed_chunks(self, chunks: Sequence[Chunk]) -> list[Embedding]:
        """Embed *chunks* in batches; a failed batch falls back to one call per chunk.

        Backend errors are absorbed.  Any other error stops the loop and is
        raised as :class:`EmbeddingInterruptedError` carrying the embeddings
        built so far.
        """
        embeddings: list[Embedding] = []
        total_batches = -(-len(chunks) // self.batch_size)

        for start in range(0, len(chunks), self.batch_size):
            batch = list(chunks[start : start + self.batch_size])
            batch_number = start // self.batch_size + 1

            try:
                embeddings.extend(self._embed_batch(batch))
            except BackendError as exc:
                logger.error("Embedding batch %d/%d failed: %s", batch_number, total_batches, exc)
                logger.info("Retrying batch %d as individual chunks...", batch_number)
                for chunk in batch:
                    try:
                        embeddings.extend(self._embed_batch([chunk]))
                    except BackendError as chunk_exc:
                        logger.error("Failed to create embedding for chunk %s: %s", chunk.id, chunk_exc)
                    except Exception as chunk_exc:
                        logger.exception("Unexpected error embedding chunk %s", chunk.id)
                        raise EmbeddingInterruptedError(str(chunk_exc), embeddings) from chunk_exc
                continue
            except Exception as exc:
                logger.exception("Unexpected error in embedding batch %d/%d", batch_number, total_batches)
                raise EmbeddingInterruptedError(str(exc), embeddings) from exc

            if start + self.batch_size < len(chunks):
                self._sleep(self.batch_delay)

        return embeddings

    def _embed_batch(self, batch: list[Chunk]) -> list[Embedding]:
        response = self.embedder.embed([chunk.embedding_text() for chunk in batch])
        created_at = self._clock()
        return [
            Embedding(
                id=Embedding.make_id(chunk.id),
                chunk_id=chunk.id,
                vector=vector,
                model=self.embedder.model,
                created_at=created_at,
            )
            for chunk, vector in zip(batch, response.vectors)
        ]
