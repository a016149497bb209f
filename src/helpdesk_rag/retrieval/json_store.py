"""File-backed vector store with exhaustive cosine-similarity search.

The whole store (articles, chunks, embeddings, metadata) lives in memory
and is rewritten as a single JSON document on every mutation.  Writes go
to a temporary file that is renamed over the target, so a failed save
never leaves a truncated store behind.
"""

from __future__ import annotations

import logging
import math
import os
import tempfile
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

from helpdesk_rag.config import settings
from helpdesk_rag.exceptions import DimensionMismatchError, NotLoadedError
from helpdesk_rag.retrieval.base import VectorStoreBase
from helpdesk_rag.retrieval.models import (
    Article,
    Chunk,
    Embedding,
    ReindexPlan,
    SearchOptions,
    SearchResult,
    StoreState,
    StoreStats,
    utcnow,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors; ``0.0`` if either has zero magnitude."""
    if len(vector_a) != len(vector_b):
        raise DimensionMismatchError(
            f"Vectors must have the same length ({len(vector_a)} != {len(vector_b)})"
        )

    dot = norm_a = norm_b = 0.0
    for a, b in zip(vector_a, vector_b):
        dot += a * b
        norm_a += a * a
        norm_b += b * b

    magnitude = math.sqrt(norm_a) * math.sqrt(norm_b)
    if magnitude == 0:
        return 0.0
    return dot / magnitude


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def age_in_days(updated_at: datetime, now: datetime) -> int:
    """Whole days between *updated_at* and *now*, rounded up."""
    delta = abs((_as_utc(now) - _as_utc(updated_at)).total_seconds())
    return math.ceil(delta / SECONDS_PER_DAY)


class JsonVectorStore(VectorStoreBase):
    """Vector store persisted as one JSON file.

    Parameters
    ----------
    path:
        Location of the store file; parent directories are created on save.
    clock:
        Returns the current time; used for metadata timestamps and recency
        boosting (injectable for tests).
    """

    def __init__(
        self,
        path: str | Path = settings.vector_store_path,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.path = Path(path)
        self._clock = clock
        self._state = StoreState()
        self._article_chunks: dict[int, list[str]] = defaultdict(list)
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    # -- lifecycle ------------------------------------------------------------

    def load(self) -> None:
        if self.path.exists():
            logger.info("Loading vector store from %s...", self.path)
            try:
                self._state = StoreState.model_validate_json(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.exception("Failed to load vector store, creating new empty store")
                self._state = StoreState()
            else:
                logger.info(
                    "Loaded vector store with %d articles, %d chunks, and %d embeddings",
                    len(self._state.articles),
                    len(self._state.chunks),
                    len(self._state.embeddings),
                )
        else:
            logger.info("No existing vector store found at %s, creating new one", self.path)
            self._state = StoreState()

        self._rebuild_index()
        self._loaded = True

    def save(self) -> None:
        self._require_loaded()

        metadata = self._state.metadata
        metadata.updated_at = self._clock()
        metadata.total_articles = len(self._state.articles)
        metadata.total_chunks = len(self._state.chunks)
        metadata.total_embeddings = len(self._state.embeddings)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = self._state.model_dump_json(indent=2)

        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
            os.replace(tmp_name, self.path)
        except OSError:
            logger.error("Failed to save vector store to %s", self.path)
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.info("Saved vector store to %s", self.path)

    def clear(self) -> None:
        """Drop everything and persist the empty store."""
        logger.info("Clearing vector store...")
        self._state = StoreState()
        self._article_chunks.clear()
        self._loaded = True
        self.save()

    # -- mutations ------------------------------------------------------------

    def upsert_data(
        self,
        articles: Sequence[Article],
        chunks: Sequence[Chunk],
        embeddings: Sequence[Embedding],
        embedding_model: str,
        chunk_size: int,
        chunk_overlap: int,
    ) -> None:
        if not self._loaded:
            self.load()

        logger.info(
            "Upserting %d articles, %d chunks, and %d embeddings...",
            len(articles),
            len(chunks),
            len(embeddings),
        )

        for article in articles:
            self._state.articles[article.id] = article
        for chunk in chunks:
            if chunk.id not in self._state.chunks:
                self._article_chunks[chunk.article_id].append(chunk.id)
            self._state.chunks[chunk.id] = chunk
        for embedding in embeddings:
            self._state.embeddings[embedding.id] = embedding

        metadata = self._state.metadata
        metadata.embedding_model = embedding_model
        metadata.chunk_size = chunk_size
        metadata.chunk_overlap = chunk_overlap

        self.save()

    def remove_articles(self, article_ids: Sequence[int]) -> None:
        if not self._loaded:
            self.load()

        logger.info("Removing %d articles...", len(article_ids))
        for article_id in article_ids:
            self._state.articles.pop(article_id, None)
            for chunk_id in self._article_chunks.pop(article_id, []):
                self._state.chunks.pop(chunk_id, None)
                self._state.embeddings.pop(Embedding.make_id(chunk_id), None)

        self.save()

    # -- queries --------------------------------------------------------------

    def search(self, query_vector: Sequence[float], options: SearchOptions | None = None) -> list[SearchResult]:
        if not self._loaded:
            self.load()
        options = options or SearchOptions()
        now = self._clock()

        logger.debug(
            "Searching through %d embeddings (query dims=%d)",
            len(self._state.embeddings),
            len(query_vector),
        )

        results: list[SearchResult] = []
        best, worst = -1.0, 1.0
        for embedding in self._state.embeddings.values():
            similarity = cosine_similarity(query_vector, embedding.vector)
            best, worst = max(best, similarity), min(worst, similarity)

            if similarity < options.min_similarity:
                continue
            chunk = self._state.chunks.get(embedding.chunk_id)
            if chunk is None:
                continue

            score = similarity
            if options.boost_recent:
                age = age_in_days(chunk.updated_at, now)
                score *= max(1.0, options.recent_boost_factor - age / 365)

            results.append(SearchResult(chunk=chunk, embedding=embedding, similarity=similarity, score=score))

        # list.sort is stable: equal scores keep insertion order
        results.sort(key=lambda r: r.score, reverse=True)
        limited = results[: options.max_results]

        logger.debug(
            "Similarity scores - min: %.4f, max: %.4f, threshold: %s; %d relevant chunks",
            worst,
            best,
            options.min_similarity,
            len(limited),
        )
        return limited

    def needs_reindexing(self, current_articles: Sequence[Article]) -> ReindexPlan:
        if not self._loaded:
            return ReindexPlan(needs_reindex=True, new_articles=list(current_articles))

        stored = self._state.articles
        new_articles: list[Article] = []
        updated_articles: list[Article] = []

        for article in current_articles:
            existing = stored.get(article.id)
            if existing is None:
                new_articles.append(article)
            elif _as_utc(article.updated_at) > _as_utc(existing.updated_at):
                updated_articles.append(article)

        current_ids = {a.id for a in current_articles}
        deleted_ids = [article_id for article_id in stored if article_id not in current_ids]

        return ReindexPlan(
            needs_reindex=bool(new_articles or updated_articles or deleted_ids),
            new_articles=new_articles,
            updated_articles=updated_articles,
            deleted_article_ids=deleted_ids,
        )

    # -- accessors ------------------------------------------------------------

    def get_article(self, article_id: int) -> Article | None:
        self._require_loaded()
        return self._state.articles.get(article_id)

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        self._require_loaded()
        return self._state.chunks.get(chunk_id)

    def get_embedding(self, embedding_id: str) -> Embedding | None:
        self._require_loaded()
        return self._state.embeddings.get(embedding_id)

    def get_article_chunks(self, article_id: int) -> list[Chunk]:
        self._require_loaded()
        chunks = [self._state.chunks[cid] for cid in self._article_chunks.get(article_id, [])]
        return sorted(chunks, key=lambda c: c.chunk_index)

    def has_article(self, article_id: int) -> bool:
        self._require_loaded()
        return article_id in self._state.articles

    def get_stats(self) -> StoreStats:
        self._require_loaded()
        return StoreStats(
            total_articles=len(self._state.articles),
            total_chunks=len(self._state.chunks),
            total_embeddings=len(self._state.embeddings),
            embedding_model=self._state.metadata.embedding_model,
            last_updated=self._state.metadata.updated_at,
        )

    def snapshot(self) -> StoreState:
        """Deep copy of the current state."""
        self._require_loaded()
        return self._state.model_copy(deep=True)

    def health_check(self) -> bool:
        return self._loaded

    # -- internals ------------------------------------------------------------

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise NotLoadedError("Vector store not loaded")

    def _rebuild_index(self) -> None:
        self._article_chunks = defaultdict(list)
        for chunk in self._state.chunks.values():
            self._article_chunks[chunk.article_id].append(chunk.id)
