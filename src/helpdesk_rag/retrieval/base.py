"""Abstract base class for vector-store backends.

The JSON file store is the default.  A backend with an approximate
nearest-neighbour index can subclass :class:`VectorStoreBase` and keep the
same ``search`` contract: same inputs, same ranked outputs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from helpdesk_rag.retrieval.models import (
    Article,
    Chunk,
    Embedding,
    ReindexPlan,
    SearchOptions,
    SearchResult,
    StoreStats,
)


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Single-writer: only the ingestion side mutates a store, and every
    mutation is persisted before it returns.
    """

    # -- lifecycle ------------------------------------------------------------

    @abstractmethod
    def load(self) -> None:
        """Read persisted state; fall back to an empty store when unreadable."""
        ...

    @abstractmethod
    def save(self) -> None:
        """Persist the whole store."""
        ...

    # -- mutations ------------------------------------------------------------

    @abstractmethod
    def upsert_data(
        self,
        articles: Sequence[Article],
        chunks: Sequence[Chunk],
        embeddings: Sequence[Embedding],
        embedding_model: str,
        chunk_size: int,
        chunk_overlap: int,
    ) -> None:
        """Insert or overwrite entries by id, update provenance, then save."""
        ...

    @abstractmethod
    def remove_articles(self, article_ids: Sequence[int]) -> None:
        """Delete articles with their chunks and embeddings, then save."""
        ...

    # -- queries --------------------------------------------------------------

    @abstractmethod
    def search(self, query_vector: Sequence[float], options: SearchOptions | None = None) -> list[SearchResult]:
        """Return stored chunks ranked by similarity to *query_vector*.

        Results below ``options.min_similarity`` (raw similarity) are
        dropped; at most ``options.max_results`` are returned, highest
        score first.
        """
        ...

    @abstractmethod
    def needs_reindexing(self, current_articles: Sequence[Article]) -> ReindexPlan:
        """Diff *current_articles* against stored ones without mutating anything."""
        ...

    @abstractmethod
    def get_stats(self) -> StoreStats:
        ...

    # -- optional overrides ---------------------------------------------------

    def health_check(self) -> bool:
        """Return ``True`` when the backend is ready to serve searches."""
        return True
