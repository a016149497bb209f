"""Semantic retriever — embed a question, search the store, build citations.

Usage::

    from helpdesk_rag.retrieval.retriever import SemanticRetriever

    retriever = SemanticRetriever(store, embedder)
    results   = retriever.search("How do I reset my password?")
    for source in retriever.to_sources(results):
        print(source.short_ref(), source.snippet)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from helpdesk_rag.retrieval.base import VectorStoreBase
from helpdesk_rag.retrieval.models import SearchOptions, SearchResult, SourceReference

if TYPE_CHECKING:
    from helpdesk_rag.clients.embeddings import EmbeddingClient

logger = logging.getLogger(__name__)


class SemanticRetriever:
    """High-level retriever that wraps any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    embedder:
        Client used to embed queries; must use the same model as the
        stored embeddings.
    options:
        Default search options; when *None* they come from the global
        settings.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingClient,
        *,
        options: SearchOptions | None = None,
    ) -> None:
        if options is None:
            from helpdesk_rag.config import settings

            options = settings.search_options()
        self._store = store
        self._embedder = embedder
        self.options = options

    def search(self, query: str, *, options: SearchOptions | None = None) -> list[SearchResult]:
        """Embed *query* and return the ranked matching chunks."""
        vector = self._embedder.embed_query(query)
        return self.search_by_embedding(vector, options=options)

    def search_by_embedding(
        self,
        embedding: list[float],
        *,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        results = self._store.search(embedding, options or self.options)
        logger.info("Retrieved %d chunks", len(results))
        return results

    @staticmethod
    def to_sources(results: list[SearchResult]) -> list[SourceReference]:
        return [SourceReference.from_result(r) for r in results]
