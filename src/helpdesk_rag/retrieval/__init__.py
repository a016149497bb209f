"""
Retrieval — vector store, similarity search, and citation building.

Public surface
--------------
- :class:`JsonVectorStore` — default file-backed store with exhaustive search.
- :class:`VectorStoreBase` — abstract backend (subclass for an ANN index).
- :class:`SemanticRetriever` — embeds a question and searches the store.
- :func:`cosine_similarity` — the similarity used by the JSON store.
- Data models: :class:`Article`, :class:`Chunk`, :class:`Embedding`,
  :class:`SearchOptions`, :class:`SearchResult`, :class:`SourceReference`, …
"""

from helpdesk_rag.retrieval.base import VectorStoreBase
from helpdesk_rag.retrieval.json_store import JsonVectorStore, cosine_similarity
from helpdesk_rag.retrieval.models import (
    Article,
    Chunk,
    Embedding,
    ReindexPlan,
    SearchOptions,
    SearchResult,
    SourceReference,
    StoreMetadata,
    StoreState,
    StoreStats,
)
from helpdesk_rag.retrieval.retriever import SemanticRetriever

__all__ = [
    "Article",
    "Chunk",
    "Embedding",
    "JsonVectorStore",
    "ReindexPlan",
    "SearchOptions",
    "SearchResult",
    "SemanticRetriever",
    "SourceReference",
    "StoreMetadata",
    "StoreState",
    "StoreStats",
    "VectorStoreBase",
    "cosine_similarity",
]
