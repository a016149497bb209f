"""Domain models for articles, chunks, embeddings and the persisted store."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

STORE_VERSION = "1.0.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Article(BaseModel):
    """A help-center article as supplied by the document source.

    Only the fields the pipeline relies on are declared; anything else the
    source returns is kept verbatim so the stored copy stays faithful.
    """

    model_config = ConfigDict(extra="allow")

    id: int
    title: str
    body: str = ""
    html_url: str = ""
    created_at: datetime
    updated_at: datetime
    draft: bool = False
    author_id: int | None = None
    section_id: int | None = None
    locale: str | None = None


class Chunk(BaseModel):
    """A contiguous slice of an article body.

    Attributes
    ----------
    id:
        ``article_<article_id>_chunk_<chunk_index>``.
    chunk_index / total_chunks:
        Indices of one article always form ``range(total_chunks)``.
    created_at / updated_at:
        Copied from the parent article; ``updated_at`` drives recency boosting.
    """

    id: str
    article_id: int
    title: str
    content: str
    chunk_index: int
    total_chunks: int
    url: str = ""
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def make_id(article_id: int, chunk_index: int) -> str:
        return f"article_{article_id}_chunk_{chunk_index}"

    def embedding_text(self) -> str:
        """Text sent to the embedding backend for this chunk."""
        return f"Title: {self.title}\n\nContent: {self.content}"


class Embedding(BaseModel):
    """Vector for one chunk; at most one per ``chunk_id``."""

    id: str
    chunk_id: str
    vector: list[float]
    model: str
    created_at: datetime = Field(default_factory=utcnow)

    @staticmethod
    def make_id(chunk_id: str) -> str:
        return f"{chunk_id}_embedding"


class StoreMetadata(BaseModel):
    """Provenance and denormalised counts, recomputed on every save."""

    version: str = STORE_VERSION
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    total_articles: int = 0
    total_chunks: int = 0
    total_embeddings: int = 0
    embedding_model: str = ""
    chunk_size: int = 1000
    chunk_overlap: int = 200


class StoreState(BaseModel):
    """Everything the JSON vector store persists, serialised as one document."""

    articles: dict[int, Article] = Field(default_factory=dict)
    chunks: dict[str, Chunk] = Field(default_factory=dict)
    embeddings: dict[str, Embedding] = Field(default_factory=dict)
    metadata: StoreMetadata = Field(default_factory=StoreMetadata)


class SearchOptions(BaseModel):
    """Knobs for :meth:`VectorStoreBase.search`.

    ``min_similarity`` is tested against the raw cosine similarity; the
    recency boost only affects ranking.
    """

    max_results: int = 5
    min_similarity: float = 0.7
    boost_recent: bool = False
    recent_boost_factor: float = 1.1


class SearchResult(BaseModel):
    """A matching chunk with its raw similarity and its (possibly boosted) score."""

    chunk: Chunk
    embedding: Embedding
    similarity: float
    score: float


class ReindexPlan(BaseModel):
    """Diff between the articles currently at the source and the stored ones."""

    needs_reindex: bool
    new_articles: list[Article] = Field(default_factory=list)
    updated_articles: list[Article] = Field(default_factory=list)
    deleted_article_ids: list[int] = Field(default_factory=list)


class StoreStats(BaseModel):
    total_articles: int
    total_chunks: int
    total_embeddings: int
    embedding_model: str
    last_updated: datetime


class SourceReference(BaseModel):
    """Citation shown next to a generated answer.

    Attributes
    ----------
    article_id:
        Article the cited chunk belongs to.
    snippet:
        Start of the chunk, cut on a word boundary.
    relevance_score:
        Raw cosine similarity of the chunk to the query.
    """

    article_id: int
    title: str
    url: str = ""
    snippet: str = ""
    relevance_score: float = 0.0

    @classmethod
    def from_result(cls, result: SearchResult, *, snippet_length: int = 150) -> SourceReference:
        return cls(
            article_id=result.chunk.article_id,
            title=result.chunk.title,
            url=result.chunk.url,
            snippet=truncate_text(result.chunk.content, snippet_length),
            relevance_score=result.similarity,
        )

    def short_ref(self) -> str:
        """Return a compact ``[title§article_id]`` reference string."""
        return f"[{self.title}§{self.article_id}]"


def truncate_text(text: str, max_length: int) -> str:
    """Cut *text* to *max_length* characters, preferring the last word break."""
    if len(text) <= max_length:
        return text
    truncated = text[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > 0:
        return f"{truncated[:last_space]}..."
    return f"{truncated}..."
