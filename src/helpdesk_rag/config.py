"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from helpdesk_rag.exceptions import InvalidConfigurationError

if TYPE_CHECKING:
    from helpdesk_rag.clients.rate_limit import RateLimits
    from helpdesk_rag.clients.retry import RetryPolicy
    from helpdesk_rag.ingestion.chunker import ChunkingOptions
    from helpdesk_rag.retrieval.models import SearchOptions


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding backend (OpenAI-compatible /embeddings endpoint)
    embedding_api_key: str = Field(default="", description="Bearer token for the embedding server")
    embedding_base_url: str = Field(default="http://localhost:8080/v1", description="Embedding server base URL")
    embedding_model: str = "BAAI/bge-large-en-v1.5"

    # Generation backend
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for a local server)")
    openai_base_url: str = "https://api.openai.com/v1"
    chat_model: str = "gpt-4"
    max_tokens: int = Field(default=4000, ge=1, le=32000)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # Document source (Zendesk Help Center)
    zendesk_subdomain: str = ""
    zendesk_email: str = ""
    zendesk_api_token: str = ""
    zendesk_oauth_token: str = ""

    # Chunking
    chunk_size: int = Field(default=1000, ge=100, le=8000)
    chunk_overlap: int = Field(default=200, ge=0, le=500)
    preserve_words: bool = True
    preserve_sentences: bool = True

    # Persistence
    vector_store_path: str = "./data/vector-store.json"
    chat_history_path: str = "./data/chat-history.json"

    # Retrieval / chat
    max_context_messages: int = Field(default=10, ge=1, le=50)
    max_source_results: int = Field(default=5, ge=1, le=20)
    min_similarity: float = Field(default=0.7, ge=0.0, le=1.0)
    boost_recent: bool = True
    recent_boost_factor: float = Field(default=1.1, ge=1.0)

    # Rate limits, one set per backend
    zendesk_requests_per_minute: int = 200
    zendesk_requests_per_hour: int = 700
    embedding_requests_per_minute: int = 100
    embedding_tokens_per_minute: int = 50_000
    openai_requests_per_minute: int = 500
    openai_tokens_per_minute: int = 150_000

    # Timeouts and retries
    api_timeout_ms: int = Field(default=30_000, ge=5_000, le=120_000)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_backoff_factor: float = 2.0

    log_level: Literal["debug", "info", "warning", "error"] = "info"
    excluded_article_ids: str = Field(default="", description="Comma-separated article ids to skip")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_overlap(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("CHUNK_OVERLAP must be less than CHUNK_SIZE")
        return self

    # -- derived option objects -----------------------------------------------

    @property
    def timeout_seconds(self) -> float:
        return self.api_timeout_ms / 1000

    def excluded_ids(self) -> set[int]:
        ids: set[int] = set()
        for raw in self.excluded_article_ids.split(","):
            raw = raw.strip()
            if raw:
                ids.add(int(raw))
        return ids

    def zendesk_authorization(self) -> str:
        """Return the ``Authorization`` header value for the Zendesk API.

        Exactly one authentication mode must be configured: an OAuth access
        token, or an agent email plus API token (HTTP basic auth).
        """
        has_api = bool(self.zendesk_email and self.zendesk_api_token)
        has_oauth = bool(self.zendesk_oauth_token)
        if not has_api and not has_oauth:
            raise InvalidConfigurationError(
                "Must provide either (ZENDESK_EMAIL + ZENDESK_API_TOKEN) or ZENDESK_OAUTH_TOKEN"
            )
        if has_api and has_oauth:
            raise InvalidConfigurationError(
                "Cannot use both API token and OAuth token authentication. Choose one."
            )
        if has_oauth:
            return f"Bearer {self.zendesk_oauth_token}"
        raw = f"{self.zendesk_email}/token:{self.zendesk_api_token}".encode()
        return f"Basic {base64.b64encode(raw).decode()}"

    def chunking_options(self) -> ChunkingOptions:
        from helpdesk_rag.ingestion.chunker import ChunkingOptions

        return ChunkingOptions(
            size=self.chunk_size,
            overlap=self.chunk_overlap,
            preserve_words=self.preserve_words,
            preserve_sentences=self.preserve_sentences,
        )

    def search_options(self) -> SearchOptions:
        from helpdesk_rag.retrieval.models import SearchOptions

        return SearchOptions(
            max_results=self.max_source_results,
            min_similarity=self.min_similarity,
            boost_recent=self.boost_recent,
            recent_boost_factor=self.recent_boost_factor,
        )

    def retry_policy(self) -> RetryPolicy:
        from helpdesk_rag.clients.retry import RetryPolicy

        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            backoff_factor=self.retry_backoff_factor,
        )

    def source_rate_limits(self) -> RateLimits:
        from helpdesk_rag.clients.rate_limit import RateLimits

        return RateLimits(
            requests_per_minute=self.zendesk_requests_per_minute,
            requests_per_hour=self.zendesk_requests_per_hour,
            max_request_wait=60.0,
        )

    def embedding_rate_limits(self) -> RateLimits:
        from helpdesk_rag.clients.rate_limit import RateLimits

        return RateLimits(
            requests_per_minute=self.embedding_requests_per_minute,
            tokens_per_minute=self.embedding_tokens_per_minute,
            tokens_per_request=100,
        )

    def generation_rate_limits(self) -> RateLimits:
        from helpdesk_rag.clients.rate_limit import RateLimits

        return RateLimits(
            requests_per_minute=self.openai_requests_per_minute,
            tokens_per_minute=self.openai_tokens_per_minute,
            tokens_per_request=1000,
        )


# Singleton: import `settings` wherever needed.
settings = Settings()
