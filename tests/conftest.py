"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from helpdesk_rag.config import Settings
from helpdesk_rag.retrieval.models import Article, Chunk, Embedding

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


def make_article(article_id: int = 1, body: str = "Some body text.", **overrides) -> Article:
    fields = {
        "id": article_id,
        "title": f"Article {article_id}",
        "body": body,
        "html_url": f"https://example.zendesk.com/hc/articles/{article_id}",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 5, 1, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Article(**fields)


def make_chunk(article_id: int = 1, index: int = 0, total: int = 1, content: str = "chunk", **overrides) -> Chunk:
    fields = {
        "id": Chunk.make_id(article_id, index),
        "article_id": article_id,
        "title": f"Article {article_id}",
        "content": content,
        "chunk_index": index,
        "total_chunks": total,
        "url": f"https://example.zendesk.com/hc/articles/{article_id}",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 5, 1, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Chunk(**fields)


def make_embedding(chunk: Chunk, vector: list[float], model: str = "test-model") -> Embedding:
    return Embedding(
        id=Embedding.make_id(chunk.id),
        chunk_id=chunk.id,
        vector=vector,
        model=model,
        created_at=NOW,
    )


class FakeClock:
    """Monotonic clock advanced by the sleeps it is paired with."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment with paths under ``tmp_path``."""
    return Settings(
        _env_file=None,
        vector_store_path=str(tmp_path / "store.json"),
        chat_history_path=str(tmp_path / "history.json"),
        openai_api_key="sk-test",
        embedding_api_key="emb-test",
        zendesk_subdomain="example",
        zendesk_oauth_token="oauth-token",
        retry_base_delay=0.0,
    )
