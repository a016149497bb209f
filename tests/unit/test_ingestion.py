"""Unit tests for ingestion: HTML conversion, the orchestrator and incremental reindexing.

The embedding backend is replaced by a small fake so batching, fallback and
failure isolation can be asserted call by call.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence
from unittest.mock import MagicMock

import pytest

from conftest import NOW, make_article
from helpdesk_rag.clients.embeddings import EmbeddingBatch
from helpdesk_rag.exceptions import BackendError
from helpdesk_rag.ingestion.chunker import ChunkingOptions
from helpdesk_rag.ingestion.loader import html_to_text
from helpdesk_rag.ingestion.orchestrator import IngestionOrchestrator
from helpdesk_rag.ingestion.reindex import reindex
from helpdesk_rag.retrieval.json_store import JsonVectorStore
from helpdesk_rag.retrieval.models import Article


# ── Fakes ──────────────────────────────────────────────────────────────


class FakeEmbedder:
    """Returns one 2-d vector per text; can be told to fail."""

    model = "test-model"

    def __init__(
        self,
        *,
        fail_batches: bool = False,
        poison: str | None = None,
        crash_on: str | None = None,
    ) -> None:
        self.fail_batches = fail_batches
        self.poison = poison
        self.crash_on = crash_on
        self.calls: list[list[str]] = []

    def embed(self, texts: Sequence[str]) -> EmbeddingBatch:
        texts = list(texts)
        self.calls.append(texts)
        if self.crash_on and any(self.crash_on in t for t in texts):
            raise RuntimeError("embedder crashed")
        if self.fail_batches and len(texts) > 1:
            raise BackendError("batch too large", status_code=413)
        if self.poison and any(self.poison in t for t in texts):
            raise BackendError("cannot embed", status_code=400)
        return EmbeddingBatch(vectors=[[1.0, float(len(t))] for t in texts])


class FakeSource:
    def __init__(self, articles: list[Article]) -> None:
        self.articles = articles

    def fetch_all(self) -> list[Article]:
        return list(self.articles)

    def fetch_one(self, article_id: int) -> Article | None:
        return next((a for a in self.articles if a.id == article_id), None)


SMALL = ChunkingOptions(size=100, overlap=20, preserve_words=False, preserve_sentences=False)


def _orchestrator(embedder: FakeEmbedder, **kwargs) -> IngestionOrchestrator:
    kwargs.setdefault("sleep", MagicMock())
    return IngestionOrchestrator(embedder, SMALL, batch_size=5, batch_delay=0.5, clock=lambda: NOW, **kwargs)


# ── html_to_text ───────────────────────────────────────────────────────


class TestHtmlToText:
    def test_paragraphs_become_lines(self) -> None:
        assert html_to_text("<p>Hello</p><p>World</p>") == "Hello\nWorld"

    def test_list_items_become_bullets(self) -> None:
        assert html_to_text("<ul><li>One</li><li>Two</li></ul>") == "• One\n• Two"

    def test_scripts_and_styles_are_dropped(self) -> None:
        html = "<style>p {color: red}</style><p>Hi</p><script>alert(1)</script>"
        assert html_to_text(html) == "Hi"

    def test_line_breaks(self) -> None:
        assert html_to_text("first<br>second") == "first\nsecond"

    def test_whitespace_is_normalised(self) -> None:
        assert html_to_text("<p>A    \t b</p>\n\n\n<p>C</p>") == "A b\n\nC"

    def test_entities_are_decoded(self) -> None:
        assert html_to_text("<p>Terms &amp; conditions</p>") == "Terms & conditions"

    def test_empty(self) -> None:
        assert html_to_text("") == ""


# ── IngestionOrchestrator ──────────────────────────────────────────────


class TestIngestionOrchestrator:
    def test_processes_all_articles(self) -> None:
        embedder = FakeEmbedder()
        articles = [make_article(1, body="a" * 250), make_article(2, body="short body")]

        result = _orchestrator(embedder).process_articles(articles)

        assert [c.id for c in result.chunks] == [
            "article_1_chunk_0",
            "article_1_chunk_1",
            "article_1_chunk_2",
            "article_2_chunk_0",
        ]
        assert [e.chunk_id for e in result.embeddings] == [c.id for c in result.chunks]
        assert all(e.model == "test-model" and e.created_at == NOW for e in result.embeddings)
        assert result.failed_article_ids == []
        assert result.missing_embeddings == 0

    def test_embedding_text_is_sent(self) -> None:
        embedder = FakeEmbedder()
        _orchestrator(embedder).process_articles([make_article(5, body="Reset steps")])
        assert embedder.calls == [["Title: Article 5\n\nContent: Reset steps"]]

    def test_failed_batch_falls_back_to_single_chunks(self) -> None:
        embedder = FakeEmbedder(fail_batches=True)
        article = make_article(1, body="a" * 250)

        result = _orchestrator(embedder).process_articles([article])

        assert len(result.embeddings) == 3
        assert [len(call) for call in embedder.calls] == [3, 1, 1, 1]

    def test_single_chunk_failure_leaves_gap(self) -> None:
        embedder = FakeEmbedder(poison="POISON")
        body = "a" * 80 + "POISON" + "b" * 200
        result = _orchestrator(embedder).process_articles([make_article(1, body=body)])

        assert len(result.chunks) == 4
        assert result.missing_embeddings == 2
        assert result.failed_article_ids == []
        embedded = {e.chunk_id for e in result.embeddings}
        assert embedded == {"article_1_chunk_2", "article_1_chunk_3"}

    def test_batches_are_paced(self) -> None:
        sleep = MagicMock()
        orchestrator = _orchestrator(FakeEmbedder(), sleep=sleep)
        chunks = orchestrator.chunker.chunk_article(make_article(1, body="x" * 1000))
        assert len(chunks) == 13

        embeddings = orchestrator.embed_chunks(chunks)

        assert len(embeddings) == 13
        assert sleep.call_count == 2
        sleep.assert_called_with(0.5)

    def test_no_pause_after_failed_batch(self) -> None:
        sleep = MagicMock()
        orchestrator = _orchestrator(FakeEmbedder(fail_batches=True), sleep=sleep)
        chunks = orchestrator.chunker.chunk_article(make_article(1, body="x" * 1000))

        orchestrator.embed_chunks(chunks)

        sleep.assert_not_called()

    def test_chunking_failure_skips_article_only(self) -> None:
        orchestrator = _orchestrator(FakeEmbedder(), chunk_timeout=-1.0)
        articles = [make_article(1, body="a" * 500), make_article(2, body="fits in one chunk")]

        result = orchestrator.process_articles(articles)

        assert result.failed_article_ids == [1]
        assert [c.article_id for c in result.chunks] == [2]
        assert len(result.embeddings) == 1

    def test_unexpected_embedder_error_fails_article(self) -> None:
        embedder = FakeEmbedder(crash_on="Article 1")
        articles = [make_article(1, body="one"), make_article(2, body="two")]

        result = _orchestrator(embedder).process_articles(articles)

        assert result.failed_article_ids == [1]
        assert [e.chunk_id for e in result.embeddings] == ["article_2_chunk_0"]

    def test_unexpected_error_keeps_earlier_batches(self) -> None:
        embedder = MagicMock(model="test-model")
        embedder.embed.side_effect = [EmbeddingBatch(vectors=[[1.0, 0.0]] * 5), RuntimeError("connection pool closed")]

        result = _orchestrator(embedder).process_articles([make_article(1, body="x" * 1000)])

        assert result.failed_article_ids == [1]
        assert len(result.chunks) == 13
        assert [e.chunk_id for e in result.embeddings] == [f"article_1_chunk_{i}" for i in range(5)]

    def test_unexpected_error_during_fallback_keeps_embedded_chunks(self) -> None:
        embedder = MagicMock(model="test-model")
        embedder.embed.side_effect = [
            BackendError("batch rejected", status_code=413),
            EmbeddingBatch(vectors=[[1.0, 0.0]]),
            RuntimeError("connection pool closed"),
        ]

        result = _orchestrator(embedder).process_articles([make_article(1, body="a" * 250)])

        assert result.failed_article_ids == [1]
        assert [e.chunk_id for e in result.embeddings] == ["article_1_chunk_0"]

    def test_empty_input(self) -> None:
        result = _orchestrator(FakeEmbedder()).process_articles([])
        assert result.chunks == [] and result.embeddings == []


# ── reindex ────────────────────────────────────────────────────────────


@pytest.fixture
def store(tmp_path: Path) -> JsonVectorStore:
    return JsonVectorStore(tmp_path / "store.json", clock=lambda: NOW)


def _run(source: FakeSource, store: JsonVectorStore, embedder: FakeEmbedder | None = None, **kwargs):
    return reindex(
        source,
        store,
        _orchestrator(embedder or FakeEmbedder()),
        embedding_model="test-model",
        **kwargs,
    )


class TestReindex:
    def test_first_run_indexes_everything(self, store: JsonVectorStore) -> None:
        source = FakeSource([make_article(1, body="<p>Hello</p>"), make_article(2, body="<p>World</p>")])

        report = _run(source, store)

        assert (report.fetched, report.new, report.updated) == (2, 2, 0)
        assert (report.chunks, report.embeddings) == (2, 2)
        assert store.has_article(1) and store.has_article(2)
        assert store.get_chunk("article_1_chunk_0").content == "Hello"
        assert store.get_article(1).body == "Hello"
        assert store.get_stats().embedding_model == "test-model"

    def test_second_run_is_up_to_date(self, store: JsonVectorStore) -> None:
        source = FakeSource([make_article(1), make_article(2)])
        _run(source, store)
        embedder = FakeEmbedder()

        report = _run(source, store, embedder)

        assert report.up_to_date
        assert embedder.calls == []

    def test_updated_article_replaces_old_chunks(self, store: JsonVectorStore) -> None:
        _run(FakeSource([make_article(1, body="a" * 250)]), store)
        assert len(store.get_article_chunks(1)) == 3

        newer = make_article(1, body="now short", updated_at=datetime(2024, 5, 20, tzinfo=timezone.utc))
        report = _run(FakeSource([newer]), store)

        assert report.updated == 1
        chunks = store.get_article_chunks(1)
        assert [c.content for c in chunks] == ["now short"]
        assert store.get_embedding("article_1_chunk_2_embedding") is None
        assert store.get_article(1).updated_at == newer.updated_at

    def test_excluded_ids_are_skipped(self, store: JsonVectorStore) -> None:
        source = FakeSource([make_article(1), make_article(2), make_article(3)])

        report = _run(source, store, excluded_ids={2})

        assert report.excluded == 1
        assert report.new == 2
        assert not store.has_article(2)

    def test_deleted_articles_kept_without_prune(self, store: JsonVectorStore) -> None:
        _run(FakeSource([make_article(1), make_article(2)]), store)

        report = _run(FakeSource([make_article(1)]), store)

        assert report.deleted == 1
        assert report.removed == 0
        assert store.has_article(2)

    def test_prune_removes_deleted_articles(self, store: JsonVectorStore) -> None:
        _run(FakeSource([make_article(1), make_article(2)]), store)

        report = _run(FakeSource([make_article(1)]), store, prune_deleted=True)

        assert report.removed == 1
        assert not store.has_article(2)
        assert store.get_chunk("article_2_chunk_0") is None

    def test_failed_article_is_retried_next_run(self, store: JsonVectorStore) -> None:
        source = FakeSource([make_article(1, body="one"), make_article(2, body="two")])

        report = _run(source, store, FakeEmbedder(crash_on="Article 2"))

        assert report.failed_article_ids == [2]
        assert store.has_article(1)
        assert not store.has_article(2)

        retry = _run(source, store)
        assert retry.new == 1
        assert store.has_article(2)

    def test_failed_update_keeps_previous_version(self, store: JsonVectorStore) -> None:
        _run(FakeSource([make_article(1, body="old text")]), store)
        old_vector = store.get_embedding("article_1_chunk_0_embedding").vector

        newer = make_article(1, body="brand new longer text", updated_at=datetime(2024, 5, 20, tzinfo=timezone.utc))
        report = _run(FakeSource([newer]), store, FakeEmbedder(crash_on="brand new"))

        assert report.failed_article_ids == [1]
        assert (report.chunks, report.embeddings) == (0, 0)
        assert store.get_chunk("article_1_chunk_0").content == "old text"
        assert store.get_embedding("article_1_chunk_0_embedding").vector == old_vector
        assert store.get_article(1).updated_at == datetime(2024, 5, 1, tzinfo=timezone.utc)

        retry = _run(FakeSource([newer]), store)
        assert retry.updated == 1
        assert store.get_chunk("article_1_chunk_0").content == "brand new longer text"
        assert store.get_embedding("article_1_chunk_0_embedding").vector != old_vector

    def test_failed_new_article_leaves_no_chunks(self, store: JsonVectorStore) -> None:
        embedder = MagicMock(model="test-model")
        embedder.embed.side_effect = [EmbeddingBatch(vectors=[[1.0, 0.0]] * 5), RuntimeError("connection pool closed")]

        report = _run(FakeSource([make_article(1, body="x" * 1000)]), store, embedder)

        assert report.failed_article_ids == [1]
        assert not store.has_article(1)
        assert store.get_article_chunks(1) == []
        assert store.get_stats().total_embeddings == 0
