"""Incremental reindex: fetch, diff against the store, embed what changed."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from pydantic import BaseModel

from helpdesk_rag.ingestion.loader import DocumentSource, html_to_text
from helpdesk_rag.ingestion.orchestrator import IngestionOrchestrator
from helpdesk_rag.retrieval.json_store import JsonVectorStore

logger = logging.getLogger(__name__)


class ReindexReport(BaseModel):
    """Counts describing one reindex run; partial success is still reported."""

    fetched: int = 0
    excluded: int = 0
    new: int = 0
    updated: int = 0
    deleted: int = 0
    removed: int = 0
    chunks: int = 0
    embeddings: int = 0
    failed_article_ids: list[int] = []
    up_to_date: bool = False


def reindex(
    source: DocumentSource,
    store: JsonVectorStore,
    orchestrator: IngestionOrchestrator,
    *,
    embedding_model: str,
    excluded_ids: Iterable[int] = (),
    prune_deleted: bool = False,
) -> ReindexReport:
    """Bring *store* up to date with *source*.

    New and updated articles are chunked, embedded and upserted.  The
    previous chunks of updated articles are removed first so that an
    article that shrank does not leave stale trailing chunks.  Nothing of a
    failed article is stored: a previously indexed version stays as it was
    and the article is picked up again on the next run.  Articles that
    disappeared from the source are only removed when *prune_deleted* is set.
    """
    started = time.monotonic()
    if not store.is_loaded:
        store.load()

    articles = source.fetch_all()
    report = ReindexReport(fetched=len(articles))
    logger.info("Fetched %d articles", len(articles))

    excluded = set(excluded_ids)
    if excluded:
        kept = [a for a in articles if a.id not in excluded]
        report.excluded = len(articles) - len(kept)
        if report.excluded:
            logger.warning("Excluded %d articles: %s", report.excluded, sorted(excluded))
        articles = kept

    articles = [a.model_copy(update={"body": html_to_text(a.body)}) for a in articles]

    plan = store.needs_reindexing(articles)
    report.new = len(plan.new_articles)
    report.updated = len(plan.updated_articles)
    report.deleted = len(plan.deleted_article_ids)

    if not plan.needs_reindex:
        logger.info("No reindexing needed - all articles are up to date")
        report.up_to_date = True
        return report

    to_process = [*plan.new_articles, *plan.updated_articles]
    logger.info(
        "Found %d new and %d updated articles (%d deleted at source)",
        report.new,
        report.updated,
        report.deleted,
    )

    if to_process:
        result = orchestrator.process_articles(to_process)
        report.failed_article_ids = result.failed_article_ids

        failed = set(result.failed_article_ids)
        succeeded = [a for a in to_process if a.id not in failed]
        chunks = [c for c in result.chunks if c.article_id not in failed]
        kept_ids = {c.id for c in chunks}
        embeddings = [e for e in result.embeddings if e.chunk_id in kept_ids]
        report.chunks = len(chunks)
        report.embeddings = len(embeddings)
        if failed:
            logger.warning("Not storing %d failed articles: %s", len(failed), sorted(failed))

        replaced = [a.id for a in plan.updated_articles if a.id not in failed]
        if replaced:
            store.remove_articles(replaced)

        options = orchestrator.options
        store.upsert_data(
            succeeded,
            chunks,
            embeddings,
            embedding_model,
            options.size,
            options.overlap,
        )

    if prune_deleted and plan.deleted_article_ids:
        store.remove_articles(plan.deleted_article_ids)
        report.removed = len(plan.deleted_article_ids)

    logger.info(
        "Reindexing completed in %.0fs: %d articles -> %d chunks -> %d embeddings",
        time.monotonic() - started,
        len(to_process),
        report.chunks,
        report.embeddings,
    )
    return report
