"""Command-line entry point: ``helpdesk-rag <command>``."""

from __future__ import annotations

import argparse
import logging
import sys

from helpdesk_rag.config import Settings, settings
from helpdesk_rag.exceptions import BackendError, HelpdeskRagError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


# ──────────────────────────────────────────────────────────────────────
# Commands
# ──────────────────────────────────────────────────────────────────────


def _build_store(cfg: Settings):
    from helpdesk_rag.retrieval.json_store import JsonVectorStore

    store = JsonVectorStore(cfg.vector_store_path)
    store.load()
    return store


def _build_retriever(cfg: Settings, store):
    from helpdesk_rag.clients.embeddings import EmbeddingClient
    from helpdesk_rag.retrieval.retriever import SemanticRetriever

    return SemanticRetriever(store, EmbeddingClient.from_settings(cfg), options=cfg.search_options())


def _print_sources(sources) -> None:
    if not sources:
        return
    print("\nSources:")
    for i, source in enumerate(sources, 1):
        print(f"  [{i}] {source.title} (Article ID: {source.article_id}, relevance {source.relevance_score:.3f})")
        if source.url:
            print(f"      {source.url}")


def cmd_reindex(args: argparse.Namespace, cfg: Settings) -> int:
    from helpdesk_rag.clients.embeddings import EmbeddingClient
    from helpdesk_rag.clients.zendesk import ZendeskClient
    from helpdesk_rag.ingestion.orchestrator import IngestionOrchestrator
    from helpdesk_rag.ingestion.reindex import reindex

    if args.prune and not args.yes:
        answer = input("Remove articles that no longer exist at the source? [y/N] ")
        if answer.strip().lower() not in {"y", "yes"}:
            print("Aborted.")
            return 1

    source = ZendeskClient.from_settings(cfg)
    if not source.test_connection():
        print("Could not connect to the Zendesk API; check credentials.", file=sys.stderr)
        return 1

    store = _build_store(cfg)
    embedder = EmbeddingClient.from_settings(cfg)
    orchestrator = IngestionOrchestrator(embedder, cfg.chunking_options())
    report = reindex(
        source,
        store,
        orchestrator,
        embedding_model=embedder.model,
        excluded_ids=cfg.excluded_ids(),
        prune_deleted=args.prune,
    )

    if report.up_to_date:
        print("Vector store is up to date.")
        return 0

    print(
        f"Indexed {report.new} new and {report.updated} updated articles "
        f"into {report.chunks} chunks ({report.embeddings} embeddings)."
    )
    if report.deleted and not report.removed:
        print(f"{report.deleted} articles were deleted at the source; rerun with --prune to remove them.")
    if report.removed:
        print(f"Removed {report.removed} deleted articles.")
    if report.failed_article_ids:
        print(f"Failed articles (retried on next run): {report.failed_article_ids}")
    return 0


def cmd_ask(args: argparse.Namespace, cfg: Settings) -> int:
    from helpdesk_rag.chat.session import ChatService

    store = _build_store(cfg)
    retriever = _build_retriever(cfg, store)
    chat = ChatService(cfg)
    chat.load_or_create_session()

    results = retriever.search(args.question)
    response = chat.generate_response(args.question, results)
    print(response.answer)
    _print_sources(response.sources)
    return 0


def cmd_chat(args: argparse.Namespace, cfg: Settings) -> int:
    from helpdesk_rag.chat.session import ChatService

    store = _build_store(cfg)
    retriever = _build_retriever(cfg, store)
    chat = ChatService(cfg)
    chat.load_or_create_session()

    print("Ask a question about the help center. Type 'exit' to quit, 'clear' to reset history.")
    while True:
        try:
            question = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return 0

        if not question:
            continue
        if question.lower() in {"exit", "quit"}:
            return 0
        if question.lower() == "clear":
            chat.clear_history()
            print("History cleared.")
            continue

        try:
            results = retriever.search(question)
            response = chat.generate_response(question, results)
        except BackendError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            continue
        print(f"\n{response.answer}")
        _print_sources(response.sources)


def cmd_stats(args: argparse.Namespace, cfg: Settings) -> int:
    stats = _build_store(cfg).get_stats()
    print(f"Articles:        {stats.total_articles}")
    print(f"Chunks:          {stats.total_chunks}")
    print(f"Embeddings:      {stats.total_embeddings}")
    print(f"Embedding model: {stats.embedding_model or '-'}")
    print(f"Last updated:    {stats.last_updated.isoformat()}")
    return 0


def cmd_clear_history(args: argparse.Namespace, cfg: Settings) -> int:
    from helpdesk_rag.chat.session import ChatService

    ChatService(cfg).clear_history()
    print("Chat history cleared.")
    return 0


def cmd_serve(args: argparse.Namespace, cfg: Settings) -> int:
    import uvicorn

    uvicorn.run("helpdesk_rag.serving.app:app", host=args.host, port=args.port, log_level=cfg.log_level)
    return 0


# ──────────────────────────────────────────────────────────────────────
# Parser
# ──────────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helpdesk-rag",
        description="Question answering over Zendesk Help Center articles",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    reindex_p = sub.add_parser("reindex", help="Fetch articles and index what changed")
    reindex_p.add_argument("--prune", action="store_true", help="Remove articles deleted at the source")
    reindex_p.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    reindex_p.set_defaults(func=cmd_reindex)

    ask_p = sub.add_parser("ask", help="Answer a single question")
    ask_p.add_argument("question")
    ask_p.set_defaults(func=cmd_ask)

    sub.add_parser("chat", help="Interactive chat").set_defaults(func=cmd_chat)
    sub.add_parser("stats", help="Show vector store statistics").set_defaults(func=cmd_stats)
    sub.add_parser("clear-history", help="Start a fresh chat session").set_defaults(func=cmd_clear_history)

    serve_p = sub.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default="0.0.0.0")
    serve_p.add_argument("--port", type=int, default=8080)
    serve_p.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None, cfg: Settings = settings) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(cfg.log_level)
    try:
        return args.func(args, cfg)
    except HelpdeskRagError as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
