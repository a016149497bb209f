"""Unit tests for the ``helpdesk-rag`` command line."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from helpdesk_rag.chat.session import ChatResponse
from helpdesk_rag.cli import build_parser, main
from helpdesk_rag.config import Settings
from helpdesk_rag.retrieval.models import SourceReference


def test_parser_reindex_flags() -> None:
    args = build_parser().parse_args(["reindex", "--prune", "--yes"])
    assert args.command == "reindex"
    assert args.prune and args.yes


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_stats_on_empty_store(test_settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["stats"], cfg=test_settings) == 0

    out = capsys.readouterr().out
    assert "Articles:        0" in out
    assert "Chunks:          0" in out


@patch("helpdesk_rag.chat.session.get_llm")
def test_clear_history(mock_get_llm: MagicMock, test_settings: Settings, tmp_path) -> None:
    assert main(["clear-history"], cfg=test_settings) == 0
    assert (tmp_path / "history.json").exists()


@patch("builtins.input", return_value="n")
def test_prune_requires_confirmation(mock_input: MagicMock, test_settings: Settings) -> None:
    with patch("helpdesk_rag.clients.zendesk.ZendeskClient.from_settings") as from_settings:
        assert main(["reindex", "--prune"], cfg=test_settings) == 1
    from_settings.assert_not_called()


def test_reindex_without_credentials_fails_cleanly(
    test_settings: Settings, capsys: pytest.CaptureFixture[str]
) -> None:
    cfg = test_settings.model_copy(update={"zendesk_oauth_token": "", "zendesk_email": "", "zendesk_api_token": ""})

    assert main(["reindex"], cfg=cfg) == 1
    assert "ZENDESK_OAUTH_TOKEN" in capsys.readouterr().err


def test_ask_prints_answer_and_sources(test_settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    chat = MagicMock()
    chat.generate_response.return_value = ChatResponse(
        answer="Open Settings.",
        sources=[SourceReference(article_id=9, title="Settings", url="https://x/9", relevance_score=0.91)],
    )
    retriever = MagicMock()
    retriever.search.return_value = []

    with patch("helpdesk_rag.cli._build_retriever", return_value=retriever), patch(
        "helpdesk_rag.chat.session.ChatService", return_value=chat
    ):
        assert main(["ask", "Where are settings?"], cfg=test_settings) == 0

    out = capsys.readouterr().out
    assert "Open Settings." in out
    assert "Settings (Article ID: 9, relevance 0.910)" in out
    retriever.search.assert_called_once_with("Where are settings?")


def test_retriever_embeds_with_given_settings(test_settings: Settings) -> None:
    from helpdesk_rag.cli import _build_retriever

    cfg = test_settings.model_copy(update={"embedding_model": "cfg-model", "embedding_base_url": "http://cfg.local/v1"})

    retriever = _build_retriever(cfg, MagicMock())

    assert retriever._embedder.model == "cfg-model"
    assert retriever._embedder.base_url == "http://cfg.local/v1"


def test_reindex_builds_embedder_from_given_settings(test_settings: Settings) -> None:
    cfg = test_settings.model_copy(update={"embedding_model": "cfg-model"})
    embedder = MagicMock(model="cfg-model")

    with patch("helpdesk_rag.clients.zendesk.ZendeskClient.from_settings") as source_factory, patch(
        "helpdesk_rag.clients.embeddings.EmbeddingClient.from_settings", return_value=embedder
    ) as embedder_factory, patch("helpdesk_rag.ingestion.reindex.reindex") as run:
        source_factory.return_value.test_connection.return_value = True
        run.return_value.up_to_date = True

        assert main(["reindex"], cfg=cfg) == 0

    embedder_factory.assert_called_once_with(cfg)
    assert run.call_args.kwargs["embedding_model"] == "cfg-model"
