"""FastAPI application exposing help-center question answering as a REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from helpdesk_rag import __version__
from helpdesk_rag.chat.session import ChatService
from helpdesk_rag.clients.embeddings import EmbeddingClient
from helpdesk_rag.config import settings
from helpdesk_rag.exceptions import BackendError, NotLoadedError
from helpdesk_rag.retrieval.json_store import JsonVectorStore
from helpdesk_rag.retrieval.models import SourceReference, StoreStats
from helpdesk_rag.retrieval.retriever import SemanticRetriever

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Helpdesk RAG API",
    version=__version__,
    description="Answers questions from indexed help-center articles.",
)


@dataclass
class Services:
    store: JsonVectorStore
    retriever: SemanticRetriever
    chat: ChatService


@lru_cache(maxsize=1)
def get_services() -> Services:
    """Build the store, retriever and chat service once per process.

    The chat service is used without a persisted session: every request is
    answered on its own.
    """
    store = JsonVectorStore(settings.vector_store_path)
    store.load()
    retriever = SemanticRetriever(store, EmbeddingClient.from_settings(settings), options=settings.search_options())
    chat = ChatService(settings)
    return Services(store=store, retriever=retriever, chat=chat)


# ── Request / Response schemas ────────────────────────────────────────
class QueryRequest(BaseModel):
    """Incoming question from the user."""

    query: str


class QueryResponse(BaseModel):
    """Generated answer with the articles it cites."""

    answer: str
    sources: list[SourceReference] = []


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}


@app.get("/stats", response_model=StoreStats)
def stats(services: Services = Depends(get_services)) -> StoreStats:
    try:
        return services.store.get_stats()
    except NotLoadedError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/query", response_model=QueryResponse)
def query(request: QueryRequest, services: Services = Depends(get_services)) -> QueryResponse:
    """Retrieve relevant chunks and generate a grounded answer."""
    question = request.query.strip()
    if not question:
        raise HTTPException(status_code=422, detail="query must not be empty")

    try:
        results = services.retriever.search(question)
        response = services.chat.answer(question, results)
    except BackendError as exc:
        logger.error("Query failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return QueryResponse(answer=response.answer, sources=response.sources)
