"""Chat service: persistent session plus grounded answer generation.

One JSON file holds the current session.  A missing, unreadable or
malformed file is never fatal; a fresh session is started instead.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Literal, Sequence

from pydantic import BaseModel, Field, ValidationError

from helpdesk_rag.chat.llm import get_llm, invoke_llm
from helpdesk_rag.chat.prompts import (
    SYSTEM_PROMPT,
    build_chat_prompt,
    build_context,
    build_enhanced_message,
)
from helpdesk_rag.clients.rate_limit import RateLimiter
from helpdesk_rag.config import Settings, settings
from helpdesk_rag.retrieval.models import SearchResult, SourceReference, utcnow

if TYPE_CHECKING:
    from langchain_openai import ChatOpenAI

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    sources: list[SourceReference] = Field(default_factory=list)


class ChatSession(BaseModel):
    id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatResponse(BaseModel):
    answer: str
    sources: list[SourceReference] = Field(default_factory=list)


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


class ChatService:
    """Answer questions from retrieved chunks while keeping a conversation.

    Parameters
    ----------
    cfg:
        Settings providing the model, history path and limits.
    llm:
        Chat model; built from *cfg* via :func:`~helpdesk_rag.chat.llm.get_llm`
        when omitted.
    sleep:
        Injectable for tests; used by rate limiting and retry.
    """

    def __init__(
        self,
        cfg: Settings = settings,
        llm: ChatOpenAI | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cfg = cfg
        self.history_path = Path(cfg.chat_history_path)
        self.llm = llm if llm is not None else get_llm(cfg)
        self.limiter = RateLimiter(cfg.generation_rate_limits(), name="openai", sleep=sleep)
        self.retry = cfg.retry_policy()
        self._sleep = sleep
        self.session: ChatSession | None = None

    # -- session lifecycle ------------------------------------------------------

    def start_new_session(self) -> ChatSession:
        self.session = ChatSession(
            id=new_session_id(),
            messages=[ChatMessage(role="system", content=SYSTEM_PROMPT)],
        )
        logger.info("Started new chat session: %s", self.session.id)
        return self.session

    def load_or_create_session(self) -> ChatSession:
        if not self.history_path.exists():
            return self.start_new_session()

        try:
            raw = json.loads(self.history_path.read_text(encoding="utf-8"))
            self.session = ChatSession.model_validate(raw)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Failed to load chat session, starting new one: %s", exc)
            return self.start_new_session()

        logger.info("Loaded chat session with %d messages", len(self.session.messages))
        return self.session

    def save_session(self) -> None:
        """Write the session to disk; failures are logged, not raised."""
        if self.session is None:
            return
        self.session.updated_at = utcnow()
        try:
            self.history_path.parent.mkdir(parents=True, exist_ok=True)
            self.history_path.write_text(self.session.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to save chat session: %s", exc)
            return
        logger.debug("Saved chat session")

    def clear_history(self) -> None:
        logger.info("Clearing chat history...")
        self.start_new_session()
        self.save_session()

    # -- generation ------------------------------------------------------------

    def generate_response(self, message: str, results: Sequence[SearchResult]) -> ChatResponse:
        """Answer *message* grounded in *results* and append the exchange to the session.

        Backend errors propagate after retries are exhausted; the session is
        left unchanged in that case.
        """
        if self.session is None:
            self.load_or_create_session()
        session = self.session

        system = next((m.content for m in session.messages if m.role == "system"), SYSTEM_PROMPT)
        response = self._complete(message, results, system, self._recent_history())

        session.messages.append(ChatMessage(role="user", content=message))
        session.messages.append(ChatMessage(role="assistant", content=response.answer, sources=response.sources))
        self.save_session()
        return response

    def answer(self, message: str, results: Sequence[SearchResult]) -> ChatResponse:
        """Answer *message* without reading or recording any conversation.

        Used by the HTTP API, where requests from different callers must not
        see each other's history.
        """
        return self._complete(message, results, SYSTEM_PROMPT, [])

    def conversation_history(self) -> list[ChatMessage]:
        if self.session is None:
            return []
        return [m for m in self.session.messages if m.role != "system"]

    def _recent_history(self) -> list[ChatMessage]:
        return self.conversation_history()[-self.cfg.max_context_messages * 2 :]

    def _complete(
        self,
        message: str,
        results: Sequence[SearchResult],
        system: str,
        history: Sequence[ChatMessage],
    ) -> ChatResponse:
        sources = [SourceReference.from_result(r) for r in results]
        enhanced = build_enhanced_message(message, build_context(results))
        prompt = build_chat_prompt(system, history, enhanced)

        self.limiter.acquire(1)
        reply = self.retry.call(
            lambda: invoke_llm(self.llm, prompt),
            sleep=self._sleep,
            description="chat completion",
        )

        usage = getattr(reply, "usage_metadata", None) or {}
        self.limiter.record_tokens(int(usage.get("total_tokens", 0)))

        answer = reply.content if isinstance(reply.content, str) else str(reply.content)
        logger.debug("Generated response with %d sources", len(sources))
        return ChatResponse(answer=answer, sources=sources)
