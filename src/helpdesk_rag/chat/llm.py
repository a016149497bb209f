"""LLM initialisation — single place to swap providers.

``OPENAI_BASE_URL`` may point at any OpenAI-compatible server (vLLM, a
proxy, …); ``ChatOpenAI`` works unchanged.  Client-side retries are
disabled because :class:`~helpdesk_rag.clients.retry.RetryPolicy` owns
retrying for every backend.
"""

from __future__ import annotations

import logging
from typing import Sequence

import openai
from langchain_core.messages import AIMessage, BaseMessage
from langchain_openai import ChatOpenAI

from helpdesk_rag.config import Settings, settings
from helpdesk_rag.exceptions import BackendError, BackendTimeoutError

logger = logging.getLogger(__name__)


def get_llm(cfg: Settings = settings) -> ChatOpenAI:
    """Return the configured chat model.

    A dummy API key (``"EMPTY"``) is used when none is configured, since
    local OpenAI-compatible servers usually do not require authentication.
    """
    kwargs: dict = {
        "model": cfg.chat_model,
        "temperature": cfg.temperature,
        "max_tokens": cfg.max_tokens,
        "timeout": cfg.timeout_seconds,
        "max_retries": 0,
        "api_key": cfg.openai_api_key or "EMPTY",
    }
    if cfg.openai_base_url:
        logger.debug("Using chat endpoint: %s", cfg.openai_base_url)
        kwargs["base_url"] = cfg.openai_base_url

    return ChatOpenAI(**kwargs)


def invoke_llm(llm: ChatOpenAI, messages: Sequence[BaseMessage]) -> AIMessage:
    """Call *llm*, translating OpenAI client errors into backend errors."""
    try:
        return llm.invoke(list(messages))
    except openai.APITimeoutError as exc:
        raise BackendTimeoutError(f"Chat completion timed out: {exc}") from exc
    except openai.APIStatusError as exc:
        raise BackendError(
            f"Chat completion error ({exc.status_code}): {exc.message}",
            status_code=exc.status_code,
        ) from exc
    except openai.APIConnectionError as exc:
        raise BackendError(f"Chat completion request failed: {exc}") from exc
