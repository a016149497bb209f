"""HTTP client for an OpenAI-compatible ``/embeddings`` endpoint."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Sequence

import requests
from pydantic import BaseModel, ValidationError

from helpdesk_rag.clients.rate_limit import RateLimiter, RateLimits
from helpdesk_rag.clients.retry import RetryPolicy
from helpdesk_rag.config import Settings, settings
from helpdesk_rag.exceptions import BackendError, BackendTimeoutError

logger = logging.getLogger(__name__)


class _EmbeddingDatum(BaseModel):
    embedding: list[float]
    index: int = 0


class _EmbeddingUsage(BaseModel):
    prompt_tokens: int = 0
    total_tokens: int = 0


class EmbeddingResponse(BaseModel):
    """Wire format returned by the embedding server."""

    data: list[_EmbeddingDatum]
    model: str = ""
    usage: _EmbeddingUsage | None = None


class EmbeddingBatch(BaseModel):
    """One vector per input text, in input order, plus reported token usage."""

    vectors: list[list[float]]
    total_tokens: int = 0


def error_message(response: requests.Response) -> str:
    """Best-effort extraction of an error message from a failed response."""
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        err = payload.get("error") or payload.get("message") or payload.get("description")
        if isinstance(err, dict):
            err = err.get("message")
        if err:
            return str(err)
    return response.text


class EmbeddingClient:
    """Embed texts with a remote embedding server.

    Parameters
    ----------
    base_url:
        Server root; requests go to ``<base_url>/embeddings``.
    api_key:
        Bearer token.
    model:
        Model identifier sent with every request.
    timeout:
        Per-request timeout in seconds.
    limits / retry:
        Pacing and retry configuration; default to the global settings.
    session:
        Optional :class:`requests.Session` (injected in tests).
    sleep:
        Sleep function shared by the limiter and the retry policy.
    """

    def __init__(
        self,
        base_url: str = settings.embedding_base_url,
        api_key: str = settings.embedding_api_key,
        model: str = settings.embedding_model,
        *,
        timeout: float = settings.timeout_seconds,
        limits: RateLimits | None = None,
        retry: RetryPolicy | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._api_key = api_key
        self._session = session or requests.Session()
        self._sleep = sleep
        self._retry = retry or settings.retry_policy()
        self.limiter = RateLimiter(
            limits or settings.embedding_rate_limits(),
            name="embeddings",
            sleep=sleep,
        )

    @classmethod
    def from_settings(cls, cfg: Settings = settings, **kwargs: Any) -> EmbeddingClient:
        """Build a client from *cfg* rather than the import-time defaults."""
        return cls(
            cfg.embedding_base_url,
            cfg.embedding_api_key,
            cfg.embedding_model,
            timeout=cfg.timeout_seconds,
            limits=cfg.embedding_rate_limits(),
            retry=cfg.retry_policy(),
            **kwargs,
        )

    # -- public API -----------------------------------------------------------

    def embed(self, texts: str | Sequence[str]) -> EmbeddingBatch:
        """Embed one or many texts in a single request."""
        inputs = [texts] if isinstance(texts, str) else list(texts)
        if not inputs:
            return EmbeddingBatch(vectors=[])

        self.limiter.acquire(len(inputs))
        payload = {"model": self.model, "input": inputs}
        response = self._retry.call(
            lambda: self._post(payload),
            sleep=self._sleep,
            description="embedding request",
        )

        total_tokens = response.usage.total_tokens if response.usage else 0
        self.limiter.record_tokens(total_tokens)

        data = sorted(response.data, key=lambda d: d.index)
        if len(data) != len(inputs):
            raise BackendError(
                f"Embedding API returned {len(data)} vectors for {len(inputs)} inputs"
            )
        return EmbeddingBatch(vectors=[d.embedding for d in data], total_tokens=total_tokens)

    def embed_query(self, query: str) -> list[float]:
        """Return the embedding vector for a search query."""
        return self.embed(query).vectors[0]

    # -- internals ------------------------------------------------------------

    def _post(self, payload: dict[str, Any]) -> EmbeddingResponse:
        url = f"{self.base_url}/embeddings"
        try:
            resp = self._session.post(
                url,
                json=payload,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self._api_key}",
                },
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise BackendTimeoutError(
                f"Embedding API request timed out after {self.timeout:.0f}s"
            ) from exc
        except requests.RequestException as exc:
            raise BackendError(f"Embedding API request failed: {exc}") from exc

        if not resp.ok:
            raise BackendError(
                f"Embedding API error ({resp.status_code}): {error_message(resp)}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise BackendError("Embedding API returned invalid JSON") from exc

        if isinstance(data, dict) and "message" in data and "data" not in data:
            raise BackendError(f"Embedding API error: {data['message']}")

        try:
            return EmbeddingResponse.model_validate(data)
        except ValidationError as exc:
            raise BackendError(f"Invalid embedding response format: {exc.errors()[0]['msg']}") from exc
