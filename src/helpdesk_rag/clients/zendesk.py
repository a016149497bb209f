"""Zendesk Help Center client — the document source for ingestion."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests
from pydantic import BaseModel, ValidationError

from helpdesk_rag.clients.embeddings import error_message
from helpdesk_rag.clients.rate_limit import RateLimiter, RateLimits
from helpdesk_rag.clients.retry import RetryPolicy
from helpdesk_rag.config import Settings, settings
from helpdesk_rag.exceptions import BackendError, BackendTimeoutError
from helpdesk_rag.retrieval.models import Article

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
PAGE_DELAY = 0.2


class ArticleListResponse(BaseModel):
    articles: list[Article]
    next_page: str | None = None
    page: int | None = None
    page_count: int | None = None
    count: int | None = None


class ArticleDetailResponse(BaseModel):
    article: Article


class ZendeskClient:
    """Fetch published Help Center articles.

    Parameters
    ----------
    subdomain:
        ``<subdomain>.zendesk.com``.
    authorization:
        Full ``Authorization`` header value (``Bearer …`` or ``Basic …``),
        see :meth:`helpdesk_rag.config.Settings.zendesk_authorization`.
    timeout:
        Per-request timeout in seconds.
    limits / retry:
        Pacing and retry configuration; default to the global settings.
    session / sleep:
        Injectable for tests.
    """

    def __init__(
        self,
        subdomain: str,
        authorization: str,
        *,
        timeout: float = settings.timeout_seconds,
        limits: RateLimits | None = None,
        retry: RetryPolicy | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = f"https://{subdomain}.zendesk.com/api/v2"
        self.timeout = timeout
        self._headers = {
            "Authorization": authorization,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._session = session or requests.Session()
        self._sleep = sleep
        self._retry = retry or settings.retry_policy()
        self.limiter = RateLimiter(
            limits or settings.source_rate_limits(),
            name="zendesk",
            sleep=sleep,
        )

    @classmethod
    def from_settings(cls, cfg: Settings = settings, **kwargs: Any) -> ZendeskClient:
        """Build a client from settings; raises if authentication is misconfigured."""
        return cls(
            cfg.zendesk_subdomain,
            cfg.zendesk_authorization(),
            timeout=cfg.timeout_seconds,
            limits=cfg.source_rate_limits(),
            retry=cfg.retry_policy(),
            **kwargs,
        )

    # -- DocumentSource -------------------------------------------------------

    def fetch_all(self) -> list[Article]:
        """Fetch every published article, newest update first."""
        logger.info("Fetching all Help Center articles...")
        articles: list[Article] = []
        page = 1

        while True:
            params = {
                "per_page": PAGE_SIZE,
                "page": page,
                "sort_by": "updated_at",
                "sort_order": "desc",
            }
            data = self._retry.call(
                lambda: self._get("/help_center/articles", params),
                sleep=self._sleep,
                description=f"articles page {page}",
            )
            try:
                response = ArticleListResponse.model_validate(data)
            except ValidationError as exc:
                raise BackendError(f"Invalid API response format: {exc.errors()[0]['msg']}") from exc

            published = [a for a in response.articles if not a.draft]
            articles.extend(published)
            logger.info(
                "Page %d: %d published articles (%d drafts skipped)",
                page,
                len(published),
                len(response.articles) - len(published),
            )

            if response.next_page is None:
                break
            page += 1
            self._sleep(PAGE_DELAY)

        logger.info("Fetched %d published articles", len(articles))
        return articles

    def fetch_one(self, article_id: int) -> Article | None:
        """Fetch one article; ``None`` when it does not exist."""
        try:
            data = self._retry.call(
                lambda: self._get(f"/help_center/articles/{article_id}"),
                sleep=self._sleep,
                description=f"article {article_id}",
            )
        except BackendError as exc:
            if exc.status_code == 404:
                logger.warning("Article %d not found", article_id)
                return None
            raise
        try:
            return ArticleDetailResponse.model_validate(data).article
        except ValidationError as exc:
            raise BackendError(f"Invalid API response format: {exc.errors()[0]['msg']}") from exc

    def test_connection(self) -> bool:
        """Return ``True`` when the API answers an authenticated request."""
        try:
            self._get("/help_center/articles", {"per_page": 1})
        except BackendError:
            logger.error("Zendesk API connection failed", exc_info=True)
            return False
        logger.info("Zendesk API connection successful")
        return True

    # -- internals ------------------------------------------------------------

    def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        self.limiter.acquire()
        url = f"{self.base_url}{endpoint}"
        try:
            resp = self._session.get(url, params=params, headers=self._headers, timeout=self.timeout)
        except requests.Timeout as exc:
            raise BackendTimeoutError(
                f"Zendesk API request timed out after {self.timeout:.0f}s"
            ) from exc
        except requests.RequestException as exc:
            raise BackendError(f"Zendesk API request failed: {exc}") from exc

        if not resp.ok:
            raise BackendError(
                f"Zendesk API error ({resp.status_code}): {error_message(resp)}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise BackendError("Zendesk API returned invalid JSON") from exc
