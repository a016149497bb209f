"""
Clients — HTTP wrappers for the remote backends.

Each client owns its own rate limiter and retry policy so pacing state is
never shared between backends.
"""

from helpdesk_rag.clients.embeddings import EmbeddingBatch, EmbeddingClient
from helpdesk_rag.clients.rate_limit import RateLimiter, RateLimits, RateLimitState
from helpdesk_rag.clients.retry import RetryPolicy
from helpdesk_rag.clients.zendesk import ZendeskClient

__all__ = [
    "EmbeddingBatch",
    "EmbeddingClient",
    "RateLimitState",
    "RateLimiter",
    "RateLimits",
    "RetryPolicy",
    "ZendeskClient",
]
