"""
Chat — grounded answer generation with a persisted conversation.
"""

from helpdesk_rag.chat.llm import get_llm, invoke_llm
from helpdesk_rag.chat.session import ChatMessage, ChatResponse, ChatService, ChatSession

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "ChatService",
    "ChatSession",
    "get_llm",
    "invoke_llm",
]
