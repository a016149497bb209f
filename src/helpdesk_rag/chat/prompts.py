"""Prompt templates for grounded help-center answers.

Keeping prompts in one place makes them easy to audit and version.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from helpdesk_rag.chat.session import ChatMessage
    from helpdesk_rag.retrieval.models import SearchResult

SYSTEM_PROMPT = """\
You are a helpful AI assistant that answers questions based on help center articles.

Your role:
- Answer questions using only the provided context from help center articles
- Be accurate and helpful
- Always cite the specific article titles and IDs when referencing information
- If the context doesn't contain relevant information, clearly state this
- Provide direct links to articles when possible
- Be concise but thorough in your responses

Guidelines:
- Use the exact information from the articles provided
- Don't make up information that's not in the context
- If multiple articles are relevant, mention them all
- Format your responses clearly with proper citations
- Be conversational but professional

Remember: Always ground your answers in the provided context and cite your sources clearly.
"""

NO_CONTEXT = "No relevant information found in the knowledge base."


def build_context(results: Sequence[SearchResult]) -> str:
    """Numbered listing of retrieved chunks suitable for citation references [1], [2], …"""
    if not results:
        return NO_CONTEXT

    parts: list[str] = []
    for i, result in enumerate(results, 1):
        chunk = result.chunk
        parts.append(f'[{i}] From "{chunk.title}" (Article ID: {chunk.article_id}):\n{chunk.content}\n')
    return "Relevant information from help center articles:\n\n" + "\n".join(parts)


def build_enhanced_message(question: str, context: str) -> str:
    """Wrap the user's question with the retrieved context."""
    return (
        f"Context from knowledge base:\n{context}\n\n"
        f"User question: {question}\n\n"
        "Please provide a helpful answer based on the context above. If the context "
        "doesn't contain relevant information, please say so clearly. Always reference "
        "the specific articles when citing information."
    )


def build_chat_prompt(
    system_prompt: str,
    history: Sequence[ChatMessage],
    enhanced_message: str,
) -> list[BaseMessage]:
    """Assemble system prompt, prior conversation and the context-enhanced question.

    Parameters
    ----------
    system_prompt:
        Content of the session's system message.
    history:
        Earlier user/assistant turns, oldest first, already trimmed.
    enhanced_message:
        Output of :func:`build_enhanced_message`.
    """
    messages: list[BaseMessage] = [SystemMessage(content=system_prompt)]
    for message in history:
        if message.role == "assistant":
            messages.append(AIMessage(content=message.content))
        elif message.role == "user":
            messages.append(HumanMessage(content=message.content))
    messages.append(HumanMessage(content=enhanced_message))
    return messages
