"""Document-source contract and HTML to plain-text conversion."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Protocol

from bs4 import BeautifulSoup

if TYPE_CHECKING:
    from helpdesk_rag.retrieval.models import Article

_BLOCK_TAGS = ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6"]


class DocumentSource(Protocol):
    """Anything that can list published articles and look one up by id.

    Implementations paginate internally and drop unpublished (draft)
    articles before returning.
    """

    def fetch_all(self) -> list[Article]: ...

    def fetch_one(self, article_id: int) -> Article | None: ...


def html_to_text(html: str) -> str:
    """Convert an HTML article body to readable plain text.

    Block elements end with a newline, list items become ``• `` bullets,
    and whitespace is normalised (at most one blank line in a row).
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    for br in soup.find_all("br"):
        br.replace_with("\n")
    for elem in soup.find_all(_BLOCK_TAGS):
        elem.append("\n")
    for li in soup.find_all("li"):
        li.insert(0, "• ")
        li.append("\n")

    text = soup.get_text()
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n\s*\n\s*\n", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()
