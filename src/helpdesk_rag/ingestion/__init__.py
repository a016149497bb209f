"""
Ingestion — chunking, embedding orchestration, and incremental reindexing.

This module turns help-center articles into embedded chunks stored in the
vector store, isolating failures per article and per chunk.
"""

from helpdesk_rag.ingestion.chunker import Chunker, ChunkingOptions, split_text
from helpdesk_rag.ingestion.loader import DocumentSource, html_to_text
from helpdesk_rag.ingestion.orchestrator import IngestionOrchestrator, IngestionResult
from helpdesk_rag.ingestion.reindex import ReindexReport, reindex

__all__ = [
    "Chunker",
    "ChunkingOptions",
    "DocumentSource",
    "IngestionOrchestrator",
    "IngestionResult",
    "ReindexReport",
    "html_to_text",
    "reindex",
    "split_text",
]
