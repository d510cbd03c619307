"""
Briefly CoPilot - Legal assistant backend

This module provides:
- Document ingestion: upload parsing, fixed-window chunking, embeddings
- Similarity search over organization-scoped chunks (Postgres + pgvector)
- Streaming legal chat, drafting/redlining and CSV data analysis
- Contract review with clause findings benchmarked against a clause library
- CUAD dataset import

Entry point: execution.briefly.api:app
"""

from .chunker import DocumentChunker
from .embeddings import EmbeddingService
from .vector_store import VectorStore
from .retriever import ChunkRetriever
from .vectorizer import VectorizationPipeline
from .contract_review import ContractReviewer

__all__ = [
    "DocumentChunker",
    "EmbeddingService",
    "VectorStore",
    "ChunkRetriever",
    "VectorizationPipeline",
    "ContractReviewer",
]

__version__ = "0.1.0"
