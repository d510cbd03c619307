"""
Chunk Retriever

Embeds a query and asks the database's ``match_document_chunks`` function
for the most similar chunks above a cosine-similarity threshold.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class ChunkMatch:
    """A chunk returned by similarity search."""
    chunk_id: str
    document_id: str
    chunk_index: int
    chunk_text: str
    similarity: float

    @classmethod
    def from_row(cls, row: dict) -> "ChunkMatch":
        return cls(
            chunk_id=str(row["id"]),
            document_id=str(row["document_id"]),
            chunk_index=int(row["chunk_index"]),
            chunk_text=row["chunk_text"],
            similarity=float(row["similarity"]),
        )

    def to_dict(self) -> dict:
        return {
            "chunk_id": self.chunk_id,
            "document_id": self.document_id,
            "chunk_index": self.chunk_index,
            "chunk_text": self.chunk_text,
            "similarity": round(self.similarity, 4),
        }


class ChunkRetriever:
    """
    Similarity search over vectorized documents.

    Usage:
        retriever = ChunkRetriever(store, embedding_service)
        matches = retriever.retrieve("indemnification cap", document_ids=[doc_id])
    """

    def __init__(self, store, embedding_service):
        self.store = store
        self.embeddings = embedding_service

    def retrieve(
        self,
        query: str,
        document_ids: Optional[list[str]] = None,
        match_threshold: float = 0.5,
        match_count: int = 10,
    ) -> list[ChunkMatch]:
        """
        Find the chunks most similar to a query.

        Args:
            query: Natural-language query
            document_ids: Restrict the search to these documents
            match_threshold: Minimum cosine similarity
            match_count: Maximum number of matches

        Returns:
            Matches ordered by descending similarity
        """
        if not query or not query.strip():
            return []

        embedding = self.embeddings.embed_query(query)
        rows = self.store.match_document_chunks(
            embedding,
            match_threshold=match_threshold,
            match_count=match_count,
            document_ids=document_ids,
        )
        matches = [ChunkMatch.from_row(r) for r in rows]
        logger.info(f"Retrieved {len(matches)} chunks for query ({len(query)} chars)")
        return matches
