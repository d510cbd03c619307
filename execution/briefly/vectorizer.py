"""
Document Vectorization Pipeline

Turns a stored document into searchable chunk embeddings:

    fetch -> rate limit -> status 'processing' -> chunk (3000/200)
    -> delete old chunks -> embed + insert batch by batch -> status 'completed'

Any failure after the status flips to 'processing' leaves the document in
'failed', so the repository view never shows a stuck job.
"""

import time
import logging
from dataclasses import dataclass
from typing import Optional

from .chunker import DocumentChunker, ChunkConfig
from .embeddings import EmbeddingError
from .metrics import get_metrics_collector
from .rate_limits import ActionRateLimiter, RateLimitExceededError

logger = logging.getLogger(__name__)


class VectorizationError(Exception):
    """Vectorization failed; carries the HTTP status to report."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class VectorizationResult:
    """Outcome of a successful vectorization."""
    document_id: str
    chunk_count: int

    @property
    def message(self) -> str:
        return f"Document vectorized successfully with {self.chunk_count} chunks"

    def to_dict(self) -> dict:
        return {
            "success": True,
            "document_id": self.document_id,
            "chunk_count": self.chunk_count,
            "message": self.message,
        }


class VectorizationPipeline:
    """
    Chunks, embeds and stores a single document.

    Usage:
        pipeline = VectorizationPipeline(store, embedding_service)
        result = pipeline.vectorize(document_id)
    """

    def __init__(
        self,
        store,
        embedding_service,
        chunk_config: Optional[ChunkConfig] = None,
        rate_limiter: Optional[ActionRateLimiter] = None,
    ):
        self.store = store
        self.embeddings = embedding_service
        self.chunker = DocumentChunker(chunk_config)
        self.rate_limiter = rate_limiter or ActionRateLimiter(store)

    def vectorize(self, document_id: str) -> VectorizationResult:
        """
        Vectorize a document.

        Args:
            document_id: Document UUID

        Returns:
            VectorizationResult with the number of stored chunks

        Raises:
            VectorizationError: 404 missing document, 429 rate limit,
                400 empty text, 500 embedding or storage failure
        """
        start = time.time()

        document = self.store.get_document(document_id)
        if not document:
            raise VectorizationError(404, "Document not found")

        try:
            self.rate_limiter.enforce("vectorize", document["user_id"])
        except RateLimitExceededError as e:
            raise VectorizationError(429, str(e)) from e

        self.store.set_vectorization_status(document_id, "processing")

        content = document.get("content_text") or ""
        if not content.strip():
            logger.error(f"Document {document_id} has no text content")
            self._fail(document_id)
            raise VectorizationError(400, "Document has no text content to vectorize")

        filename = document.get("filename", "")
        logger.info(f"Vectorizing {filename} ({len(content)} characters)")
        chunks = [c.to_dict() for c in self.chunker.chunk(content, filename=filename)]

        try:
            self.store.delete_chunks(document_id)
            total_inserted = self._embed_and_store(document_id, chunks)
        except VectorizationError:
            self._fail(document_id)
            raise
        except Exception as e:
            logger.error(f"Vectorization of {document_id} failed: {e}")
            self._fail(document_id)
            raise VectorizationError(500, str(e) or "Vectorization failed") from e

        self.store.mark_vectorized(document_id, total_inserted)

        duration_ms = (time.time() - start) * 1000
        get_metrics_collector().record_vectorization(total_inserted, duration_ms)
        logger.info(f"Vectorized document {document_id} with {total_inserted} chunks in {duration_ms:.0f}ms")
        return VectorizationResult(document_id=document_id, chunk_count=total_inserted)

    def _embed_and_store(self, document_id: str, chunks: list[dict]) -> int:
        texts = [c["chunk_text"] for c in chunks]
        batches = self.embeddings.iter_batches(texts)
        total_inserted = 0

        while True:
            try:
                batch_start, vectors = next(batches)
            except StopIteration:
                break
            except (EmbeddingError, RuntimeError) as e:
                logger.error(f"Error generating embeddings: {e}")
                raise VectorizationError(500, "Failed to generate embeddings") from e

            batch = chunks[batch_start:batch_start + len(vectors)]
            try:
                self.store.insert_chunks(document_id, batch, vectors)
            except Exception as e:
                logger.error(f"Error inserting batch at chunk {batch_start}: {e}")
                raise VectorizationError(500, "Failed to store document chunks") from e

            total_inserted += len(batch)
            logger.info(f"Total progress: {total_inserted}/{len(chunks)} chunks")

        return total_inserted

    def _fail(self, document_id: str) -> None:
        get_metrics_collector().record_vectorization(0, 0, success=False)
        try:
            self.store.set_vectorization_status(document_id, "failed")
        except Exception as e:
            logger.error(f"Could not mark document {document_id} as failed: {e}")


def vectorization_status_counts(store, organization_id: str, file_type: str = "cuad_contract") -> dict:
    """
    Count an organization's documents per vectorization status.

    A NULL status counts as pending; statuses outside the known four only
    count toward the total.
    """
    counts = {"pending": 0, "processing": 0, "completed": 0, "failed": 0, "total": 0}
    for row in store.count_vectorization_status(organization_id, file_type):
        status = row.get("status") or "pending"
        count = int(row.get("count") or 0)
        counts["total"] += count
        if status in ("pending", "processing", "completed", "failed"):
            counts[status] += count
    return counts
