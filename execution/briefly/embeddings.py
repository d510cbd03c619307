"""
Embedding Service for Briefly CoPilot

Generates text embeddings through an OpenAI-compatible embeddings API
(text-embedding-3-small by default, 1536 dimensions).

Each chunk is embedded with its own API call. Calls are retried with
exponential backoff (1s, 2s) and run with a small concurrency limit so a
large document does not exhaust memory or the provider's rate limit.
Query embeddings are cached in memory and optionally on disk.
"""

import os
import json
import time
import hashlib
import logging
from typing import Iterator, Optional
from dataclasses import dataclass
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for embedding service."""
    model: str = "text-embedding-3-small"
    dimensions: int = 1536
    base_url: Optional[str] = None  # None = api.openai.com
    max_retries: int = 2
    backoff_base_seconds: float = 1.0
    batch_size: int = 3   # Chunks embedded before each insert
    concurrency: int = 2  # Parallel API calls within a batch
    timeout: float = 60.0
    cache_dir: Optional[str] = None
    use_cache: bool = True


class EmbeddingError(Exception):
    """Raised when an embedding could not be generated after all retries."""


class EmbeddingService:
    """
    Embedding client with retry, bounded concurrency and caching.

    Usage:
        service = EmbeddingService()
        vector = service.embed_query("termination for convenience")

        for batch_start, vectors in service.iter_batches(chunk_texts):
            store.insert_chunks(...)
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None, client=None):
        """
        Initialize embedding service.

        Args:
            config: Optional configuration. Uses defaults if not provided.
            client: Optional pre-built OpenAI client (mainly for tests)
        """
        self.config = config or EmbeddingConfig()
        self._client = client
        self._cache = {}

        if self.config.cache_dir:
            self._cache_path = Path(self.config.cache_dir)
            self._cache_path.mkdir(parents=True, exist_ok=True)
        else:
            self._cache_path = None

        if self._client is None:
            self._init_client()

    def _init_client(self):
        """Initialize the OpenAI-compatible client."""
        api_key = os.getenv("OPENAI_API_KEY")

        if not api_key:
            logger.warning(
                "OPENAI_API_KEY not found. Embeddings will fail. "
                "Set the environment variable to enable vectorization."
            )
            return

        from openai import OpenAI
        self._client = OpenAI(
            api_key=api_key,
            base_url=self.config.base_url or os.getenv("EMBEDDINGS_BASE_URL") or None,
            timeout=self.config.timeout,
            max_retries=0,  # Retries are handled here with our own backoff
        )
        logger.info(f"Embedding client initialized with model {self.config.model}")

    def embed_text(self, text: str) -> list[float]:
        """
        Embed a single text with retry and exponential backoff.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingError: If every attempt failed
        """
        if not self._client:
            raise RuntimeError("Embedding client not initialized. Check OPENAI_API_KEY.")

        last_error = None
        for attempt in range(self.config.max_retries + 1):
            try:
                response = self._client.embeddings.create(
                    model=self.config.model,
                    input=text,
                )
                return list(response.data[0].embedding)
            except Exception as e:
                last_error = e
                if attempt == self.config.max_retries:
                    break
                delay = self.config.backoff_base_seconds * (2 ** attempt)
                logger.warning(
                    f"Embedding attempt {attempt + 1} failed ({type(e).__name__}: {e}), "
                    f"retry {attempt + 1}/{self.config.max_retries} after {delay:.1f}s"
                )
                time.sleep(delay)

        raise EmbeddingError(
            f"Failed to generate embedding after {self.config.max_retries + 1} attempts: {last_error}"
        ) from last_error

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """
        Embed several texts with at most ``concurrency`` calls in flight.

        Results are returned in input order. The first failure propagates.
        """
        if not texts:
            return []

        if self.config.concurrency <= 1 or len(texts) == 1:
            return [self.embed_text(t) for t in texts]

        with ThreadPoolExecutor(max_workers=self.config.concurrency) as executor:
            return list(executor.map(self.embed_text, texts))

    def iter_batches(self, texts: list[str]) -> Iterator[tuple[int, list[list[float]]]]:
        """
        Embed texts batch by batch.

        Yields:
            (batch_start, vectors) so callers can persist each batch before
            the next one is embedded
        """
        total_batches = (len(texts) + self.config.batch_size - 1) // self.config.batch_size
        for batch_start in range(0, len(texts), self.config.batch_size):
            batch = texts[batch_start:batch_start + self.config.batch_size]
            batch_num = batch_start // self.config.batch_size + 1
            logger.info(
                f"Embedding batch {batch_num}/{total_batches} "
                f"(chunks {batch_start + 1}-{batch_start + len(batch)}/{len(texts)})"
            )
            yield batch_start, self.embed_documents(batch)

    def embed_query(self, query: str) -> list[float]:
        """
        Embed a search query or clause, using the cache when possible.

        Args:
            query: Query string

        Returns:
            Embedding vector
        """
        cache_key = self._get_cache_key(query)
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        embedding = self.embed_text(query)
        self._set_cached(cache_key, embedding)
        return embedding

    def _get_cache_key(self, text: str) -> str:
        """Generate cache key for text."""
        content = f"{self.config.model}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]

    def _get_cached(self, key: str) -> Optional[list[float]]:
        """Get cached embedding."""
        if not self.config.use_cache:
            return None

        if key in self._cache:
            return self._cache[key]

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            if cache_file.exists():
                try:
                    with open(cache_file) as f:
                        embedding = json.load(f)
                        self._cache[key] = embedding
                        return embedding
                except (OSError, ValueError) as e:
                    logger.debug(f"Failed to read embedding cache file {cache_file}: {e}")

        return None

    def _set_cached(self, key: str, embedding: list[float]) -> None:
        """Cache an embedding."""
        if not self.config.use_cache:
            return

        self._cache[key] = embedding

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            try:
                with open(cache_file, 'w') as f:
                    json.dump(embedding, f)
            except OSError as e:
                logger.warning(f"Failed to cache embedding: {e}")

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions."""
        return self.config.dimensions


def get_embedding_service(org_settings=None) -> EmbeddingService:
    """
    Factory returning an embedding service configured for an organization.

    Args:
        org_settings: Optional OrganizationSettings carrying model overrides

    Returns:
        Configured EmbeddingService
    """
    config = EmbeddingConfig(cache_dir=os.getenv("EMBEDDING_CACHE_DIR") or None)
    if org_settings is not None:
        config.model = org_settings.embedding_model
        config.dimensions = org_settings.embedding_dimensions
    return EmbeddingService(config)


# CLI for testing
if __name__ == "__main__":
    import sys
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    service = get_embedding_service()

    if len(sys.argv) > 1:
        query = " ".join(sys.argv[1:])
    else:
        query = "What are the termination clauses in this contract?"

    print(f"Query: {query}")
    embedding = service.embed_query(query)
    print(f"Embedding dimensions: {len(embedding)}")
    print(f"First 10 values: {embedding[:10]}")
