"""
Tests for execution/briefly/retriever.py

Covers: query embedding, parameter pass-through to the store, document
filtering and the ChunkMatch mapping.
"""

from tests.conftest import MockEmbeddingService


class TestChunkRetriever:

    def test_empty_query_returns_nothing(self, mock_store):
        from execution.briefly.retriever import ChunkRetriever
        embeddings = MockEmbeddingService()
        assert ChunkRetriever(mock_store, embeddings).retrieve("   ") == []
        assert embeddings.calls == []

    def test_matches_mapped(self, mock_store):
        from execution.briefly.retriever import ChunkRetriever
        mock_store.chunks["doc-1"] = [{"chunk_index": 0, "chunk_text": "Indemnity clause", "metadata": {}}]
        matches = ChunkRetriever(mock_store, MockEmbeddingService()).retrieve("indemnity")

        assert len(matches) == 1
        assert matches[0].document_id == "doc-1"
        assert matches[0].to_dict() == {
            "chunk_id": "doc-1-0",
            "document_id": "doc-1",
            "chunk_index": 0,
            "chunk_text": "Indemnity clause",
            "similarity": 0.9,
        }

    def test_document_filter_and_count(self, mock_store):
        from execution.briefly.retriever import ChunkRetriever
        for doc in ("doc-1", "doc-2"):
            mock_store.chunks[doc] = [
                {"chunk_index": i, "chunk_text": f"{doc} {i}", "metadata": {}} for i in range(3)
            ]
        retriever = ChunkRetriever(mock_store, MockEmbeddingService())

        matches = retriever.retrieve("q", document_ids=["doc-2"], match_count=2)
        assert len(matches) == 2
        assert {m.document_id for m in matches} == {"doc-2"}

    def test_query_is_embedded(self, mock_store):
        from execution.briefly.retriever import ChunkRetriever
        embeddings = MockEmbeddingService()
        ChunkRetriever(mock_store, embeddings).retrieve("governing law")
        assert embeddings.calls == ["governing law"]
