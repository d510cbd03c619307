"""
Tests for execution/briefly/chunker.py

Covers: fixed-window arithmetic, overlap handling, sentence-aware splitting
for contract review, and DocumentChunker metadata.
"""

import pytest


class TestSplitIntoChunks:
    """Window arithmetic of split_into_chunks."""

    def test_empty_text_yields_no_chunks(self):
        from execution.briefly.chunker import split_into_chunks
        assert split_into_chunks("") == []

    def test_short_text_is_single_chunk(self):
        from execution.briefly.chunker import split_into_chunks
        assert split_into_chunks("abc", chunk_size=10, overlap=2) == ["abc"]

    def test_text_equal_to_chunk_size(self):
        from execution.briefly.chunker import split_into_chunks
        assert split_into_chunks("a" * 10, chunk_size=10, overlap=3) == ["a" * 10]

    def test_windows_overlap_by_configured_amount(self):
        from execution.briefly.chunker import split_into_chunks
        text = "".join(str(i % 10) for i in range(25))
        chunks = split_into_chunks(text, chunk_size=10, overlap=3)
        # step = 7 -> windows start at 0, 7, 14, and the last ends at 25
        assert chunks == [text[0:10], text[7:17], text[14:24], text[21:25]]
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev[-3:] == nxt[:3]

    def test_last_window_ends_at_text_end(self):
        from execution.briefly.chunker import split_into_chunks
        text = "x" * 7000
        chunks = split_into_chunks(text)
        assert len(chunks) == 3  # starts 0, 2800, 5600
        assert chunks[-1] == text[5600:]
        assert all(len(c) <= 3000 for c in chunks)

    def test_defaults_are_3000_and_200(self):
        from execution.briefly.chunker import ChunkConfig
        config = ChunkConfig()
        assert config.chunk_size == 3000
        assert config.overlap == 200

    def test_negative_overlap_treated_as_zero(self):
        from execution.briefly.chunker import split_into_chunks
        assert split_into_chunks("abcdefgh", chunk_size=4, overlap=-5) == ["abcd", "efgh"]

    def test_overlap_not_smaller_than_size_still_advances(self):
        from execution.briefly.chunker import split_into_chunks
        chunks = split_into_chunks("abcdef", chunk_size=3, overlap=5)
        # step = max(1, 3 - 5) = 1
        assert chunks == ["abc", "bcd", "cde", "def"]

    def test_invalid_chunk_size(self):
        from execution.briefly.chunker import split_into_chunks
        with pytest.raises(ValueError):
            split_into_chunks("abc", chunk_size=0)


class TestSplitAtSentences:
    """Sentence-aware splitting used for thorough contract review."""

    def test_fits_returns_single_piece(self):
        from execution.briefly.chunker import split_at_sentences
        assert split_at_sentences("Short text.", 100) == ["Short text."]

    def test_breaks_after_sentence_end_past_seventy_percent(self):
        from execution.briefly.chunker import split_at_sentences
        text = "a" * 80 + ". " + "b" * 50
        pieces = split_at_sentences(text, 100)
        assert pieces[0] == "a" * 80 + "."
        assert "".join(pieces) == text

    def test_hard_cut_when_break_too_early(self):
        from execution.briefly.chunker import split_at_sentences
        text = "a" * 20 + ". " + "b" * 200
        pieces = split_at_sentences(text, 100)
        assert len(pieces[0]) == 100
        assert "".join(pieces) == text

    def test_blank_line_counts_as_break(self):
        from execution.briefly.chunker import split_at_sentences
        text = "a" * 85 + "\n\n" + "b" * 60
        pieces = split_at_sentences(text, 100)
        assert pieces[0] == "a" * 85 + "\n"
        assert "".join(pieces) == text

    def test_period_at_window_edge_is_a_break(self):
        from execution.briefly.chunker import split_at_sentences
        # Second period is the last character of the 100-char window
        text = "a" * 80 + ". " + "b" * 17 + ". " + "c" * 50
        pieces = split_at_sentences(text, 100)
        assert pieces[0] == "a" * 80 + ". " + "b" * 17 + "."
        assert "".join(pieces) == text

    def test_pieces_never_exceed_limit(self, sample_contract):
        from execution.briefly.chunker import split_at_sentences
        text = sample_contract * 20
        pieces = split_at_sentences(text, 1500)
        assert all(len(p) <= 1500 for p in pieces)
        assert "".join(pieces) == text


class TestDocumentChunker:

    def test_chunk_metadata(self, sample_contract):
        from execution.briefly.chunker import DocumentChunker, ChunkConfig
        chunker = DocumentChunker(ChunkConfig(chunk_size=500, overlap=50))
        chunks = chunker.chunk(sample_contract, filename="msa.txt")

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        for c in chunks:
            assert c.metadata == {"char_count": len(c.text), "filename": "msa.txt"}

    def test_to_dict_shape(self):
        from execution.briefly.chunker import DocumentChunker
        chunk = DocumentChunker().chunk("hello", filename="a.txt")[0]
        assert chunk.to_dict() == {
            "chunk_index": 0,
            "chunk_text": "hello",
            "metadata": {"char_count": 5, "filename": "a.txt"},
        }

    def test_empty_document(self):
        from execution.briefly.chunker import DocumentChunker
        assert DocumentChunker().chunk("", filename="empty.txt") == []
