"""
Document context assembly for legal chat.

Selected documents are sent to the model in full, each wrapped in a
numbered header/footer, up to a fixed character budget.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 400000

TRUNCATION_NOTE = (
    "\n\n[Note: Documents truncated to fit context window. "
    "Consider asking more specific questions about particular sections.]"
)


@dataclass
class DocumentContext:
    """Concatenated document text ready to append to a system prompt."""
    text: str
    truncated: bool
    document_count: int

    def __bool__(self) -> bool:
        return bool(self.text)


def frame_document(index: int, filename: str, content: str) -> str:
    """Wrap one document's text in its numbered header and footer (1-based index)."""
    return (
        f"\n\n=== DOCUMENT {index}: {filename} ===\n"
        f"{content}\n"
        f"=== END DOCUMENT {index} ==="
    )


def build_document_context(documents: list[dict], max_chars: int = MAX_CONTEXT_CHARS) -> DocumentContext:
    """
    Build the document context for a chat request.

    Args:
        documents: Dicts with ``filename`` and ``content_text``
        max_chars: Character budget before the truncation note

    Returns:
        DocumentContext; empty text when no documents are given
    """
    if not documents:
        return DocumentContext(text="", truncated=False, document_count=0)

    text = "\n".join(
        frame_document(i + 1, doc.get("filename", ""), doc.get("content_text") or "")
        for i, doc in enumerate(documents)
    )

    truncated = len(text) > max_chars
    if truncated:
        logger.info(f"Documents exceed {max_chars} chars, truncating to fit context window")
        text = text[:max_chars] + TRUNCATION_NOTE

    return DocumentContext(text=text, truncated=truncated, document_count=len(documents))
