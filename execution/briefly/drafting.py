"""
Document Drafting

Request validation and message construction for AI drafting and
redlining. Redlines mark edits inline as [DELETED: ...] / [INSERTED: ...].
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .prompts import DRAFT_PROMPT, REDLINE_PROMPT

logger = logging.getLogger(__name__)

MAX_PROMPT_CHARS = 10000
DRAFT_MODE = "draft"
REDLINE_MODE = "redline"


class DraftValidationError(ValueError):
    """Invalid drafting request (HTTP 400)."""


@dataclass
class DraftRequest:
    prompt: str
    mode: str = DRAFT_MODE
    original_content: Optional[str] = None
    document_type: Optional[str] = None

    @property
    def is_redline(self) -> bool:
        return self.mode == REDLINE_MODE


def validate_draft_request(
    prompt,
    mode: Optional[str] = None,
    original_content: Optional[str] = None,
    document_type: Optional[str] = None,
) -> DraftRequest:
    """
    Check a drafting request.

    Raises:
        DraftValidationError: Empty/non-string prompt, prompt over 10,000
            characters, or redline without original content
    """
    if not prompt or not isinstance(prompt, str):
        raise DraftValidationError("Invalid prompt")
    if len(prompt) > MAX_PROMPT_CHARS:
        raise DraftValidationError("Prompt too long (max 10,000 characters)")
    if mode == REDLINE_MODE and not original_content:
        raise DraftValidationError("Original content required for redlining")

    return DraftRequest(
        prompt=prompt,
        mode=mode or DRAFT_MODE,
        original_content=original_content,
        document_type=document_type,
    )


def build_draft_messages(request: DraftRequest) -> list[dict]:
    """System and user messages for a draft or redline request."""
    if request.is_redline:
        user_content = (
            f"Original document:\n\n{request.original_content}\n\n"
            f"Redline instructions: {request.prompt}\n\n"
            "Make the changes and mark them with [DELETED: ] and [INSERTED: ] tags."
        )
        system = REDLINE_PROMPT
    else:
        user_content = f"Draft a {request.document_type or 'legal document'}: {request.prompt}"
        system = DRAFT_PROMPT

    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user_content},
    ]


def draft_usage_metadata(request: DraftRequest, now: Optional[datetime] = None) -> dict:
    """Metadata recorded in usage_logs for a drafting call."""
    return {
        "mode": request.mode,
        "document_type": request.document_type,
        "prompt_length": len(request.prompt),
        "timestamp": (now or datetime.now(timezone.utc)).isoformat(),
    }
