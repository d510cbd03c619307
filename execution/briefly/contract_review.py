"""
Contract Review

AI-driven clause risk analysis. A review is created in 'processing' state and
returned to the caller at once; the analysis itself runs in the background:

1. Prepare chunks (quick: first 30,000 chars; thorough: sentence-aware
   15,000-char pieces once the text exceeds 35,000 chars)
2. For each chunk, force the ``extract_clause_findings`` tool call and
   collect findings (falling back to inline JSON in the message text)
3. Write progress to ``analysis_results`` after every chunk
4. Insert all findings as 'pending' and write the final summary
"""

import re
import json
import time
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .chunker import split_at_sentences
from .gateway import extract_tool_arguments, message_content
from .metrics import get_metrics_collector
from .prompts import (
    CONTRACT_REVIEW_PROMPT,
    CLAUSE_FINDINGS_TOOL,
    CLAUSE_FINDINGS_TOOL_CHOICE,
    CLAUSE_FINDINGS_TOOL_NAME,
    FINDING_FIELDS,
)

logger = logging.getLogger(__name__)

QUICK_MODE = "quick"
THOROUGH_MODE = "thorough"
REVIEW_MODES = (QUICK_MODE, THOROUGH_MODE)

QUICK_MAX_CHARS = 30000
THOROUGH_CHUNK_SIZE = 15000
THOROUGH_CHUNKING_THRESHOLD = 35000

REVIEW_MODEL = "google/gemini-2.5-flash"

_INLINE_FINDINGS = re.compile(r'\{[\s\S]*"findings"[\s\S]*\}')


class ContractReviewError(Exception):
    """Review could not be started; carries the HTTP status to report."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class PreparedContract:
    """Contract text split into the pieces sent to the model."""
    chunks: list[str]
    was_truncated: bool
    total_chars: int

    @property
    def was_chunked(self) -> bool:
        return len(self.chunks) > 1

    @property
    def analyzed_chars(self) -> int:
        return sum(len(c) for c in self.chunks)


def prepare_chunks(content: str, mode: str = QUICK_MODE) -> PreparedContract:
    """
    Split contract text according to the review mode.

    Args:
        content: Full contract text
        mode: 'quick' or 'thorough'

    Returns:
        PreparedContract
    """
    content = content or ""
    if mode == QUICK_MODE:
        if len(content) > QUICK_MAX_CHARS:
            logger.info(f"Quick mode: truncating {len(content)} chars to {QUICK_MAX_CHARS}")
            return PreparedContract([content[:QUICK_MAX_CHARS]], True, len(content))
        return PreparedContract([content], False, len(content))

    if len(content) > THOROUGH_CHUNKING_THRESHOLD:
        chunks = split_at_sentences(content, THOROUGH_CHUNK_SIZE)
        logger.info(f"Thorough mode: chunked {len(content)} chars into {len(chunks)} pieces")
        return PreparedContract(chunks, False, len(content))
    return PreparedContract([content], False, len(content))


def extract_findings(response: dict) -> list[dict]:
    """
    Pull clause findings out of a chat-completion response.

    The forced tool call is preferred; otherwise the first JSON object
    containing "findings" in the message content is parsed.

    Raises:
        ValueError: If the tool arguments or inline JSON are malformed
    """
    arguments = extract_tool_arguments(response, CLAUSE_FINDINGS_TOOL_NAME)
    if arguments is not None:
        return list(arguments.get("findings") or [])

    match = _INLINE_FINDINGS.search(message_content(response))
    if match:
        return list(json.loads(match.group(0)).get("findings") or [])
    return []


def normalize_finding(finding: dict) -> dict:
    """Keep the known finding fields and lower-case the risk level."""
    normalized = {name: finding.get(name) for name in FINDING_FIELDS}
    if isinstance(normalized["risk_level"], str):
        normalized["risk_level"] = normalized["risk_level"].strip().lower()
    return normalized


def risk_summary(findings: list[dict]) -> dict:
    """Count findings by risk level."""
    return {
        "total_findings": len(findings),
        "high_risk": sum(1 for f in findings if f.get("risk_level") == "high"),
        "medium_risk": sum(1 for f in findings if f.get("risk_level") == "medium"),
        "low_risk": sum(1 for f in findings if f.get("risk_level") == "low"),
    }


def build_review_messages(chunk: str, index: int, total: int) -> list[dict]:
    part = f"(part {index + 1}/{total})" if total > 1 else ""
    return [
        {"role": "system", "content": CONTRACT_REVIEW_PROMPT},
        {"role": "user", "content": f"Analyze this contract {part}:\n\n{chunk}"},
    ]


class ContractReviewer:
    """
    Runs contract reviews against the AI gateway.

    Usage:
        reviewer = ContractReviewer(store, gateway)
        review = reviewer.start_review(document_id, user_id, organization_id, mode="quick")
        background_tasks.add_task(reviewer.run_review, review["id"], document_id, "quick")
    """

    def __init__(self, store, gateway, model: str = REVIEW_MODEL):
        self.store = store
        self.gateway = gateway
        self.model = model

    def start_review(
        self,
        document_id: str,
        user_id: str,
        organization_id: Optional[str] = None,
        mode: str = QUICK_MODE,
    ) -> dict:
        """
        Validate the request and create the review row.

        Raises:
            ContractReviewError: 400 bad mode, 404 unknown document
        """
        if mode not in REVIEW_MODES:
            raise ContractReviewError(400, f"Invalid mode '{mode}'. Use 'quick' or 'thorough'.")

        document = self.store.get_document(document_id)
        if not document:
            raise ContractReviewError(404, "Document not found")
        if organization_id and document.get("organization_id") not in (None, organization_id):
            raise ContractReviewError(404, "Document not found")

        review = self.store.create_contract_review(
            document_id, user_id, document.get("organization_id") or organization_id
        )
        logger.info(f"Created review {review['id']} for document {document_id} ({mode} mode)")
        return review

    def run_review(self, review_id: str, document_id: str, mode: str = QUICK_MODE) -> None:
        """
        Analyze the contract and record results on the review.

        Never raises: every failure ends up in the review's status.
        """
        start_time = time.time()
        try:
            document = self.store.get_document(document_id)
            if not document:
                raise ContractReviewError(404, "Document not found")

            prepared = prepare_chunks(document.get("content_text") or "", mode)
            logger.info(f"Review {review_id}: {len(prepared.chunks)} chunk(s) using {self.model} ({mode} mode)")

            findings = self._analyze_chunks(review_id, prepared, mode)

            try:
                self.store.insert_clause_findings(review_id, findings)
            except Exception as e:
                logger.error(f"Error inserting findings for review {review_id}: {e}")
                self.store.update_contract_review(review_id, status="failed")
                get_metrics_collector().record_review(0, success=False)
                return

            duration = round(time.time() - start_time, 2)
            results = risk_summary(findings)
            results.update({
                "was_truncated": prepared.was_truncated,
                "was_chunked": prepared.was_chunked,
                "total_chunks": len(prepared.chunks),
                "analyzed_chars": prepared.analyzed_chars,
                "total_chars": prepared.total_chars,
                "processing_time_seconds": duration,
                "mode": mode,
            })
            self.store.update_contract_review(review_id, status="completed", analysis_results=results)
            get_metrics_collector().record_review(len(findings))
            logger.info(f"Contract analysis {review_id} completed in {duration}s with {len(findings)} findings")

        except Exception as e:
            logger.error(f"Background analysis error for review {review_id}: {e}")
            get_metrics_collector().record_review(0, success=False)
            try:
                self.store.update_contract_review(
                    review_id,
                    status="failed",
                    analysis_results={
                        "error_message": str(e) or type(e).__name__,
                        "failed_at": datetime.now(timezone.utc).isoformat(),
                        "mode": mode,
                    },
                )
            except Exception as update_error:
                logger.error(f"Could not mark review {review_id} as failed: {update_error}")

    def _analyze_chunks(self, review_id: str, prepared: PreparedContract, mode: str) -> list[dict]:
        all_findings = []
        total = len(prepared.chunks)

        for i, chunk in enumerate(prepared.chunks):
            chunk_start = time.time()
            try:
                response = self.gateway.complete_chat(
                    build_review_messages(chunk, i, total),
                    model=self.model,
                    tools=[CLAUSE_FINDINGS_TOOL],
                    tool_choice=CLAUSE_FINDINGS_TOOL_CHOICE,
                )
                chunk_findings = [normalize_finding(f) for f in extract_findings(response)]
            except Exception as e:
                logger.error(f"Chunk {i + 1} of review {review_id} failed: {e}")
                if mode == QUICK_MODE and i == 0:
                    raise
                chunk_findings = []

            all_findings.extend(chunk_findings)
            logger.info(
                f"Chunk {i + 1}/{total} done in {time.time() - chunk_start:.2f}s: "
                f"{len(chunk_findings)} findings"
            )

            progress = risk_summary(all_findings)
            progress.update({
                "progress_percent": round((i + 1) / total * 100),
                "processed_chunks": i + 1,
                "total_chunks": total,
            })
            self.store.update_contract_review(review_id, analysis_results=progress)

        return all_findings
