"""
Shared fixtures and test utilities for Briefly CoPilot tests.

Provides an in-memory store, mock embedding and gateway services and sample
data so that all tests run without API keys, databases, or network access.
"""

import os
import sys
import uuid
import hashlib
from pathlib import Path
from datetime import datetime, timezone

import pytest
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-secret-for-briefly-tests-0123456789")

ORG_ID = "00000000-0000-0000-0000-0000000000a1"
OTHER_ORG_ID = "00000000-0000-0000-0000-0000000000b2"
USER_ID = "00000000-0000-0000-0000-000000000001"

# ---------------------------------------------------------------------------
# Sample contract text
# ---------------------------------------------------------------------------
SAMPLE_CONTRACT = """MASTER SERVICES AGREEMENT

This Master Services Agreement ("Agreement") is entered into as of March 1, 2024
by and between Acme Analytics Inc., a Delaware corporation ("Provider"), and
Northwind Traders LLC, a New York limited liability company ("Customer").

1. SERVICES. Provider shall perform the services described in each Statement of Work.
Each Statement of Work is incorporated into this Agreement by reference.

2. FEES. Customer shall pay all invoices within thirty (30) days. Late amounts accrue
interest at 1.5% per month. Provider may suspend the Services for non-payment.

3. TERM AND TERMINATION. This Agreement renews automatically for successive one-year
terms unless either party gives ninety (90) days notice. Provider may terminate for
convenience on ten (10) days notice.

4. LIMITATION OF LIABILITY. Provider's total liability shall not exceed the fees paid
in the one (1) month preceding the claim. Customer's liability is unlimited.

5. INDEMNIFICATION. Customer shall indemnify Provider against all claims arising from
the Services, including claims caused by Provider's own negligence.

6. GOVERNING LAW. This Agreement is governed by the laws of the State of Delaware.
"""


def fake_vector(text: str, dims: int = 8) -> list[float]:
    """Deterministic pseudo-embedding derived from the text hash."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 for b in digest[:dims]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Mock services
# ---------------------------------------------------------------------------

class MockEmbeddingService:
    """Deterministic embedding service that records every call."""

    def __init__(self, dims: int = 8, batch_size: int = 3, fail_on_call: int = None):
        self.dims = dims
        self.batch_size = batch_size
        self.fail_on_call = fail_on_call
        self.calls = []

    @property
    def dimensions(self) -> int:
        return self.dims

    def embed_text(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            from execution.briefly.embeddings import EmbeddingError
            raise EmbeddingError("embedding provider unavailable")
        return fake_vector(text, self.dims)

    def embed_query(self, query: str) -> list[float]:
        return self.embed_text(query)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_text(t) for t in texts]

    def iter_batches(self, texts: list[str]):
        for start in range(0, len(texts), self.batch_size):
            yield start, self.embed_documents(texts[start:start + self.batch_size])


class MockGateway:
    """
    Scripted AI gateway.

    ``completions`` is consumed in order by complete_chat (an Exception
    instance is raised instead of returned); ``stream_chunks`` is replayed
    by stream_chat unless ``stream_error`` is set.
    """

    def __init__(self, completions=None, stream_chunks=None, stream_error=None):
        self.completions = list(completions or [])
        self.stream_chunks = stream_chunks if stream_chunks is not None else [
            {"choices": [{"delta": {"content": "Hello"}}]},
            {"choices": [{"delta": {"content": " world"}}]},
        ]
        self.stream_error = stream_error
        self.complete_calls = []
        self.stream_calls = []

    def complete_chat(self, messages, model=None, tools=None, tool_choice=None):
        self.complete_calls.append({"messages": messages, "model": model, "tools": tools, "tool_choice": tool_choice})
        if not self.completions:
            return tool_response([])
        result = self.completions.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def stream_chat(self, messages, model=None, tools=None, tool_choice=None):
        self.stream_calls.append({"messages": messages, "model": model, "tools": tools, "tool_choice": tool_choice})
        if self.stream_error is not None:
            raise self.stream_error
        return iter(list(self.stream_chunks))


def tool_response(findings: list[dict]) -> dict:
    """A chat-completion body carrying an extract_clause_findings tool call."""
    import json
    return {
        "choices": [{
            "message": {
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": "call_1",
                    "type": "function",
                    "function": {
                        "name": "extract_clause_findings",
                        "arguments": json.dumps({"findings": findings}),
                    },
                }],
            },
        }],
    }


def make_finding(title: str = "Limitation of Liability", risk: str = "high") -> dict:
    return {
        "clause_title": title,
        "clause_text": f"{title} clause text",
        "risk_level": risk,
        "issue_description": f"{title} is one-sided",
        "recommendation": "Negotiate mutual terms",
        "original_text": f"{title} original",
        "suggested_text": f"{title} suggested",
    }


class MockStore:
    """In-memory stand-in for VectorStore covering the methods the app uses."""

    def __init__(self):
        self.documents = {}
        self.chunks = {}
        self.reviews = {}
        self.findings = {}
        self.conversations = {}
        self.messages = []
        self.drafts = {}
        self.draft_versions = []
        self.usage_logs = []
        self.memberships = {}
        self.benchmark_matches = []
        self.benchmark_clauses = []
        self.fail_insert_benchmark = False
        self.rate_limit_allowed = True
        self.org_rate_limit_allowed = True
        self.rate_limit_calls = []
        self.fail_insert_chunks = False
        self.fail_insert_findings = False
        self.fail_log_usage = False
        self.review_updates = []
        self.membership_lookup_users = []

    # -- plumbing -----------------------------------------------------------
    def ping(self):
        return True

    def close(self):
        pass

    def get_user_membership(self, user_id):
        from execution.briefly.vector_store import current_request_user
        self.membership_lookup_users.append(current_request_user())
        return self.memberships.get(user_id)

    # -- documents ----------------------------------------------------------
    def add_document(self, content_text=SAMPLE_CONTRACT, filename="msa.txt", organization_id=ORG_ID,
                     user_id=USER_ID, file_type="txt", vectorization_status="pending"):
        doc_id = str(uuid.uuid4())
        self.documents[doc_id] = {
            "id": doc_id,
            "organization_id": organization_id,
            "user_id": user_id,
            "filename": filename,
            "file_type": file_type,
            "file_size": len(content_text or ""),
            "file_path": None,
            "metadata": {},
            "is_vectorized": False,
            "vectorization_status": vectorization_status,
            "chunk_count": None,
            "content_text": content_text,
            "created_at": _now(),
            "updated_at": _now(),
        }
        return doc_id

    def insert_document(self, organization_id, user_id, filename, content_text, file_type=None,
                        file_size=None, file_path=None, metadata=None, vectorization_status="pending"):
        doc_id = self.add_document(content_text, filename, organization_id, user_id, file_type, vectorization_status)
        self.documents[doc_id]["metadata"] = metadata or {}
        self.documents[doc_id]["file_size"] = file_size
        return {k: v for k, v in self.documents[doc_id].items() if k != "content_text"}

    def insert_documents(self, rows):
        for row in rows:
            doc_id = self.add_document(
                row["content_text"], row["filename"], row["organization_id"], row["user_id"],
                row.get("file_type"), row.get("vectorization_status", "pending"),
            )
            self.documents[doc_id]["metadata"] = row.get("metadata") or {}
        return len(rows)

    def get_document(self, document_id):
        doc = self.documents.get(document_id)
        return dict(doc) if doc else None

    def get_documents(self, document_ids, organization_id=None):
        return [
            dict(self.documents[d]) for d in document_ids
            if d in self.documents and organization_id in (None, self.documents[d]["organization_id"])
        ]

    def find_document_by_filename(self, organization_id, filename):
        for doc in self.documents.values():
            if doc["organization_id"] == organization_id and doc["filename"] == filename:
                return {"id": doc["id"], "filename": filename}
        return None

    def list_documents(self, organization_id, file_type=None):
        return [
            {k: v for k, v in d.items() if k != "content_text"}
            for d in self.documents.values()
            if d["organization_id"] == organization_id and file_type in (None, d["file_type"])
        ]

    def delete_document(self, document_id, organization_id=None):
        doc = self.documents.get(document_id)
        if not doc or organization_id not in (None, doc["organization_id"]):
            return False
        del self.documents[document_id]
        self.chunks.pop(document_id, None)
        return True

    def set_vectorization_status(self, document_id, status):
        self.documents[document_id]["vectorization_status"] = status

    def mark_vectorized(self, document_id, chunk_count):
        doc = self.documents[document_id]
        doc.update(is_vectorized=True, vectorization_status="completed", chunk_count=chunk_count)

    def count_vectorization_status(self, organization_id, file_type="cuad_contract"):
        counts = {}
        for d in self.documents.values():
            if d["organization_id"] == organization_id and d["file_type"] == file_type:
                counts[d["vectorization_status"]] = counts.get(d["vectorization_status"], 0) + 1
        return [{"status": s, "count": c} for s, c in counts.items()]

    # -- chunks -------------------------------------------------------------
    def delete_chunks(self, document_id):
        return len(self.chunks.pop(document_id, []))

    def insert_chunks(self, document_id, chunks, embeddings):
        if self.fail_insert_chunks:
            raise RuntimeError("insert failed")
        if len(chunks) != len(embeddings):
            raise ValueError("Mismatch")
        stored = self.chunks.setdefault(document_id, [])
        for chunk, vector in zip(chunks, embeddings):
            stored.append({**chunk, "embedding": vector})

    def match_document_chunks(self, embedding, match_threshold=0.5, match_count=10, document_ids=None):
        self.last_match_query = {"threshold": match_threshold, "count": match_count}
        rows = []
        for doc_id, chunks in self.chunks.items():
            if document_ids is not None and doc_id not in document_ids:
                continue
            for chunk in chunks:
                rows.append({
                    "id": f"{doc_id}-{chunk['chunk_index']}",
                    "document_id": doc_id,
                    "chunk_index": chunk["chunk_index"],
                    "chunk_text": chunk["chunk_text"],
                    "similarity": 0.9,
                })
        return rows[:match_count]

    def insert_benchmark_clause(self, clause_type, clause_text, embedding, source_document=None,
                                is_favorable=None, industry=None, metadata=None):
        if self.fail_insert_benchmark:
            raise RuntimeError("insert failed")
        clause_id = str(uuid.uuid4())
        self.benchmark_clauses.append({
            "id": clause_id,
            "clause_type": clause_type,
            "clause_text": clause_text,
            "embedding": embedding,
            "source_document": source_document,
            "is_favorable": is_favorable,
            "industry": industry,
            "metadata": metadata or {},
        })
        return clause_id

    def has_benchmark_clauses(self, source_document):
        return any(c["source_document"] == source_document for c in self.benchmark_clauses)

    def match_benchmark_clauses(self, embedding, match_threshold=0.7, match_count=5, clause_type=None):
        self.last_benchmark_query = {"threshold": match_threshold, "count": match_count, "clause_type": clause_type}
        return list(self.benchmark_matches)

    # -- reviews ------------------------------------------------------------
    def create_contract_review(self, document_id, user_id, organization_id):
        review_id = str(uuid.uuid4())
        self.reviews[review_id] = {
            "id": review_id,
            "document_id": document_id,
            "user_id": user_id,
            "organization_id": organization_id,
            "status": "processing",
            "analysis_results": {},
            "created_at": _now(),
            "updated_at": _now(),
        }
        return dict(self.reviews[review_id])

    def update_contract_review(self, review_id, status=None, analysis_results=None):
        review = self.reviews[review_id]
        if status is not None:
            review["status"] = status
        if analysis_results is not None:
            review["analysis_results"] = analysis_results
        self.review_updates.append({"status": status, "analysis_results": analysis_results})

    def get_contract_review(self, review_id):
        review = self.reviews.get(review_id)
        return dict(review) if review else None

    def list_contract_reviews(self, organization_id, document_id=None):
        return [
            dict(r) for r in self.reviews.values()
            if r["organization_id"] == organization_id and document_id in (None, r["document_id"])
        ]

    def insert_clause_findings(self, review_id, findings):
        if self.fail_insert_findings:
            raise RuntimeError("findings insert failed")
        for f in findings:
            finding_id = str(uuid.uuid4())
            self.findings[finding_id] = {
                **f, "id": finding_id, "review_id": review_id, "benchmark_data": {}, "status": "pending",
            }
        return len(findings)

    def list_clause_findings(self, review_id):
        return [dict(f) for f in self.findings.values() if f["review_id"] == review_id]

    def get_clause_finding(self, finding_id):
        finding = self.findings.get(finding_id)
        if not finding:
            return None
        review = self.reviews.get(finding["review_id"]) or {}
        return {**finding, "organization_id": review.get("organization_id")}

    def update_finding_benchmark(self, finding_id, benchmark_data):
        self.findings[finding_id]["benchmark_data"] = benchmark_data
        return True

    def update_finding_status(self, finding_id, status):
        self.findings[finding_id]["status"] = status
        return True

    # -- conversations ------------------------------------------------------
    def create_conversation(self, user_id, organization_id=None, title="New Chat", conversation_type="chat"):
        conv_id = str(uuid.uuid4())
        self.conversations[conv_id] = {
            "id": conv_id, "user_id": user_id, "organization_id": organization_id, "title": title,
            "conversation_type": conversation_type, "created_at": _now(), "updated_at": _now(),
        }
        return dict(self.conversations[conv_id])

    def get_conversation(self, conversation_id, user_id):
        conv = self.conversations.get(conversation_id)
        return dict(conv) if conv and conv["user_id"] == user_id else None

    def list_conversations(self, user_id, conversation_type=None):
        return [
            dict(c) for c in self.conversations.values()
            if c["user_id"] == user_id and conversation_type in (None, c["conversation_type"])
        ]

    def delete_conversation(self, conversation_id, user_id):
        if not self.get_conversation(conversation_id, user_id):
            return False
        del self.conversations[conversation_id]
        self.messages = [m for m in self.messages if m["conversation_id"] != conversation_id]
        return True

    def add_message(self, conversation_id, role, content):
        message = {
            "id": str(uuid.uuid4()), "conversation_id": conversation_id,
            "role": role, "content": content, "created_at": _now(),
        }
        self.messages.append(message)
        return dict(message)

    def get_messages(self, conversation_id, user_id):
        if not self.get_conversation(conversation_id, user_id):
            return []
        return [dict(m) for m in self.messages if m["conversation_id"] == conversation_id]

    # -- drafts -------------------------------------------------------------
    def create_draft(self, user_id, organization_id, title, content, document_type=None,
                     conversation_id=None, metadata=None):
        draft_id = str(uuid.uuid4())
        self.drafts[draft_id] = {
            "id": draft_id, "user_id": user_id, "organization_id": organization_id,
            "conversation_id": conversation_id, "title": title, "document_type": document_type,
            "content": content, "current_version": 1, "status": "draft", "metadata": metadata or {},
            "created_at": _now(), "updated_at": _now(),
        }
        self.draft_versions.append({
            "id": str(uuid.uuid4()), "draft_id": draft_id, "version_number": 1,
            "content": content, "changes_summary": "Initial version", "created_at": _now(),
        })
        return dict(self.drafts[draft_id])

    def update_draft(self, draft_id, user_id, title=None, content=None, status=None, changes_summary=None):
        draft = self.drafts.get(draft_id)
        if not draft or draft["user_id"] != user_id:
            return None
        if title is not None:
            draft["title"] = title
        if status is not None:
            draft["status"] = status
        if content is not None:
            draft["content"] = content
            draft["current_version"] += 1
            self.draft_versions.append({
                "id": str(uuid.uuid4()), "draft_id": draft_id, "version_number": draft["current_version"],
                "content": content, "changes_summary": changes_summary, "created_at": _now(),
            })
        return dict(draft)

    def get_draft(self, draft_id, user_id):
        draft = self.drafts.get(draft_id)
        return dict(draft) if draft and draft["user_id"] == user_id else None

    def list_drafts(self, user_id):
        return [dict(d) for d in self.drafts.values() if d["user_id"] == user_id]

    def list_draft_versions(self, draft_id, user_id):
        if not self.get_draft(draft_id, user_id):
            return []
        versions = [dict(v) for v in self.draft_versions if v["draft_id"] == draft_id]
        return sorted(versions, key=lambda v: v["version_number"], reverse=True)

    # -- limits & usage -----------------------------------------------------
    def check_rate_limit(self, user_id, action_type, limit, window_minutes):
        self.rate_limit_calls.append(("user", user_id, action_type, limit, window_minutes))
        if isinstance(self.rate_limit_allowed, Exception):
            raise self.rate_limit_allowed
        return self.rate_limit_allowed

    def check_org_rate_limit(self, organization_id, action_type, limit, window_minutes):
        self.rate_limit_calls.append(("organization", organization_id, action_type, limit, window_minutes))
        return self.org_rate_limit_allowed

    def log_usage(self, user_id, organization_id, action_type, resource_id=None, metadata=None):
        if self.fail_log_usage:
            raise RuntimeError("usage log unavailable")
        self.usage_logs.append({
            "user_id": user_id, "organization_id": organization_id,
            "action_type": action_type, "resource_id": resource_id, "metadata": metadata or {},
        })


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_contract():
    return SAMPLE_CONTRACT


@pytest.fixture
def mock_store():
    return MockStore()


@pytest.fixture
def mock_embeddings():
    return MockEmbeddingService()


@pytest.fixture
def mock_gateway():
    return MockGateway()


@pytest.fixture(autouse=True)
def reset_metrics():
    """Isolate the metrics singleton between tests."""
    from execution.briefly.metrics import get_metrics_collector
    get_metrics_collector().reset()
    yield


@pytest.fixture(autouse=True)
def reset_request_user():
    """Clear the Row-Level Security user bound by a previous test."""
    from execution.briefly.vector_store import set_request_user
    set_request_user(None)
    yield
    set_request_user(None)
