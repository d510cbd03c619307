"""
FastAPI Backend for Briefly CoPilot

REST and SSE endpoints for legal chat, drafting, contract review, data
analysis, the document repository and the CUAD import.

Run with: uvicorn execution.briefly.api:app --host 0.0.0.0 --port 8000
"""

import os
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, UploadFile, File, Depends, Header, Request, BackgroundTasks, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from . import __version__
from .api_models import (
    ChatRequest,
    ConversationCreate, ConversationInfo, MessageCreate, MessageInfo,
    DraftGenerateRequest, DraftCreate, DraftUpdate, DraftInfo, DraftVersionInfo,
    ReviewRequest, ReviewStarted, ReviewInfo, FindingInfo, FindingStatusUpdate,
    BenchmarkRequest, BenchmarkResponse,
    DataAnalysisRequest,
    ParseResponse, DocumentInfo, VectorizeResponse, VectorizationStatusResponse,
    SearchRequest, SearchResult,
    CuadImportRequest,
    PromptInfo, PromptRenderRequest, PromptRenderResponse,
    HealthResponse,
)
from .auth import extract_bearer_token, verify_access_token
from .context import build_document_context
from .contract_review import ContractReviewError
from .data_analysis import DataContext, build_analysis_messages, analysis_tools
from .document_parser import DocumentParseError, parse_upload
from .drafting import DraftValidationError, validate_draft_request, build_draft_messages, draft_usage_metadata
from .gateway import GatewayError
from .metrics import get_metrics_collector
from .org_settings import OrganizationSettings
from .prompt_library import PROMPT_LIBRARY, get_prompt, replace_placeholders
from .prompts import legal_chat_system_prompt
from .rate_limits import ActionRateLimiter, RateLimitExceededError, get_request_rate_limiter
from .sse import SSE_HEADERS, relay_chat_stream
from .vectorizer import VectorizationError, vectorization_status_counts
from .vector_store import set_request_user

# Load environment variables
load_dotenv()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Briefly CoPilot API",
    description="Legal assistant backend: chat, drafting, contract review and document repository",
    version=__version__,
)

# Configure CORS: use CORS_ORIGINS env var (comma-separated) or default to localhost
_cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Rate Limiting
# =============================================================================

async def check_rate_limit(request: Request):
    """FastAPI dependency enforcing the in-memory per-client request limit."""
    key = request.headers.get("authorization") or (request.client.host if request.client else "anonymous")
    if not get_request_rate_limiter().is_allowed(key):
        raise HTTPException(status_code=429, detail="Rate limit exceeded. Try again later.")


# =============================================================================
# Service Container - caches services per embedding model
# =============================================================================

class ServiceContainer:
    """Singleton that lazily builds and caches the store, gateway and pipelines."""

    def __init__(self, store=None, gateway=None, embeddings=None):
        self._store = store
        self._gateway = gateway
        self._embeddings = embeddings  # Fixed service overriding per-model lookup
        self._services = {}  # keyed by embedding model

    def get_store(self):
        if self._store is None:
            from .vector_store import VectorStore
            self._store = VectorStore()
            self._store.connect()
            try:
                self._store.initialize_schema()
            except Exception as e:
                logger.warning(f"Schema init partial: {e}")
        return self._store

    def get_gateway(self):
        if self._gateway is None:
            from .gateway import AIGateway
            self._gateway = AIGateway()
        return self._gateway

    def get_embeddings(self, settings: Optional[OrganizationSettings] = None):
        if self._embeddings is not None:
            return self._embeddings
        settings = settings or OrganizationSettings()
        key = settings.embedding_model
        if key not in self._services:
            from .embeddings import get_embedding_service
            self._services[key] = get_embedding_service(settings)
        return self._services[key]

    def get_rate_limiter(self) -> ActionRateLimiter:
        return ActionRateLimiter(self.get_store())

    def get_pipeline(self, settings: Optional[OrganizationSettings] = None):
        from .vectorizer import VectorizationPipeline
        return VectorizationPipeline(
            self.get_store(), self.get_embeddings(settings), rate_limiter=self.get_rate_limiter()
        )

    def get_retriever(self, settings: Optional[OrganizationSettings] = None):
        from .retriever import ChunkRetriever
        return ChunkRetriever(self.get_store(), self.get_embeddings(settings))

    def get_reviewer(self):
        from .contract_review import ContractReviewer
        return ContractReviewer(self.get_store(), self.get_gateway())

    def get_benchmarker(self, settings: Optional[OrganizationSettings] = None):
        from .benchmark import ClauseBenchmarker
        return ClauseBenchmarker(self.get_store(), self.get_embeddings(settings))

    def get_importer(self):
        from .cuad_import import CuadImporter
        return CuadImporter(self.get_store())


_container = ServiceContainer()


# =============================================================================
# Authentication dependencies
# =============================================================================

async def get_current_user(authorization: Optional[str] = Header(None)) -> dict:
    """Validate the bearer token and return the user claims."""
    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = verify_access_token(token)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid authentication")
    # Row-Level Security policies read this user on every connection checkout
    set_request_user(user["user_id"])
    return user


def get_membership(user: dict = Depends(get_current_user)) -> dict:
    """Resolve the user's organization; users without one get 403."""
    store = _container.get_store()
    membership = store.get_user_membership(user["user_id"])
    if not membership or not membership.get("organization_id"):
        raise HTTPException(status_code=403, detail="User must be assigned to an organization")
    return {
        **user,
        "organization_id": str(membership["organization_id"]),
        "role": membership.get("role"),
        "organization_name": membership.get("organization_name"),
        "settings": OrganizationSettings.from_settings(membership.get("settings")),
    }


# =============================================================================
# Error mapping
# =============================================================================

def _http_error(error: Exception) -> HTTPException:
    """Translate a domain exception into an HTTPException."""
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, RateLimitExceededError):
        return HTTPException(status_code=429, detail=str(error))
    if isinstance(error, GatewayError):
        if error.status_code in (402, 429):
            return HTTPException(status_code=error.status_code, detail=str(error))
        return HTTPException(status_code=500, detail="AI service error")
    if isinstance(error, (VectorizationError, ContractReviewError)):
        return HTTPException(status_code=error.status_code, detail=error.message)
    if isinstance(error, (DocumentParseError, DraftValidationError)):
        return HTTPException(status_code=400, detail=str(error))
    logger.error(f"Unhandled error: {type(error).__name__}: {error}")
    return HTTPException(status_code=500, detail=str(error) or "Internal server error")


def _draft_text(content) -> str:
    if isinstance(content, dict):
        return content.get("text") or ""
    return content or ""


def _draft_info(draft: dict) -> DraftInfo:
    return DraftInfo(
        id=str(draft["id"]),
        title=draft["title"],
        document_type=draft.get("document_type"),
        content=_draft_text(draft.get("content")),
        current_version=draft.get("current_version") or 1,
        status=draft.get("status"),
        conversation_id=draft.get("conversation_id"),
        created_at=draft.get("created_at"),
        updated_at=draft.get("updated_at"),
    )


def _document_info(d: dict) -> DocumentInfo:
    return DocumentInfo(
        id=str(d["id"]),
        filename=d["filename"],
        file_type=d.get("file_type"),
        file_size=d.get("file_size"),
        is_vectorized=bool(d.get("is_vectorized")),
        vectorization_status=d.get("vectorization_status"),
        chunk_count=d.get("chunk_count"),
        created_at=d.get("created_at"),
    )


def _require_org_document(document_id: str, organization_id: str) -> dict:
    document = _container.get_store().get_document(document_id)
    if not document or str(document.get("organization_id")) != organization_id:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


# =============================================================================
# Health & metrics
# =============================================================================

@app.get("/api/v1/health", response_model=HealthResponse)
def health_check():
    """Health check endpoint."""
    try:
        db_status = "connected" if _container.get_store().ping() else "disconnected"
    except Exception as e:
        logger.warning(f"Health check: database disconnected: {e}")
        db_status = "disconnected"

    return HealthResponse(status="ok", version=__version__, database=db_status)


@app.get("/api/v1/metrics")
async def get_metrics(user: dict = Depends(get_current_user)):
    """In-process request, vectorization and review metrics."""
    return get_metrics_collector().get_metrics_dict()


# =============================================================================
# Legal chat
# =============================================================================

@app.post("/api/v1/chat", dependencies=[Depends(check_rate_limit)])
def legal_chat(request: ChatRequest, member: dict = Depends(get_membership)):
    """Stream a legal-analysis answer over the selected documents as SSE."""
    store = _container.get_store()
    settings = member["settings"]

    with get_metrics_collector().track_request("chat", member["organization_id"]):
        try:
            _container.get_rate_limiter().enforce("query", member["user_id"])
        except RateLimitExceededError as e:
            raise _http_error(e)

        document_text = ""
        if request.selected_document_ids:
            try:
                documents = store.get_documents(request.selected_document_ids, member["organization_id"])
                logger.info(f"Retrieved {len(documents)} document(s) for chat")
                context = build_document_context(documents, max_chars=settings.max_context_chars)
                document_text = context.text
            except Exception as e:
                logger.error(f"Error fetching documents: {e}")

        system_prompt = legal_chat_system_prompt(
            request.organization_name or member.get("organization_name"), document_text
        )
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(m.model_dump() for m in request.messages)

        try:
            stream = _container.get_gateway().stream_chat(messages, model=settings.chat_model)
        except GatewayError as e:
            raise _http_error(e)

    return StreamingResponse(relay_chat_stream(stream), media_type="text/event-stream", headers=SSE_HEADERS)


@app.get("/api/v1/prompts", response_model=list[PromptInfo])
async def list_prompts(user: dict = Depends(get_current_user)):
    return [PromptInfo(**p.to_dict()) for p in PROMPT_LIBRARY]


@app.post("/api/v1/prompts/render", response_model=PromptRenderResponse)
def render_prompt(body: PromptRenderRequest, member: dict = Depends(get_membership)):
    """Fill a library prompt's placeholders from the selected documents."""
    prompt = get_prompt(body.prompt_id)
    if not prompt:
        raise HTTPException(status_code=404, detail="Prompt not found")

    documents = []
    if body.selected_document_ids:
        documents = _container.get_store().get_documents(body.selected_document_ids, member["organization_id"])
    return PromptRenderResponse(prompt_id=prompt.id, text=replace_placeholders(prompt.template, documents))


@app.post("/api/v1/conversations", response_model=ConversationInfo)
def create_conversation(body: ConversationCreate, member: dict = Depends(get_membership)):
    conversation = _container.get_store().create_conversation(
        member["user_id"], member["organization_id"], body.title, body.conversation_type
    )
    return ConversationInfo(**{k: conversation.get(k) for k in ConversationInfo.model_fields})


@app.get("/api/v1/conversations", response_model=list[ConversationInfo])
def list_conversations(
    conversation_type: Optional[str] = None,
    user: dict = Depends(get_current_user),
):
    rows = _container.get_store().list_conversations(user["user_id"], conversation_type)
    return [ConversationInfo(**{k: r.get(k) for k in ConversationInfo.model_fields}) for r in rows]


@app.delete("/api/v1/conversations/{conversation_id}")
def delete_conversation(conversation_id: str, user: dict = Depends(get_current_user)):
    if not _container.get_store().delete_conversation(conversation_id, user["user_id"]):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"status": "deleted", "conversation_id": conversation_id}


@app.get("/api/v1/conversations/{conversation_id}/messages", response_model=list[MessageInfo])
def get_messages(conversation_id: str, user: dict = Depends(get_current_user)):
    store = _container.get_store()
    if not store.get_conversation(conversation_id, user["user_id"]):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return [MessageInfo(**m) for m in store.get_messages(conversation_id, user["user_id"])]


@app.post("/api/v1/conversations/{conversation_id}/messages", response_model=MessageInfo)
def add_message(conversation_id: str, body: MessageCreate, user: dict = Depends(get_current_user)):
    store = _container.get_store()
    if not store.get_conversation(conversation_id, user["user_id"]):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return MessageInfo(**store.add_message(conversation_id, body.role, body.content))


# =============================================================================
# Drafting
# =============================================================================

@app.post("/api/v1/drafts/generate", dependencies=[Depends(check_rate_limit)])
def generate_draft(body: DraftGenerateRequest, member: dict = Depends(get_membership)):
    """Stream a new draft or a redline of existing content as SSE."""
    store = _container.get_store()
    user_id = member["user_id"]
    organization_id = member["organization_id"]

    with get_metrics_collector().track_request("draft_document", organization_id):
        try:
            limiter = _container.get_rate_limiter()
            limiter.enforce("draft_document", user_id)
            limiter.enforce("draft_document_org", user_id, organization_id=organization_id)

            draft_request = validate_draft_request(
                body.prompt, body.mode, body.original_content, body.document_type
            )
            logger.info(f"Drafting request - Mode: {draft_request.mode}, Type: {draft_request.document_type}")
            stream = _container.get_gateway().stream_chat(
                build_draft_messages(draft_request), model=member["settings"].chat_model
            )
        except (RateLimitExceededError, DraftValidationError, GatewayError) as e:
            raise _http_error(e)

        try:
            store.log_usage(
                user_id, organization_id, "draft_document",
                metadata=draft_usage_metadata(draft_request),
            )
        except Exception as e:
            logger.warning(f"Failed to log usage: {e}")

    return StreamingResponse(relay_chat_stream(stream), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/api/v1/drafts", response_model=DraftInfo)
def create_draft(body: DraftCreate, member: dict = Depends(get_membership)):
    draft = _container.get_store().create_draft(
        member["user_id"],
        member["organization_id"],
        body.title,
        {"text": body.content, "changes": []},
        document_type=body.document_type,
        conversation_id=body.conversation_id,
    )
    return _draft_info(draft)


@app.get("/api/v1/drafts", response_model=list[DraftInfo])
def list_drafts(user: dict = Depends(get_current_user)):
    return [_draft_info(d) for d in _container.get_store().list_drafts(user["user_id"])]


@app.get("/api/v1/drafts/{draft_id}", response_model=DraftInfo)
def get_draft(draft_id: str, user: dict = Depends(get_current_user)):
    draft = _container.get_store().get_draft(draft_id, user["user_id"])
    if not draft:
        raise HTTPException(status_code=404, detail="Draft not found")
    return _draft_info(draft)


@app.put("/api/v1/drafts/{draft_id}", response_model=DraftInfo)
def update_draft(draft_id: str, body: DraftUpdate, user: dict = Depends(get_current_user)):
    """Update a draft; new content is saved as the next version."""
    content = {"text": body.content, "changes": []} if body.content is not None else None
    draft = _container.get_store().update_draft(
        draft_id,
        user["user_id"],
        title=body.title,
        content=content,
        status=body.status,
        changes_summary=body.changes_summary,
    )
    if not draft:
        raise HTTPException(status_code=404, detail="Draft not found")
    return _draft_info(draft)


@app.get("/api/v1/drafts/{draft_id}/versions", response_model=list[DraftVersionInfo])
def list_draft_versions(draft_id: str, user: dict = Depends(get_current_user)):
    store = _container.get_store()
    if not store.get_draft(draft_id, user["user_id"]):
        raise HTTPException(status_code=404, detail="Draft not found")
    return [
        DraftVersionInfo(
            id=str(v["id"]),
            version_number=v["version_number"],
            content=_draft_text(v.get("content")),
            changes_summary=v.get("changes_summary"),
            created_at=v.get("created_at"),
        )
        for v in store.list_draft_versions(draft_id, user["user_id"])
    ]


@app.get("/api/v1/drafts/{draft_id}/export")
def export_draft_file(
    draft_id: str,
    format: str = Query("docx"),
    user: dict = Depends(get_current_user),
):
    """Download a draft as TXT, DOCX or PDF."""
    from .export import export_draft

    draft = _container.get_store().get_draft(draft_id, user["user_id"])
    if not draft:
        raise HTTPException(status_code=404, detail="Draft not found")
    try:
        data, media_type, filename = export_draft(_draft_text(draft.get("content")), draft["title"], format)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# =============================================================================
# Contract review
# =============================================================================

@app.post("/api/v1/contract-reviews", response_model=ReviewStarted, dependencies=[Depends(check_rate_limit)])
def start_contract_review(
    body: ReviewRequest,
    background_tasks: BackgroundTasks,
    member: dict = Depends(get_membership),
):
    """Create a review in 'processing' state and analyze it in the background."""
    reviewer = _container.get_reviewer()
    with get_metrics_collector().track_request("contract_review", member["organization_id"]):
        try:
            review = reviewer.start_review(
                body.document_id, member["user_id"], member["organization_id"], body.mode
            )
        except ContractReviewError as e:
            raise _http_error(e)

    background_tasks.add_task(reviewer.run_review, str(review["id"]), body.document_id, body.mode)
    return ReviewStarted(review_id=str(review["id"]))


@app.get("/api/v1/contract-reviews", response_model=list[ReviewInfo])
def list_contract_reviews(
    document_id: Optional[str] = None,
    member: dict = Depends(get_membership),
):
    rows = _container.get_store().list_contract_reviews(member["organization_id"], document_id)
    return [
        ReviewInfo(
            id=str(r["id"]),
            document_id=str(r["document_id"]),
            status=r["status"],
            analysis_results=r.get("analysis_results") or {},
            filename=r.get("filename"),
            created_at=r.get("created_at"),
            updated_at=r.get("updated_at"),
        )
        for r in rows
    ]


@app.get("/api/v1/contract-reviews/{review_id}", response_model=ReviewInfo)
def get_contract_review(review_id: str, member: dict = Depends(get_membership)):
    """A review with its findings (highest risk first)."""
    store = _container.get_store()
    review = store.get_contract_review(review_id)
    if not review or str(review.get("organization_id")) != member["organization_id"]:
        raise HTTPException(status_code=404, detail="Review not found")

    findings = [
        FindingInfo(**{k: f.get(k) for k in FindingInfo.model_fields if f.get(k) is not None})
        for f in store.list_clause_findings(review_id)
    ]
    return ReviewInfo(
        id=str(review["id"]),
        document_id=str(review["document_id"]),
        status=review["status"],
        analysis_results=review.get("analysis_results") or {},
        created_at=review.get("created_at"),
        updated_at=review.get("updated_at"),
        findings=findings,
    )


def _require_org_finding(finding_id: str, organization_id: str) -> dict:
    finding = _container.get_store().get_clause_finding(finding_id)
    if not finding or str(finding.get("organization_id")) != organization_id:
        raise HTTPException(status_code=404, detail="Finding not found")
    return finding


@app.patch("/api/v1/findings/{finding_id}")
def update_finding(finding_id: str, body: FindingStatusUpdate, member: dict = Depends(get_membership)):
    """Accept, reject or reset a finding."""
    _require_org_finding(finding_id, member["organization_id"])
    _container.get_store().update_finding_status(finding_id, body.status)
    return {"success": True, "finding_id": finding_id, "status": body.status}


@app.post(
    "/api/v1/findings/{finding_id}/benchmark",
    response_model=BenchmarkResponse,
    dependencies=[Depends(check_rate_limit)],
)
def benchmark_finding(finding_id: str, body: BenchmarkRequest, member: dict = Depends(get_membership)):
    """Compare a clause against the benchmark clause library."""
    _require_org_finding(finding_id, member["organization_id"])
    benchmarker = _container.get_benchmarker(member["settings"])
    try:
        data = benchmarker.benchmark(finding_id, body.clause_text, body.clause_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error in benchmark-clause: {e}")
        raise _http_error(e)
    return BenchmarkResponse(benchmark_data=data)


# =============================================================================
# Data analysis
# =============================================================================

@app.post("/api/v1/data/analyze", dependencies=[Depends(check_rate_limit)])
def analyze_data(body: DataAnalysisRequest, member: dict = Depends(get_membership)):
    """Stream an analysis of tabular data, with chart and forecast tools."""
    context = DataContext(
        filename=body.filename,
        row_count=body.row_count,
        headers=body.headers,
        sample_data=body.sample_data,
    )
    messages = build_analysis_messages(context, [m.model_dump() for m in body.messages])

    with get_metrics_collector().track_request("analyze_data", member["organization_id"]):
        try:
            stream = _container.get_gateway().stream_chat(
                messages,
                model=member["settings"].chat_model,
                tools=analysis_tools(),
                tool_choice="auto",
            )
        except GatewayError as e:
            raise _http_error(e)

    return StreamingResponse(relay_chat_stream(stream), media_type="text/event-stream", headers=SSE_HEADERS)


# =============================================================================
# Documents
# =============================================================================

@app.post("/api/v1/documents/parse", response_model=ParseResponse, dependencies=[Depends(check_rate_limit)])
async def parse_document(file: UploadFile = File(...), user: dict = Depends(get_current_user)):
    """Extract text from an uploaded file without storing it."""
    content = await file.read()
    try:
        parsed = await run_in_threadpool(parse_upload, file.filename or "", content)
    except DocumentParseError as e:
        raise _http_error(e)
    return ParseResponse(**parsed.to_dict())


@app.post("/api/v1/documents", response_model=DocumentInfo, dependencies=[Depends(check_rate_limit)])
async def upload_document(file: UploadFile = File(...), member: dict = Depends(get_membership)):
    """Parse an upload and store it in the repository, pending vectorization."""
    content = await file.read()
    try:
        parsed = await run_in_threadpool(parse_upload, file.filename or "", content)
    except DocumentParseError as e:
        raise _http_error(e)

    document = await run_in_threadpool(
        _container.get_store().insert_document,
        organization_id=member["organization_id"],
        user_id=member["user_id"],
        filename=parsed.file_name,
        content_text=parsed.text,
        file_type=parsed.file_type,
        file_size=len(content),
        metadata={"character_count": parsed.character_count},
        vectorization_status="pending",
    )
    logger.info(f"Stored document {document['id']} ({parsed.file_name})")
    return _document_info(document)


@app.get("/api/v1/documents", response_model=list[DocumentInfo])
def list_documents(file_type: Optional[str] = None, member: dict = Depends(get_membership)):
    """List the organization's documents."""
    docs = _container.get_store().list_documents(member["organization_id"], file_type)
    return [_document_info(d) for d in docs]


@app.get("/api/v1/documents/vectorization-status", response_model=VectorizationStatusResponse)
def get_vectorization_status(
    file_type: str = "cuad_contract",
    member: dict = Depends(get_membership),
):
    counts = vectorization_status_counts(_container.get_store(), member["organization_id"], file_type)
    return VectorizationStatusResponse(**counts)


@app.delete("/api/v1/documents/{document_id}")
def delete_document(document_id: str, member: dict = Depends(get_membership)):
    """Delete a document and all its chunks (organization-isolated)."""
    if not _container.get_store().delete_document(document_id, organization_id=member["organization_id"]):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"status": "deleted", "document_id": document_id}


@app.post(
    "/api/v1/documents/{document_id}/vectorize",
    response_model=VectorizeResponse,
    dependencies=[Depends(check_rate_limit)],
)
def vectorize_document(document_id: str, member: dict = Depends(get_membership)):
    """Chunk, embed and store a document's text."""
    _require_org_document(document_id, member["organization_id"])
    pipeline = _container.get_pipeline(member["settings"])
    with get_metrics_collector().track_request("vectorize", member["organization_id"]):
        try:
            result = pipeline.vectorize(document_id)
        except VectorizationError as e:
            raise _http_error(e)
    return VectorizeResponse(**result.to_dict())


@app.post("/api/v1/search", response_model=list[SearchResult], dependencies=[Depends(check_rate_limit)])
def search_chunks(body: SearchRequest, member: dict = Depends(get_membership)):
    """Similarity search over the organization's vectorized chunks."""
    store = _container.get_store()
    org_ids = [str(d["id"]) for d in store.list_documents(member["organization_id"])]
    if body.document_ids is not None:
        allowed = set(org_ids)
        org_ids = [d for d in body.document_ids if d in allowed]
    if not org_ids:
        return []

    settings = member["settings"]
    retriever = _container.get_retriever(settings)
    with get_metrics_collector().track_request("search", member["organization_id"]):
        matches = retriever.retrieve(
            body.query,
            document_ids=org_ids,
            match_threshold=body.match_threshold if body.match_threshold is not None else settings.match_threshold,
            match_count=body.match_count if body.match_count is not None else settings.match_count,
        )
    return [SearchResult(**m.to_dict()) for m in matches]


# =============================================================================
# CUAD import
# =============================================================================

@app.post("/api/v1/cuad/import", dependencies=[Depends(check_rate_limit)])
def import_cuad(body: CuadImportRequest, member: dict = Depends(get_membership)):
    """Import the CUAD dataset into the organization's repository."""
    importer = _container.get_importer()
    with get_metrics_collector().track_request("cuad_import", member["organization_id"]):
        try:
            summary = importer.import_from_url(body.dataset_url, member["organization_id"], member["user_id"])
        except Exception as e:
            logger.error(f"Error in import-cuad-batch: {e}")
            raise HTTPException(status_code=500, detail=str(e))
    return summary.to_dict()
