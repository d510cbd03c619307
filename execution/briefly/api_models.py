"""
Pydantic models for the Briefly CoPilot FastAPI backend.
"""

from typing import Any, Literal, Optional
from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One message in a chat history."""
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Request body for the legal chat stream."""
    messages: list[ChatMessage] = Field(..., min_length=1)
    organization_name: Optional[str] = None
    selected_document_ids: list[str] = []


class ConversationCreate(BaseModel):
    title: str = Field(default="New Chat", max_length=500)
    conversation_type: str = "chat"


class ConversationInfo(BaseModel):
    id: str
    title: str
    conversation_type: str = "chat"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MessageCreate(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)


class MessageInfo(BaseModel):
    id: str
    conversation_id: str
    role: str
    content: str
    created_at: Optional[str] = None


class DraftGenerateRequest(BaseModel):
    """Request body for draft generation.

    The prompt is validated by the drafting module so that malformed
    prompts get its exact error messages.
    """
    prompt: Any = None
    mode: Literal["draft", "redline"] = "draft"
    original_content: Optional[str] = None
    document_type: Optional[str] = None


class DraftCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    content: str = ""
    document_type: Optional[str] = None
    conversation_id: Optional[str] = None


class DraftUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    content: Optional[str] = None
    status: Optional[str] = None
    changes_summary: Optional[str] = None


class DraftInfo(BaseModel):
    id: str
    title: str
    document_type: Optional[str] = None
    content: str = ""
    current_version: int = 1
    status: Optional[str] = None
    conversation_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DraftVersionInfo(BaseModel):
    id: str
    version_number: int
    content: str = ""
    changes_summary: Optional[str] = None
    created_at: Optional[str] = None


class ReviewRequest(BaseModel):
    """Request body for starting a contract review."""
    document_id: str
    mode: str = "quick"


class ReviewStarted(BaseModel):
    success: bool = True
    review_id: str
    message: str = "Analysis started. Results will be available shortly."


class FindingInfo(BaseModel):
    id: str
    clause_title: Optional[str] = None
    clause_text: Optional[str] = None
    risk_level: Optional[str] = None
    issue_description: Optional[str] = None
    recommendation: Optional[str] = None
    original_text: Optional[str] = None
    suggested_text: Optional[str] = None
    benchmark_data: dict = {}
    status: str = "pending"


class ReviewInfo(BaseModel):
    id: str
    document_id: str
    status: str
    analysis_results: dict = {}
    filename: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    findings: list[FindingInfo] = []


class FindingStatusUpdate(BaseModel):
    status: Literal["pending", "accepted", "rejected"]


class BenchmarkRequest(BaseModel):
    clause_text: str = Field(..., min_length=1)
    clause_type: Optional[str] = None


class BenchmarkResponse(BaseModel):
    success: bool = True
    benchmark_data: dict


class DataAnalysisRequest(BaseModel):
    """Request body for CSV data analysis."""
    messages: list[ChatMessage] = Field(..., min_length=1)
    filename: str
    row_count: int = Field(default=0, ge=0)
    headers: list[str] = []
    sample_data: list[dict] = []


class ParseResponse(BaseModel):
    text: str
    fileName: str
    processingTime: str
    characterCount: int


class DocumentInfo(BaseModel):
    """Information about a stored document."""
    id: str
    filename: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    is_vectorized: bool = False
    vectorization_status: Optional[str] = None
    chunk_count: Optional[int] = None
    created_at: Optional[str] = None


class VectorizeResponse(BaseModel):
    success: bool
    document_id: str
    chunk_count: int
    message: str


class VectorizationStatusResponse(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    document_ids: Optional[list[str]] = None
    # Unset values fall back to the organization settings
    match_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    match_count: Optional[int] = Field(default=None, ge=1, le=50)


class SearchResult(BaseModel):
    chunk_id: str
    document_id: str
    chunk_index: int
    chunk_text: str
    similarity: float


class CuadImportRequest(BaseModel):
    dataset_url: str = Field(..., min_length=1)


class PromptInfo(BaseModel):
    id: str
    title: str
    category: str
    template: str
    placeholders: list[str] = []


class PromptRenderRequest(BaseModel):
    """Fill a library prompt from the selected documents."""
    prompt_id: str
    selected_document_ids: list[str] = []


class PromptRenderResponse(BaseModel):
    prompt_id: str
    text: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str
    database: str = "unknown"
