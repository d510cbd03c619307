"""
Prompt Library

Reusable legal prompt templates with ``[[[PLACEHOLDER]]]`` slots, and the
rules that fill those slots from the documents a user has selected.
"""

import re
import logging
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class PromptTemplate:
    """A library prompt with the placeholders it uses."""
    id: str
    title: str
    category: str
    template: str
    placeholders: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


PROMPT_LIBRARY = [
    PromptTemplate(
        id="summarize-counter",
        title="Summarize & Counter-Arguments",
        category="Analysis",
        template=(
            "First, summarize this [[[DOCUMENT_TYPE]]] in a single detailed paragraph.\n\n"
            "Second, generate [[[NUMBER]]] counter-arguments, weaknesses, contradictions, gaps, "
            "logical reasoning and other flaws, ranked in order from most serious to least serious."
        ),
        placeholders=["DOCUMENT_TYPE", "NUMBER"],
    ),
    PromptTemplate(
        id="risk-factors",
        title="Risk Factor Analysis",
        category="Corporate",
        template=(
            "First, create a list of ten risk factors that [[[COMPANY]]] ([[[COMPANY_TICKER]]]) has "
            "disclosed in their [[[YEARS]]] annual reports regarding [[[RISK]]].\n\n"
            "Second, based on that list of examples, draft a new risk factor that can be disclosed "
            "in an annual filing for [[[COMPANY]]] regarding [[[RISK]]]."
        ),
        placeholders=["COMPANY", "COMPANY_TICKER", "YEARS", "RISK"],
    ),
    PromptTemplate(
        id="focused-summary",
        title="Focused Summary",
        category="Analysis",
        template="Summarize this [[[DOCUMENT_TYPE]]] in [[[FORMAT / STYLE / LENGTH]]] focusing on [[[TOPIC(S)]]].",
        placeholders=["DOCUMENT_TYPE", "FORMAT / STYLE / LENGTH", "TOPIC(S)"],
    ),
    PromptTemplate(
        id="client-memo",
        title="Client Memo",
        category="Drafting",
        template=(
            "Prepare a memo on behalf of a lawyer to their client summarizing this [[[DOCUMENT_TYPE]]]. "
            "Use subheadings to organize the memo's paragraphs. At the beginning of the memo, "
            "highlight the most critical information in an executive summary."
        ),
        placeholders=["DOCUMENT_TYPE"],
    ),
    PromptTemplate(
        id="witness-statements",
        title="Witness Statement Analysis",
        category="Litigation",
        template=(
            "Identify statements by [[[WITNESS]]] in [[[the / each]]] [[[DOCUMENT(S)]]] "
            "supporting the claim that [[[TOPIC]]]."
        ),
        placeholders=["WITNESS", "the / each", "DOCUMENT(S)", "TOPIC"],
    ),
    PromptTemplate(
        id="csv-analysis",
        title="CSV/Data File Analysis",
        category="Back Office",
        template=(
            "Analyze this CSV or data file and provide key insights about [[[DATA_TYPE]]]. Include "
            "trends, patterns, anomalies, and a summary of the most important findings."
        ),
        placeholders=["DATA_TYPE"],
    ),
    PromptTemplate(
        id="document-comparison",
        title="Document Comparison",
        category="Back Office",
        template=(
            "Compare these two [[[DOCUMENT_TYPE]]] documents and highlight the key differences, "
            "additions, deletions, and modifications. Present the findings in a clear, organized format."
        ),
        placeholders=["DOCUMENT_TYPE"],
    ),
    PromptTemplate(
        id="data-extraction",
        title="Data Extraction & Table Creation",
        category="Back Office",
        template=(
            "Extract all [[[DATA_POINTS]]] from this document and format them as a structured table "
            "with clear headers. Include any relevant context or notes."
        ),
        placeholders=["DATA_POINTS"],
    ),
    PromptTemplate(
        id="checklist-generation",
        title="Task Checklist Generation",
        category="Back Office",
        template=(
            "Create a detailed checklist for [[[TASK_TYPE]]] based on this document. Include all "
            "necessary steps, deadlines (if mentioned), and requirements."
        ),
        placeholders=["TASK_TYPE"],
    ),
    PromptTemplate(
        id="compliance-review",
        title="Compliance Review",
        category="Back Office",
        template=(
            "Review this [[[DOCUMENT_TYPE]]] for compliance with [[[REGULATION/STANDARD]]]. Identify "
            "any areas of non-compliance, gaps, or recommendations for improvement."
        ),
        placeholders=["DOCUMENT_TYPE", "REGULATION/STANDARD"],
    ),
    PromptTemplate(
        id="key-terms-extraction",
        title="Legal Terms Glossary",
        category="Back Office",
        template=(
            "Identify and define all key legal terms, jargon, and technical language in this "
            "[[[DOCUMENT_TYPE]]]. Present them in alphabetical order with clear, plain-language definitions."
        ),
        placeholders=["DOCUMENT_TYPE"],
    ),
    PromptTemplate(
        id="data-summary-table",
        title="Summary Table Creation",
        category="Back Office",
        template=(
            "Create a comprehensive summary table of [[[DATA_TYPE]]] showing the following columns: "
            "[[[COLUMNS]]]. Organize the data logically and ensure all relevant information is captured."
        ),
        placeholders=["DATA_TYPE", "COLUMNS"],
    ),
    PromptTemplate(
        id="deadline-tracker",
        title="Deadline & Timeline Extraction",
        category="Back Office",
        template=(
            "Extract all deadlines, dates, and time-sensitive information from this [[[DOCUMENT_TYPE]]]. "
            "Create a chronological timeline or calendar of events with descriptions."
        ),
        placeholders=["DOCUMENT_TYPE"],
    ),
]

# Checked in order; the first keyword found in the filename wins
DOCUMENT_TYPE_KEYWORDS = (
    "contract",
    "agreement",
    "memo",
    "report",
    "brief",
    "filing",
    "statement",
    "disclosure",
    "amendment",
)

COMPANY_PATTERN = re.compile(r"^([A-Z][a-zA-Z\s&\.]+?)(?:_|\d|\.)")
TICKER_PATTERN = re.compile(r"\b([A-Z]{2,5})\b")


def get_prompt(prompt_id: str) -> Optional[PromptTemplate]:
    for prompt in PROMPT_LIBRARY:
        if prompt.id == prompt_id:
            return prompt
    return None


def infer_document_type(documents: list[dict]) -> str:
    """Guess a document type noun from the first document's filename."""
    if not documents:
        return "document"

    first = documents[0]
    filename = first.get("filename") or ""
    for keyword in DOCUMENT_TYPE_KEYWORDS:
        if re.search(keyword, filename, re.IGNORECASE):
            return keyword

    return "PDF document" if first.get("file_type") == "pdf" else "document"


def infer_company_name(documents: list[dict]) -> str:
    if not documents:
        return "the company"
    match = COMPANY_PATTERN.match(documents[0].get("filename") or "")
    return match.group(1).strip() if match else "the company"


def infer_ticker(documents: list[dict]) -> str:
    if not documents:
        return "TICKER"
    match = TICKER_PATTERN.search(documents[0].get("filename") or "")
    return match.group(1) if match else "TICKER"


def replace_placeholders(template: str, documents: Optional[list[dict]] = None, today: Optional[date] = None) -> str:
    """
    Fill a template's placeholders from the selected documents.

    Args:
        template: Prompt text containing [[[PLACEHOLDER]]] slots
        documents: Selected documents (dicts with filename, file_type)
        today: Date used for the YEARS range; defaults to today

    Returns:
        Template with every known placeholder substituted
    """
    documents = documents or []
    year = (today or date.today()).year
    plural = len(documents) > 1

    values = {
        "DOCUMENT_TYPE": infer_document_type(documents),
        "DOCUMENT(S)": "documents" if plural else "document",
        "NUMBER": "5",
        "COMPANY": infer_company_name(documents),
        "COMPANY_TICKER": infer_ticker(documents),
        "YEARS": f"{year - 2}-{year}",
        "RISK": "market volatility",
        "FORMAT / STYLE / LENGTH": "a clear, concise summary",
        "TOPIC(S)": "key provisions and obligations",
        "WITNESS": "the witness",
        "the / each": "each" if plural else "the",
        "TOPIC": "liability",
        "DATA_TYPE": "financial transactions",
        "DATA_POINTS": "dates, parties, and amounts",
        "TASK_TYPE": "due diligence review",
        "REGULATION/STANDARD": "applicable regulations",
        "COLUMNS": "Date, Description, Amount, Status",
    }

    result = template
    for name, value in values.items():
        result = result.replace(f"[[[{name}]]]", value)
    return result
