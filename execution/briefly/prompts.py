"""
System prompts and tool schemas sent to the AI gateway.
"""

import json
from typing import Optional


LEGAL_CHAT_PROMPT = """You are Briefly CoPilot, an expert legal analyst and AI assistant{organization} specializing in contract review, risk assessment and strategic legal analysis.

You can draw on the Contract Understanding Atticus Dataset (CUAD): 510 commercial contracts annotated across 41 clause types, useful for benchmarking what is market standard.

When reviewing documents:
- Start with an executive summary for complex documents
- Quote exact text only for critical specifics (defined terms, amounts, dates, key obligations)
- Flag unusual, one-sided or missing provisions and rate their risk
- For multi-document analysis, clearly delineate between documents
- End with prioritized action items when appropriate

Your analysis is informational and not legal advice. Recommend consultation with qualified counsel for final decisions.
"""

DRAFT_PROMPT = (
    "You are a legal document drafting assistant. Generate complete, professional legal "
    "documents with proper formatting, clauses, and provisions. Return ONLY the document "
    "text, no explanations."
)

REDLINE_PROMPT = """You are a legal document redlining assistant. Make the requested changes to the document and mark them clearly:
- Use [DELETED: text] for removed text
- Use [INSERTED: text] for added text
Return the full revised document with these markers."""

CONTRACT_REVIEW_PROMPT = """You are an expert legal contract reviewer specializing in identifying risks and providing actionable recommendations.

Analyze the provided contract and extract ALL problematic clauses. For each issue, provide:
- A clear title describing the clause type
- The exact text of the problematic clause
- Risk level (high/medium/low):
  * HIGH: unlimited liability, unfavorable termination, missing critical protections
  * MEDIUM: negotiable terms, standard but unfavorable language
  * LOW: minor issues, non-standard but acceptable terms
- Why it is problematic
- A specific recommendation with exact suggested replacement text

Cover liability and indemnification, termination and renewal, intellectual property, data protection, warranties, payment terms, confidentiality, dispute resolution, force majeure, and assignment or change of control.

Be thorough and extract all issues, not just the most critical ones."""

DATA_ANALYSIS_PROMPT = """You are an AI data analyst assistant for a law firm backoffice. You help analyze CSV data and provide insights.

Current dataset information:
- Filename: {filename}
- Total rows: {row_count}
- Columns: {headers}
- Sample data (first 5 rows): {sample_data}

When users ask for charts, use the create_visualization tool (bar, line, pie or area).
When users ask for forecasts or predictions, use the create_forecast tool, explain the method and its assumptions, and keep forecasted values clearly separate from historical data.

Provide clear, conversational insights."""


def legal_chat_system_prompt(organization_name: Optional[str] = None, document_context: str = "") -> str:
    """System prompt for legal chat, with the document context appended."""
    organization = f" for {organization_name}" if organization_name else ""
    prompt = LEGAL_CHAT_PROMPT.format(organization=organization)
    if document_context:
        prompt += f"\n{document_context}\n"
    return prompt


def data_analysis_system_prompt(filename: str, row_count: int, headers: list[str], sample_data: list) -> str:
    return DATA_ANALYSIS_PROMPT.format(
        filename=filename,
        row_count=row_count,
        headers=", ".join(headers),
        sample_data=json.dumps(sample_data, ensure_ascii=False),
    )


# =============================================================================
# Tool schemas
# =============================================================================

CLAUSE_FINDINGS_TOOL_NAME = "extract_clause_findings"

FINDING_FIELDS = (
    "clause_title",
    "clause_text",
    "risk_level",
    "issue_description",
    "recommendation",
    "original_text",
    "suggested_text",
)

CLAUSE_FINDINGS_TOOL = {
    "type": "function",
    "function": {
        "name": CLAUSE_FINDINGS_TOOL_NAME,
        "description": "Extract all problematic clauses from the contract with detailed analysis",
        "parameters": {
            "type": "object",
            "properties": {
                "findings": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "clause_title": {"type": "string"},
                            "clause_text": {"type": "string"},
                            "risk_level": {"type": "string", "enum": ["high", "medium", "low"]},
                            "issue_description": {"type": "string"},
                            "recommendation": {"type": "string"},
                            "original_text": {"type": "string"},
                            "suggested_text": {"type": "string"},
                        },
                        "required": list(FINDING_FIELDS),
                    },
                },
            },
            "required": ["findings"],
        },
    },
}

CLAUSE_FINDINGS_TOOL_CHOICE = {"type": "function", "function": {"name": CLAUSE_FINDINGS_TOOL_NAME}}

VISUALIZATION_TOOL = {
    "type": "function",
    "function": {
        "name": "create_visualization",
        "description": "Create a data visualization chart. Use this when users ask for charts, graphs, or visualizations.",
        "parameters": {
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "enum": ["bar", "line", "pie", "area"],
                    "description": "Type of chart to create",
                },
                "title": {"type": "string", "description": "Title for the chart"},
                "data": {
                    "type": "array",
                    "description": "Array of data points for the chart",
                    "items": {"type": "object"},
                },
                "xKey": {"type": "string", "description": "Key for x-axis data"},
                "yKey": {"type": "string", "description": "Key for y-axis data"},
            },
            "required": ["type", "title", "data", "xKey", "yKey"],
        },
    },
}

FORECAST_TOOL = {
    "type": "function",
    "function": {
        "name": "create_forecast",
        "description": (
            "Create a forecast or prediction based on historical data. Use this when users "
            "ask to predict, forecast, or project future values."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Title for the forecast"},
                "historicalData": {
                    "type": "array",
                    "description": "Historical data points",
                    "items": {"type": "object"},
                },
                "forecastData": {
                    "type": "array",
                    "description": "Forecasted data points",
                    "items": {"type": "object"},
                },
                "xKey": {"type": "string", "description": "Key for x-axis (time period)"},
                "yKey": {"type": "string", "description": "Key for y-axis (forecasted value)"},
                "method": {"type": "string", "description": "Forecasting method used"},
                "assumptions": {
                    "type": "array",
                    "description": "Assumptions behind the forecast",
                    "items": {"type": "string"},
                },
            },
            "required": ["title", "historicalData", "forecastData", "xKey", "yKey", "method"],
        },
    },
}

DATA_ANALYSIS_TOOLS = [VISUALIZATION_TOOL, FORECAST_TOOL]
