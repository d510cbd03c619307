"""
Upload Parser - Extracts plain text from uploaded files

Supported inputs:
- .txt / .csv: decoded as UTF-8
- .pdf: PyMuPDF text extraction, page by page
- .docx: python-docx paragraphs and table cells

PDF and DOCX files that yield no text (scanned images, odd structure) or
that fail to parse still succeed, returning a short descriptive note as the
text so the upload can be stored and inspected. Spreadsheets and other
formats are rejected.
"""

import io
import time
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 20 * 1024 * 1024  # 20MB

EXCEL_NOT_SUPPORTED = (
    "Excel files are not currently supported. Please convert your Excel file to CSV format first:\n\n"
    "1. Open the file in Excel/Google Sheets\n"
    "2. Click File → Save As (or Download)\n"
    "3. Choose \"CSV\" as the file type\n"
    "4. Upload the CSV file here\n\n"
    "Note: CSV format preserves your data while being easier to process."
)
UNSUPPORTED_FILE_TYPE = "Unsupported file type. Please upload PDF, DOCX, CSV, or TXT files."
FILE_TOO_LARGE = "File size exceeds 20MB limit. Please upload a smaller file."


class DocumentParseError(ValueError):
    """The upload was rejected (HTTP 400)."""


@dataclass
class ParsedUpload:
    """Text extracted from an uploaded file."""
    text: str
    file_name: str
    processing_time: float
    character_count: int

    @property
    def file_type(self) -> str:
        return file_extension(self.file_name)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "fileName": self.file_name,
            "processingTime": f"{self.processing_time:.2f}",
            "characterCount": self.character_count,
        }


def file_extension(filename: str) -> str:
    name = (filename or "").lower()
    return name.rsplit(".", 1)[-1] if "." in name else ""


def _decode_text(content: bytes) -> str:
    return content.decode("utf-8", errors="replace").lstrip("﻿")


def extract_pdf_text(filename: str, content: bytes) -> str:
    """Extract text from a PDF, or a descriptive note if there is none."""
    import fitz  # PyMuPDF

    try:
        with fitz.open(stream=content, filetype="pdf") as doc:
            page_count = len(doc)
            pages = [page.get_text() for page in doc]
    except Exception as e:
        logger.error(f"PDF parsing error for {filename}: {e}")
        return f"Document: {filename}\n\nError: Could not parse PDF. {e}"

    text = "\n\n".join(p.strip() for p in pages if p.strip())
    if not text.strip():
        return (
            f"Document: {filename}\nPages: {page_count}\n\n"
            "Note: This PDF may contain only images or be scanned. No text could be extracted."
        )

    logger.info(f"Extracted {len(text)} characters from {page_count} pages")
    return text


def extract_docx_text(filename: str, content: bytes) -> str:
    """Extract paragraph and table text from a DOCX, or a descriptive note."""
    import docx

    try:
        document = docx.Document(io.BytesIO(content))
    except Exception as e:
        logger.error(f"DOCX parsing error for {filename}: {e}")
        return f"Document: {filename}\n\nError: Could not parse DOCX. {e}"

    parts = [p.text.strip() for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))

    text = "\n\n".join(parts)
    if not text.strip():
        return (
            f"Document: {filename}\n\n"
            "Note: This DOCX document structure could not be parsed or contains no text."
        )

    logger.info(f"Extracted {len(text)} characters from DOCX")
    return text


def parse_upload(filename: str, content: bytes) -> ParsedUpload:
    """
    Extract text from an uploaded file.

    Args:
        filename: Original filename (the extension selects the parser)
        content: Raw file bytes

    Returns:
        ParsedUpload

    Raises:
        DocumentParseError: Missing file, over 20MB, spreadsheet or
            unsupported type
    """
    start = time.time()

    if not filename:
        raise DocumentParseError("No file provided")
    if len(content) > MAX_FILE_SIZE:
        logger.error(f"File too large: {len(content)} bytes")
        raise DocumentParseError(FILE_TOO_LARGE)

    extension = file_extension(filename)
    logger.info(f"Processing file: {filename}, size: {len(content)} bytes")

    if extension in ("txt", "csv"):
        text = _decode_text(content)
    elif extension in ("xlsx", "xls"):
        raise DocumentParseError(EXCEL_NOT_SUPPORTED)
    elif extension == "pdf":
        text = extract_pdf_text(filename, content)
    elif extension == "docx":
        text = extract_docx_text(filename, content)
    else:
        raise DocumentParseError(UNSUPPORTED_FILE_TYPE)

    elapsed = time.time() - start
    logger.info(f"Parsed {filename} in {elapsed:.2f}s, extracted {len(text)} characters")
    return ParsedUpload(
        text=text,
        file_name=filename,
        processing_time=elapsed,
        character_count=len(text),
    )
