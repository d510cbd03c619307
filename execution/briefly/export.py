"""
Draft export to TXT, DOCX and PDF.
"""

import io
import re
import logging
import textwrap

from .formatting import html_to_blocks, html_to_text

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "txt": "text/plain; charset=utf-8",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "pdf": "application/pdf",
}

# A4 in points
PDF_PAGE_WIDTH = 595
PDF_PAGE_HEIGHT = 842
PDF_MARGIN = 42
PDF_BODY_FONT_SIZE = 11
PDF_TITLE_FONT_SIZE = 16
PDF_LINE_HEIGHT = 15
PDF_WRAP_CHARS = 95


def safe_filename(title: str) -> str:
    cleaned = re.sub(r"[^\w\s.-]", "", title or "").strip()
    return re.sub(r"\s+", "_", cleaned) or "document"


def export_txt(content: str) -> bytes:
    return html_to_text(content).encode("utf-8")


def export_docx(content: str, title: str) -> bytes:
    """Build a DOCX with headings, styled runs and list items."""
    import docx

    document = docx.Document()
    blocks = html_to_blocks(content)
    if title:
        document.add_heading(title, level=0)

    for block in blocks:
        if block.kind == "heading":
            document.add_heading(block.text, level=block.level)
            continue

        style = {"bullet": "List Bullet", "number": "List Number"}.get(block.kind)
        paragraph = document.add_paragraph(style=style)
        for text, bold, italic in block.runs:
            run = paragraph.add_run(text)
            run.bold = bold or None
            run.italic = italic or None

    if not blocks:
        document.add_paragraph(html_to_text(content))

    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _wrap_lines(text: str) -> list[str]:
    lines = []
    for paragraph in text.split("\n"):
        wrapped = textwrap.wrap(paragraph, width=PDF_WRAP_CHARS) or [""]
        lines.extend(wrapped)
    return lines


def export_pdf(content: str, title: str) -> bytes:
    """Render the title and wrapped body text onto A4 pages."""
    import fitz  # PyMuPDF

    lines = _wrap_lines(html_to_text(content))
    lines_per_page = (PDF_PAGE_HEIGHT - 2 * PDF_MARGIN) // PDF_LINE_HEIGHT

    with fitz.open() as doc:
        page = doc.new_page(width=PDF_PAGE_WIDTH, height=PDF_PAGE_HEIGHT)
        y = PDF_MARGIN + PDF_TITLE_FONT_SIZE
        page.insert_text((PDF_MARGIN, y), title or "Document", fontsize=PDF_TITLE_FONT_SIZE)
        y += PDF_LINE_HEIGHT * 2
        first_page_capacity = int((PDF_PAGE_HEIGHT - PDF_MARGIN - y) // PDF_LINE_HEIGHT)

        chunks = [lines[:first_page_capacity]]
        rest = lines[first_page_capacity:]
        for start in range(0, len(rest), lines_per_page):
            chunks.append(rest[start:start + lines_per_page])

        for i, chunk in enumerate(chunks):
            if i > 0:
                page = doc.new_page(width=PDF_PAGE_WIDTH, height=PDF_PAGE_HEIGHT)
                y = PDF_MARGIN + PDF_BODY_FONT_SIZE
            if chunk:
                page.insert_text(
                    (PDF_MARGIN, y),
                    chunk,
                    fontsize=PDF_BODY_FONT_SIZE,
                    lineheight=PDF_LINE_HEIGHT / PDF_BODY_FONT_SIZE,
                )
        return doc.tobytes()


def export_draft(content: str, title: str, fmt: str) -> tuple[bytes, str, str]:
    """
    Export draft content.

    Args:
        content: Draft HTML or markdown
        title: Document title (also used for the filename)
        fmt: 'txt', 'docx' or 'pdf'

    Returns:
        (file bytes, media type, download filename)

    Raises:
        ValueError: Unknown format
    """
    fmt = (fmt or "").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'. Use txt, docx or pdf.")

    if fmt == "txt":
        data = export_txt(content)
    elif fmt == "docx":
        data = export_docx(content, title)
    else:
        data = export_pdf(content, title)

    logger.info(f"Exported draft '{title}' as {fmt} ({len(data)} bytes)")
    return data, EXPORT_FORMATS[fmt], f"{safe_filename(title)}.{fmt}"
