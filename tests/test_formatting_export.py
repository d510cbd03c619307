"""
Tests for execution/briefly/formatting.py and execution/briefly/export.py

Covers: markdown to HTML conversion, HTML block extraction, plain-text
stripping, and TXT/DOCX/PDF export (DOCX and PDF output is reopened with
python-docx and PyMuPDF to inspect it).
"""

import io

import pytest

MARKDOWN = "# Title\n\nSome **bold** and *it* text\n- a\n- b\n1. one\n2. two"


class TestFormatDocumentContent:

    def test_markdown_converted(self):
        from execution.briefly.formatting import format_document_content
        html = format_document_content(MARKDOWN)
        assert html.split("\n") == [
            "<h1>Title</h1>",
            "",
            "<p>Some <strong>bold</strong> and <em>it</em> text</p>",
            "<ul>", "<li>a</li>", "<li>b</li>", "</ul>",
            "<ol>", "<li>one</li>", "<li>two</li>", "</ol>",
        ]

    def test_html_passes_through(self):
        from execution.briefly.formatting import format_document_content
        html = "<p>Already <em>formatted</em></p>"
        assert format_document_content(html) == html

    def test_blank_runs_collapsed(self):
        from execution.briefly.formatting import format_document_content
        assert "\n\n\n" not in format_document_content("one\n\n\n\n\ntwo")

    def test_empty(self):
        from execution.briefly.formatting import format_document_content
        assert format_document_content("") == ""


class TestHtmlToText:

    def test_strips_tags(self):
        from execution.briefly.formatting import html_to_text
        assert html_to_text("<h1>Title</h1><p>Body</p>") == "Title\nBody"

    def test_plain_text_unchanged(self):
        from execution.briefly.formatting import html_to_text
        assert html_to_text("Just text\n\nMore") == "Just text\n\nMore"

    def test_inline_formatting_stays_on_one_line(self):
        from execution.briefly.formatting import html_to_text
        html = "<p>The <strong>Buyer</strong> shall pay <em>promptly</em>.</p><p>Second<br>line</p>"
        assert html_to_text(html) == "The Buyer shall pay promptly.\nSecond\nline"


class TestHtmlToBlocks:

    def test_blocks_from_markdown(self):
        from execution.briefly.formatting import html_to_blocks
        blocks = html_to_blocks(MARKDOWN)
        assert [(b.kind, b.text) for b in blocks] == [
            ("heading", "Title"),
            ("paragraph", "Some bold and it text"),
            ("bullet", "a"), ("bullet", "b"),
            ("number", "one"), ("number", "two"),
        ]
        assert blocks[0].level == 1
        assert blocks[1].runs == [
            ("Some ", False, False),
            ("bold", True, False),
            (" and ", False, False),
            ("it", False, True),
            (" text", False, False),
        ]

    def test_nested_styles(self):
        from execution.briefly.formatting import html_to_blocks
        blocks = html_to_blocks("<p><strong>a <em>b</em></strong></p>")
        assert blocks[0].runs == [("a ", True, False), ("b", True, True)]

    def test_line_starting_with_bold_is_one_paragraph(self):
        from execution.briefly.formatting import html_to_blocks
        blocks = html_to_blocks("**Term.** The agreement ends")
        assert len(blocks) == 1
        assert blocks[0].kind == "paragraph"
        assert blocks[0].runs == [("Term.", True, False), (" The agreement ends", False, False)]

    def test_top_level_inline_html_grouped(self):
        from execution.briefly.formatting import html_to_blocks
        blocks = html_to_blocks("<strong>Notice.</strong> Sent by <em>email</em>\n<p>Next</p>")
        assert [(b.kind, b.text) for b in blocks] == [
            ("paragraph", "Notice. Sent by email"),
            ("paragraph", "Next"),
        ]


class TestExport:

    def test_safe_filename(self):
        from execution.briefly.export import safe_filename
        assert safe_filename("Lease: Draft #2") == "Lease_Draft_2"
        assert safe_filename("???") == "document"

    def test_unknown_format(self):
        from execution.briefly.export import export_draft
        with pytest.raises(ValueError, match="Unsupported export format"):
            export_draft("x", "t", "rtf")

    def test_txt(self):
        from execution.briefly.export import export_draft
        data, media_type, filename = export_draft("<h1>NDA</h1><p>Terms</p>", "Mutual NDA", "TXT")
        assert data == b"NDA\nTerms"
        assert media_type.startswith("text/plain")
        assert filename == "Mutual_NDA.txt"

    def test_docx(self):
        import docx
        from execution.briefly.export import export_draft
        data, media_type, filename = export_draft(MARKDOWN, "Services Agreement", "docx")
        assert filename == "Services_Agreement.docx"
        assert media_type.endswith("wordprocessingml.document")

        document = docx.Document(io.BytesIO(data))
        paragraphs = [(p.style.name, p.text) for p in document.paragraphs]
        assert paragraphs[0] == ("Title", "Services Agreement")
        assert ("Heading 1", "Title") in paragraphs
        assert ("List Bullet", "a") in paragraphs
        assert ("List Number", "two") in paragraphs

        body = next(p for p in document.paragraphs if p.text == "Some bold and it text")
        assert [r.text for r in body.runs if r.bold] == ["bold"]
        assert [r.text for r in body.runs if r.italic] == ["it"]

    def test_txt_keeps_inline_runs_together(self):
        from execution.briefly.export import export_txt
        assert export_txt("<p>The <strong>Buyer</strong> shall pay</p>") == b"The Buyer shall pay"

    def test_docx_bold_lead_in_single_paragraph(self):
        import docx
        from execution.briefly.export import export_docx
        document = docx.Document(io.BytesIO(export_docx("**Term.** The agreement ends", "T")))
        assert [p.text for p in document.paragraphs] == ["T", "Term. The agreement ends"]
        assert [r.text for r in document.paragraphs[1].runs if r.bold] == ["Term."]

    def test_pdf_keeps_inline_runs_together(self):
        import fitz
        from execution.briefly.export import export_pdf
        data = export_pdf("<p>The <strong>Buyer</strong> shall pay</p>", "Terms")
        with fitz.open(stream=data, filetype="pdf") as doc:
            text = "".join(page.get_text() for page in doc)
        assert "The Buyer shall pay" in text

    def test_pdf_paginates(self):
        import fitz
        from execution.briefly.export import export_draft
        content = "\n".join(f"Clause {i}. The parties agree." for i in range(120))
        data, media_type, filename = export_draft(content, "Long Contract", "pdf")
        assert media_type == "application/pdf"

        with fitz.open(stream=data, filetype="pdf") as doc:
            assert len(doc) >= 2
            text = "".join(page.get_text() for page in doc)
        assert "Long Contract" in text
        assert "Clause 0." in text
        assert "Clause 119." in text
