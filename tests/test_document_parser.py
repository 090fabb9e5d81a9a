"""
Tests for execution/compliance_rag/document_parser.py

Covers: upload validation (name, type, empty, size), whitespace cleaning,
        PDF extraction via PyMuPDF, DOCX extraction via python-docx, and
        error mapping for unreadable or text-free files.

Fixture documents are generated in memory with the same libraries.
"""

from io import BytesIO

import pytest


def _pdf_bytes(*lines):
    import fitz
    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for line in lines:
        page.insert_text((72, y), line)
        y += 20
    data = doc.tobytes()
    doc.close()
    return data


def _docx_bytes(*paragraphs):
    from docx import Document
    doc = Document()
    for paragraph in paragraphs:
        doc.add_paragraph(paragraph)
    buffer = BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# clean_text
# ---------------------------------------------------------------------------

class TestCleanText:

    def test_collapses_whitespace(self):
        from execution.compliance_rag.document_parser import clean_text
        assert clean_text("  Clause 1.\n\n  Applies\tto   all.  ") == "Clause 1. Applies to all."

    def test_empty(self):
        from execution.compliance_rag.document_parser import clean_text
        assert clean_text("") == ""
        assert clean_text(None) == ""
        assert clean_text(" \n ") == ""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:

    @pytest.fixture
    def extractor(self):
        from execution.compliance_rag.document_parser import DocumentTextExtractor
        return DocumentTextExtractor(max_upload_mb=1)

    def test_accepts_supported_extensions_case_insensitive(self, extractor):
        assert extractor.validate("Policy.PDF", b"x") == "pdf"
        assert extractor.validate("policy.docx", b"x") == "docx"

    def test_missing_name(self, extractor):
        from execution.compliance_rag.document_parser import UnsupportedDocument
        with pytest.raises(UnsupportedDocument, match="File name cannot be empty"):
            extractor.validate("", b"x")

    @pytest.mark.parametrize("filename", ["notes.txt", "sheet.xlsx", "legacy.doc", "noextension"])
    def test_unsupported_type(self, extractor, filename):
        from execution.compliance_rag.document_parser import UnsupportedDocument
        with pytest.raises(UnsupportedDocument, match="Unsupported file type"):
            extractor.validate(filename, b"x")

    def test_empty_payload(self, extractor):
        from execution.compliance_rag.document_parser import UnsupportedDocument
        with pytest.raises(UnsupportedDocument, match="File cannot be empty"):
            extractor.validate("policy.pdf", b"")

    def test_oversized_payload(self, extractor):
        from execution.compliance_rag.document_parser import UnsupportedDocument
        with pytest.raises(UnsupportedDocument, match="1MB"):
            extractor.validate("policy.pdf", b"x" * (1024 * 1024 + 1))

    def test_unsupported_document_is_value_error(self):
        from execution.compliance_rag.document_parser import UnsupportedDocument
        assert issubclass(UnsupportedDocument, ValueError)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class TestExtraction:

    def test_pdf_text(self):
        from execution.compliance_rag.document_parser import DocumentTextExtractor
        data = _pdf_bytes("Clause 1.1 Records are kept for seven years.", "Clause 1.2 Breaches are reported.")
        text = DocumentTextExtractor().extract_text("policy.pdf", data)
        assert "Clause 1.1 Records are kept for seven years." in text
        assert "Clause 1.2 Breaches are reported." in text
        assert "\n" not in text

    def test_docx_text_skips_blank_paragraphs(self):
        from execution.compliance_rag.document_parser import DocumentTextExtractor
        data = _docx_bytes("Section 1 Scope.", "", "   ", "Section 2 Retention.")
        text = DocumentTextExtractor().extract_text("policy.docx", data)
        assert text == "Section 1 Scope. Section 2 Retention."

    def test_pdf_without_text(self):
        from execution.compliance_rag.document_parser import DocumentTextExtractor, ExtractionEmpty
        with pytest.raises(ExtractionEmpty):
            DocumentTextExtractor().extract_text("blank.pdf", _pdf_bytes())

    def test_corrupt_pdf(self):
        from execution.compliance_rag.document_parser import DocumentTextExtractor, UnsupportedDocument
        with pytest.raises(UnsupportedDocument, match="Could not read PDF"):
            DocumentTextExtractor().extract_text("broken.pdf", b"definitely not a pdf")

    def test_corrupt_docx(self):
        from execution.compliance_rag.document_parser import DocumentTextExtractor, UnsupportedDocument
        with pytest.raises(UnsupportedDocument, match="Could not read DOCX"):
            DocumentTextExtractor().extract_text("broken.docx", b"PK not really a zip")
