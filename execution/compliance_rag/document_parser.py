"""
Policy Document Text Extraction

Validates uploaded files and extracts plain text from PDF (PyMuPDF) and
DOCX (python-docx). Layout is discarded: whitespace runs collapse to a
single space so the chunker sees one continuous stream of sentences.
"""

import re
import logging
from io import BytesIO
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ("pdf", "docx")

_WHITESPACE = re.compile(r"\s+")


class UnsupportedDocument(ValueError):
    """Upload rejected: wrong type, empty, too large, or unreadable."""


class ExtractionEmpty(Exception):
    """The document was readable but contained no text."""


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def file_extension(filename: str) -> str:
    return Path(filename).suffix.lower().lstrip(".")


class DocumentTextExtractor:
    """
    Extracts text from uploaded policy documents.

    Usage:
        extractor = DocumentTextExtractor(max_upload_mb=10)
        extractor.validate(filename, data)
        text = extractor.extract_text(filename, data)
    """

    def __init__(self, max_upload_mb: int = 10):
        self.max_upload_bytes = max_upload_mb * 1024 * 1024

    def validate(self, filename: Optional[str], data: bytes) -> str:
        """
        Check filename, type and size before any parsing.

        Returns:
            Lower-case extension of the accepted file

        Raises:
            UnsupportedDocument: missing name, unsupported type, empty or oversized payload
        """
        if not filename:
            raise UnsupportedDocument("File name cannot be empty")

        extension = file_extension(filename)
        if extension not in SUPPORTED_EXTENSIONS:
            raise UnsupportedDocument(
                f"Unsupported file type. Supported types: {', '.join(SUPPORTED_EXTENSIONS)}"
            )

        if not data:
            raise UnsupportedDocument("File cannot be empty")

        if len(data) > self.max_upload_bytes:
            raise UnsupportedDocument(
                f"File size exceeds maximum allowed size of {self.max_upload_bytes // (1024 * 1024)}MB"
            )

        return extension

    def extract_text(self, filename: str, data: bytes) -> str:
        """
        Validate and extract cleaned text.

        Raises:
            UnsupportedDocument: validation failed or the file could not be parsed
            ExtractionEmpty: no text found
        """
        extension = self.validate(filename, data)

        try:
            if extension == "pdf":
                raw = self._extract_pdf(data)
            else:
                raw = self._extract_docx(data)
        except ImportError:
            raise
        except Exception as e:
            logger.error(f"Failed to read {filename}: {type(e).__name__}: {e}")
            raise UnsupportedDocument(f"Could not read {extension.upper()} file: {e}") from e

        text = clean_text(raw)
        if not text:
            raise ExtractionEmpty("No text content could be extracted from the document")

        logger.info(f"Extracted {len(text)} characters from {filename}")
        return text

    def _extract_pdf(self, data: bytes) -> str:
        import fitz  # PyMuPDF

        with fitz.open(stream=data, filetype="pdf") as doc:
            pages = [page.get_text() for page in doc]
            logger.debug(f"Read {len(pages)} PDF pages")
        return "\n".join(pages)

    def _extract_docx(self, data: bytes) -> str:
        from docx import Document

        doc = Document(BytesIO(data))
        paragraphs = [p.text for p in doc.paragraphs if p.text and p.text.strip()]
        return "\n".join(paragraphs)


# CLI for testing
if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO)

    if len(sys.argv) < 2:
        print("Usage: python -m execution.compliance_rag.document_parser <file.pdf|file.docx>")
        sys.exit(1)

    path = Path(sys.argv[1])
    extracted = DocumentTextExtractor().extract_text(path.name, path.read_bytes())
    print(f"Extracted {len(extracted)} characters")
    print(extracted[:1000])
