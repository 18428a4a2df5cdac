"""
Document Processor

Text extraction from uploaded RFP documents (PDF and DOCX).
"""

import io
import re
from pathlib import Path

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError
from docx import Document

SUPPORTED_SUFFIXES = (".pdf", ".docx")


def clean_text(text: str) -> str:
    """Collapse runs of whitespace."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def _pdf_text(data: bytes) -> dict:
    result = {"format": "pdf", "text": "", "page_count": 0, "warnings": []}
    try:
        reader = PdfReader(io.BytesIO(data))
    except PdfReadError as e:
        result["warnings"].append(f"PDF processing error: {e}")
        return result

    pages = [clean_text(page.extract_text() or "") for page in reader.pages]
    result["page_count"] = len(pages)
    result["text"] = "\n\n".join(p for p in pages if p)

    blank_pages = sum(1 for p in pages if len(p) < 100)
    if pages and blank_pages > len(pages) / 2:
        result["warnings"].append(
            "Little text could be extracted; the PDF may be a scan."
        )
    return result


def _docx_text(data: bytes) -> dict:
    doc = Document(io.BytesIO(data))
    paragraphs = [p.text.strip() for p in doc.paragraphs if p.text.strip()]

    rows = []
    for table in doc.tables:
        for row in table.rows:
            row_text = " | ".join(cell.text.strip() for cell in row.cells)
            if row_text.strip(" |"):
                rows.append(row_text)

    text = "\n\n".join(paragraphs)
    if rows:
        text += "\n\n[Table Content]\n" + "\n".join(rows)
    return {"format": "docx", "text": text, "page_count": None, "warnings": []}


def extract_document_text(data: bytes, filename: str) -> dict:
    """
    Extract text from a document.

    Returns:
        Dict with format, text, page_count and warnings

    Raises:
        ValueError: If the file type is not supported
    """
    suffix = Path(filename).suffix.lower()
    if suffix == ".pdf":
        return _pdf_text(data)
    if suffix == ".docx":
        return _docx_text(data)
    raise ValueError(f"Unsupported file format: {suffix or filename}. Please upload PDF or DOCX.")
