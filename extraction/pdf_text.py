"""Plain-text extraction from statement PDFs via PyMuPDF."""

from pathlib import Path
from typing import Union

import fitz


def _document_text(doc: fitz.Document) -> str:
    parts = []
    for page in doc:
        parts.append(page.get_text())
        parts.append("\n")
    return "".join(parts)


def extract_text(pdf_path: Union[str, Path]) -> str:
    """Concatenated text of every page, one newline after each page."""
    with fitz.open(str(pdf_path)) as doc:
        return _document_text(doc)


def extract_text_from_bytes(data: bytes) -> str:
    """Same as ``extract_text`` for an in-memory PDF (e.g. an upload body)."""
    with fitz.open(stream=data, filetype="pdf") as doc:
        return _document_text(doc)
