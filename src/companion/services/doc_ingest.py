from __future__ import annotations

from typing import List
import io
import logging

from docx import Document
from pypdf import PdfReader

from ..domain.errors import ExtractionError

logger = logging.getLogger("companion.ingest")

_PDF_MAGIC = b"%PDF-"
# .docx files are zip containers
_ZIP_MAGIC = b"PK\x03\x04"
_TEXT_SUFFIXES = (".txt", ".md", ".markdown", ".text", ".csv")


def _detect_kind(filename: str, data: bytes) -> str:
    name = (filename or "").lower()
    if name.endswith(".pdf") or data.startswith(_PDF_MAGIC):
        return "pdf"
    if name.endswith(".docx") or (data.startswith(_ZIP_MAGIC) and not name.endswith(_TEXT_SUFFIXES)):
        return "docx"
    return "text"


def _extract_pdf(filename: str, data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        texts: List[str] = []
        for page in reader.pages:
            t = page.extract_text() or ""
            if t:
                texts.append(t)
    except Exception as exc:
        raise ExtractionError(filename, f"unreadable PDF ({exc})") from exc
    return "\n".join(texts)


def _extract_docx(filename: str, data: bytes) -> str:
    try:
        doc = Document(io.BytesIO(data))
    except Exception as exc:
        raise ExtractionError(filename, f"unreadable DOCX ({exc})") from exc
    paragraphs = [p.text for p in doc.paragraphs if p.text and p.text.strip()]
    return "\n".join(paragraphs)


def _extract_plain(filename: str, data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ExtractionError(filename, "not a PDF, DOCX or UTF-8 text document") from exc


def extract_text(filename: str, data: bytes) -> str:
    """Convert an uploaded document into plain text.

    Supports PDF (via pypdf), DOCX (via python-docx) and UTF-8 text. The kind
    is picked from the filename, falling back to the leading magic bytes.

    Raises
    ------
    ExtractionError
        If the payload is empty or cannot be parsed as its detected kind.
    """

    if not data:
        raise ExtractionError(filename, "empty document")
    kind = _detect_kind(filename, data)
    if kind == "pdf":
        text = _extract_pdf(filename, data)
    elif kind == "docx":
        text = _extract_docx(filename, data)
    else:
        text = _extract_plain(filename, data)
    logger.debug("document_extracted", extra={"doc_filename": filename, "kind": kind, "chars": len(text)})
    return text.strip()
