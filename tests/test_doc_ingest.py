import io

import pytest
from docx import Document
from pypdf import PdfWriter

import src.companion.services.doc_ingest as di
from src.companion.domain.errors import ExtractionError
from src.companion.services.doc_ingest import extract_text


def test_extract_pdf_with_stub(monkeypatch):
    class StubPage:
        def __init__(self, text):
            self._t = text

        def extract_text(self):
            return self._t

    class StubReader:
        def __init__(self, bio):
            self.pages = [StubPage("hello"), StubPage(""), StubPage("world")]

    monkeypatch.setattr(di, "PdfReader", StubReader)

    out = extract_text("resume.pdf", b"anything")
    assert out == "hello\nworld"


def test_unreadable_pdf_raises_extraction_error(monkeypatch):
    class ExplodingReader:
        def __init__(self, bio):
            raise ValueError("EOF marker not found")

    monkeypatch.setattr(di, "PdfReader", ExplodingReader)

    with pytest.raises(ExtractionError) as info:
        extract_text("resume.pdf", b"%PDF-1.7 truncated")
    assert info.value.filename == "resume.pdf"
    assert "EOF marker" in info.value.reason


def test_pdf_detected_by_magic_bytes_without_extension(monkeypatch):
    seen = {}

    class StubReader:
        def __init__(self, bio):
            seen["called"] = True
            self.pages = []

    monkeypatch.setattr(di, "PdfReader", StubReader)
    assert extract_text("upload", b"%PDF-1.4 ...") == ""
    assert seen["called"]


def test_real_blank_pdf_extracts_to_empty_text():
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buf = io.BytesIO()
    writer.write(buf)

    assert extract_text("blank.pdf", buf.getvalue()) == ""


def test_real_docx_paragraphs_are_joined():
    doc = Document()
    doc.add_paragraph("Senior Engineer")
    doc.add_paragraph("   ")
    doc.add_paragraph("Python, Go")
    buf = io.BytesIO()
    doc.save(buf)

    assert extract_text("cv.docx", buf.getvalue()) == "Senior Engineer\nPython, Go"


def test_plain_text_is_decoded_and_stripped():
    assert extract_text("notes.md", "\ufeff  # Résumé\nline two \n".encode("utf-8")) == "# Résumé\nline two"


def test_zip_magic_in_text_file_stays_text():
    assert extract_text("notes.txt", b"PK\x03\x04 looks zipped but is text") == "PK\x03\x04 looks zipped but is text"


def test_binary_garbage_raises_extraction_error():
    with pytest.raises(ExtractionError):
        extract_text("blob.bin", b"\xff\xfe\x00\x81garbage")


def test_empty_payload_raises_extraction_error():
    with pytest.raises(ExtractionError):
        extract_text("empty.txt", b"")
