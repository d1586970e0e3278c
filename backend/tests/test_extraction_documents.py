import io

import openpyxl
import pytest
from docx import Document

from app.services.extraction import documents
from app.services.extraction.documents import (
    DocumentContentError,
    detect_document_type,
    extract_document_content,
    extract_docx_text,
    extract_xlsx_text,
)


def _docx_bytes() -> bytes:
    document = Document()
    document.add_paragraph("Certificate of Analysis")
    document.add_paragraph("Product: Vitamin C")
    table = document.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Assay"
    table.cell(0, 1).text = "99.5%"
    table.cell(1, 0).text = "Lead"
    table.cell(1, 1).text = "<0.5 ppm"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _xlsx_bytes(rows) -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Specs"
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def test_detect_document_type_by_mime_then_extension():
    assert detect_document_type("application/pdf") == "pdf"
    assert detect_document_type("image/png") == "image"
    assert detect_document_type(
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    ) == "docx"
    assert detect_document_type(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ) == "xlsx"
    assert detect_document_type("application/octet-stream", "spec.xlsx") == "xlsx"
    assert detect_document_type("", "photo.JPG") == "image"
    assert detect_document_type("application/zip", "archive.zip") == "unsupported"


def test_docx_text_includes_paragraphs_and_tables():
    content = extract_docx_text(_docx_bytes())
    assert content.document_type == "docx"
    assert content.needs_vision is False
    assert "Certificate of Analysis" in content.text
    assert "Assay | 99.5%" in content.text
    assert content.metadata["method"] == "python-docx"
    assert content.metadata["word_count"] > 0


def test_docx_rejects_non_zip_bytes():
    with pytest.raises(DocumentContentError):
        extract_docx_text(b"plain text pretending to be docx")


def test_xlsx_text_lists_sheets_and_rows():
    content = extract_xlsx_text(_xlsx_bytes([["Parameter", "Value"], ["Assay", "99.5%"], [None, None]]))
    assert content.document_type == "xlsx"
    assert "=== Sheet: Specs ===" in content.text
    assert "Rows: 2, Columns: 2" in content.text
    assert "Assay | 99.5%" in content.text
    assert content.metadata["sheet_names"] == ["Specs"]
    assert content.metadata["truncated_sheets"] == []


def test_xlsx_row_cap(monkeypatch):
    monkeypatch.setattr(documents, "MAX_ROWS_PER_SHEET", 3)
    monkeypatch.setattr(documents, "MAX_ROWS_IN_TEXT", 2)
    content = extract_xlsx_text(_xlsx_bytes([[f"row {index}"] for index in range(5)]))
    assert content.metadata["truncated_sheets"] == ["Specs"]
    assert "(truncated from 5 rows)" in content.text
    assert "... (1 more rows)" in content.text


def test_legacy_xls_is_rejected():
    with pytest.raises(DocumentContentError, match="Legacy"):
        extract_xlsx_text(documents.OLE_MAGIC + b"\x00" * 16)


def test_vision_formats_pass_through():
    content = extract_document_content(b"%PDF-1.4 ...", "application/pdf", "coa.pdf")
    assert content.needs_vision is True
    assert content.text == ""
    image = extract_document_content(b"\x89PNG....", "image/png", "label.png")
    assert image.document_type == "image"
    assert image.needs_vision is True


def test_size_cap(monkeypatch):
    monkeypatch.setattr(documents, "MAX_DOCUMENT_BYTES", 10)
    with pytest.raises(DocumentContentError, match="too large"):
        extract_document_content(b"x" * 11, "application/pdf", "big.pdf")


def test_unsupported_type_raises():
    with pytest.raises(DocumentContentError, match="Unsupported"):
        extract_document_content(b"data", "application/zip", "archive.zip")
