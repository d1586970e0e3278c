"""Document type detection and text conversion for non-vision formats."""
from __future__ import annotations

import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from docx import Document
from docx.opc.exceptions import PackageNotFoundError

logger = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES = 50 * 1024 * 1024
MAX_ROWS_PER_SHEET = 10000
MAX_ROWS_IN_TEXT = 100

ZIP_MAGIC = b"PK\x03\x04"
OLE_MAGIC = b"\xd0\xcf\x11\xe0"

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}

DOCX_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
}
XLSX_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}
TEXT_MIME_TYPES = {"text/plain", "text/csv", "application/json"}

VISION_DOCUMENT_TYPES = {"image", "pdf"}


class DocumentContentError(ValueError):
    pass


@dataclass
class DocumentContent:
    document_type: str  # image|pdf|docx|xlsx|text
    needs_vision: bool
    text: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


def _extension(filename: Optional[str]) -> str:
    name = str(filename or "")
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def detect_document_type(mime_type: Optional[str], filename: Optional[str] = None) -> str:
    mime = str(mime_type or "").strip().lower()
    if mime == "application/pdf":
        return "pdf"
    if mime in DOCX_MIME_TYPES:
        return "docx"
    if mime in XLSX_MIME_TYPES:
        return "xlsx"
    if mime.startswith("image/"):
        return "image"
    if mime in TEXT_MIME_TYPES:
        return "text"

    ext = _extension(filename)
    if ext == "pdf":
        return "pdf"
    if ext in {"docx", "doc"}:
        return "docx"
    if ext in {"xlsx", "xls"}:
        return "xlsx"
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in {"txt", "csv"}:
        return "text"
    return "unsupported"


def _check_size(data: bytes, label: str) -> None:
    if len(data) > MAX_DOCUMENT_BYTES:
        size_mb = len(data) / 1024 / 1024
        raise DocumentContentError(
            f"{label} file is too large ({size_mb:.2f}MB). "
            f"Maximum supported size is {MAX_DOCUMENT_BYTES // 1024 // 1024}MB."
        )


def extract_docx_text(data: bytes) -> DocumentContent:
    if not data.startswith(ZIP_MAGIC):
        raise DocumentContentError(
            "Invalid DOCX file format. The file may be corrupted or is not a valid DOCX document."
        )
    _check_size(data, "DOCX")
    try:
        document = Document(io.BytesIO(data))
    except (zipfile.BadZipFile, PackageNotFoundError, KeyError, ValueError) as exc:
        raise DocumentContentError(f"DOCX extraction failed: {exc}") from exc

    lines: List[str] = [p.text for p in document.paragraphs if p.text and p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [re.sub(r"\s+", " ", cell.text).strip() for cell in row.cells]
            if any(cells):
                lines.append(" | ".join(cells))

    text = "\n".join(lines)
    word_count = len(text.split())
    if not word_count:
        logger.warning("DOCX document contains no extractable text")
    return DocumentContent(
        document_type="docx",
        needs_vision=False,
        text=text,
        metadata={"method": "python-docx", "word_count": word_count, "confidence": "high" if word_count else "low"},
    )


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def extract_xlsx_text(data: bytes) -> DocumentContent:
    if data.startswith(OLE_MAGIC):
        raise DocumentContentError("Legacy .xls workbooks are not supported. Please save the file as .xlsx.")
    if not data.startswith(ZIP_MAGIC):
        raise DocumentContentError(
            "Invalid Excel file format. The file may be corrupted or is not a valid Excel document (.xlsx)."
        )
    _check_size(data, "Excel")
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError, ValueError, OSError) as exc:
        raise DocumentContentError(f"Excel extraction failed: {exc}") from exc

    sheet_names = list(workbook.sheetnames)
    if not sheet_names:
        raise DocumentContentError("Excel file contains no sheets")

    sections: List[str] = []
    total_rows = 0
    truncated_sheets: List[str] = []
    try:
        for sheet_name in sheet_names:
            rows: List[List[str]] = []
            original_count = 0
            for raw in workbook[sheet_name].iter_rows(values_only=True):
                cells = [_cell_text(value) for value in raw]
                if not any(cells):
                    continue
                original_count += 1
                if len(rows) < MAX_ROWS_PER_SHEET:
                    rows.append(cells)
            if original_count > MAX_ROWS_PER_SHEET:
                truncated_sheets.append(sheet_name)
                logger.warning(
                    "Sheet %r truncated from %s to %s rows", sheet_name, original_count, MAX_ROWS_PER_SHEET
                )
            total_rows += len(rows)

            column_count = len(rows[0]) if rows else 0
            header = f"=== Sheet: {sheet_name} ===\nRows: {len(rows)}, Columns: {column_count}"
            if original_count > MAX_ROWS_PER_SHEET:
                header += f" (truncated from {original_count} rows)"
            body = [" | ".join(row) for row in rows[:MAX_ROWS_IN_TEXT]]
            if len(rows) > MAX_ROWS_IN_TEXT:
                body.append(f"... ({len(rows) - MAX_ROWS_IN_TEXT} more rows)")
            sections.append(header + "\n\n" + "\n".join(body))
    finally:
        workbook.close()

    metadata = {
        "method": "openpyxl",
        "total_sheets": len(sheet_names),
        "sheet_names": sheet_names,
        "truncated_sheets": truncated_sheets,
        "confidence": "high" if total_rows else "low",
    }
    if not total_rows:
        logger.warning("No data extracted from any sheet")
        return DocumentContent(document_type="xlsx", needs_vision=False, text="", metadata=metadata)

    text = f"Excel file with {len(sheet_names)} sheet(s)\nTotal rows extracted: {total_rows}\n\n"
    text += "\n\n".join(sections)
    return DocumentContent(document_type="xlsx", needs_vision=False, text=text, metadata=metadata)


def extract_document_content(data: bytes, mime_type: Optional[str], filename: Optional[str] = None) -> DocumentContent:
    """Prepare a document for the model: vision formats pass through, others become text."""
    document_type = detect_document_type(mime_type, filename)
    logger.info("Preparing %s document %s", document_type, filename or "unnamed")
    if document_type in VISION_DOCUMENT_TYPES:
        _check_size(data, document_type.upper())
        return DocumentContent(document_type=document_type, needs_vision=True, metadata={"method": "vision"})
    if document_type == "docx":
        return extract_docx_text(data)
    if document_type == "xlsx":
        return extract_xlsx_text(data)
    if document_type == "text":
        _check_size(data, "Text")
        return DocumentContent(
            document_type="text",
            needs_vision=False,
            text=data.decode("utf-8", errors="replace"),
            metadata={"method": "plain"},
        )
    raise DocumentContentError(f"Unsupported file type: {mime_type or filename or 'unknown'}")
