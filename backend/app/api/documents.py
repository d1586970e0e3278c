"""Merchant document routes: upload, AI extraction, review and merge into products."""
import asyncio
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_merchant_org_id
from app.api.products import product_fields, seed_missing_permissions
from app.config import get_settings
from app.models.base import get_db
from app.models.document import AnalysisStatus, DocumentExtraction
from app.models.product import Product
from app.services.access.resolver import UPLOADED_FILES_FIELD
from app.services.extraction.parsing import product_values
from app.services.extraction.pipeline import merge_product_data
from app.services.industries import UnsupportedIndustryError, get_default_industry, load_industry_schema
from app.services.storage import DocumentStorage, StorageError, build_storage_path

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
}

# An "analyzing" document older than this is treated as a crashed run.
STUCK_ANALYSIS_AFTER = timedelta(minutes=5)


# ============================================================================
# Pydantic Schemas
# ============================================================================

class DocumentResponse(BaseModel):
    id: int
    organization_id: int
    product_id: Optional[int]
    filename: str
    mime_type: str
    file_size: int
    industry_code: str
    analysis_status: str
    document_type: Optional[str]
    confidence_score: Optional[float]
    extracted_values: Dict[str, Any]
    reviewed_values: Optional[Dict[str, Any]]
    file_summary: Dict[str, Any]
    error_message: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class UploadResponse(BaseModel):
    document: DocumentResponse
    duplicate: bool = False


class ReviewRequest(BaseModel):
    reviewed_values: Dict[str, Any]


class MergeRequest(BaseModel):
    current_data: Dict[str, Any] = Field(default_factory=dict)
    new_fields: Dict[str, Any]
    industry_code: Optional[str] = None
    product_id: Optional[int] = None
    document_ids: List[int] = Field(default_factory=list)


class MergeResponse(BaseModel):
    merged_data: Dict[str, Any]
    product_id: Optional[int] = None


# ============================================================================
# Helpers
# ============================================================================

def get_storage() -> DocumentStorage:
    return DocumentStorage()


def serialize_document(document: DocumentExtraction) -> DocumentResponse:
    status = document.analysis_status or AnalysisStatus.pending
    return DocumentResponse(
        id=document.id,
        organization_id=document.organization_id,
        product_id=document.product_id,
        filename=document.filename,
        mime_type=document.mime_type,
        file_size=document.file_size or 0,
        industry_code=document.industry_code,
        analysis_status=status.value,
        document_type=document.document_type,
        confidence_score=document.confidence_score,
        extracted_values=dict(document.extracted_values or {}),
        reviewed_values=document.reviewed_values,
        file_summary=dict(document.file_summary or {}),
        error_message=document.error_message,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )


def is_stuck_analyzing(document: DocumentExtraction, now: Optional[datetime] = None) -> bool:
    if document.analysis_status != AnalysisStatus.analyzing:
        return False
    touched = document.updated_at or document.created_at
    if touched is None:
        return True
    return (now or datetime.utcnow()) - touched > STUCK_ANALYSIS_AFTER


def uploaded_file_entry(document: DocumentExtraction) -> Dict[str, Any]:
    return {
        "file_id": document.id,
        "filename": document.filename,
        "document_type": document.document_type,
        "mime_type": document.mime_type,
    }


def append_uploaded_files(product_data: Dict[str, Any], documents: List[DocumentExtraction]) -> Dict[str, Any]:
    """Add documents to ``uploaded_files`` without duplicating file ids."""
    data = dict(product_data or {})
    files = [dict(row) for row in data.get(UPLOADED_FILES_FIELD) or [] if isinstance(row, dict)]
    known = {row.get("file_id") for row in files}
    for document in documents:
        if document.id not in known:
            files.append(uploaded_file_entry(document))
            known.add(document.id)
    data[UPLOADED_FILES_FIELD] = files
    return data


async def get_org_document(db: AsyncSession, document_id: int, organization_id: int) -> DocumentExtraction:
    result = await db.execute(
        select(DocumentExtraction).where(
            DocumentExtraction.id == document_id,
            DocumentExtraction.organization_id == organization_id,
            DocumentExtraction.deleted_at.is_(None),
        )
    )
    document = result.scalar_one_or_none()
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


async def is_referenced_by_product(db: AsyncSession, document: DocumentExtraction) -> bool:
    if document.product_id is not None:
        return True
    result = await db.execute(
        select(Product.product_data).where(Product.organization_id == document.organization_id)
    )
    for product_data in result.scalars().all():
        for row in (product_data or {}).get(UPLOADED_FILES_FIELD) or []:
            if isinstance(row, dict) and row.get("file_id") == document.id:
                return True
    return False


def enqueue_extraction(document_id: int) -> None:
    from app.workers.extraction_tasks import run_document_extraction
    run_document_extraction.delay(document_id)


# ============================================================================
# Documents
# ============================================================================

@router.post("", response_model=UploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    product_id: Optional[int] = Form(default=None),
    industry_code: Optional[str] = Form(default=None),
    analyze: bool = Form(default=True),
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
    storage: DocumentStorage = Depends(get_storage),
):
    """Store a document and queue it for extraction.

    Re-uploading identical bytes returns the existing document instead of a copy.
    """
    settings = get_settings()
    mime_type = (file.content_type or "").lower()
    if mime_type not in ALLOWED_MIME_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {mime_type or 'unknown'}")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    try:
        schema = load_industry_schema(industry_code or get_default_industry())
    except UnsupportedIndustryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if product_id is not None:
        result = await db.execute(
            select(Product.id).where(Product.id == product_id, Product.organization_id == organization_id)
        )
        if result.scalar_one_or_none() is None:
            raise HTTPException(status_code=404, detail="Product not found")

    content_sha256 = hashlib.sha256(data).hexdigest()
    result = await db.execute(
        select(DocumentExtraction)
        .where(
            DocumentExtraction.organization_id == organization_id,
            DocumentExtraction.content_sha256 == content_sha256,
            DocumentExtraction.deleted_at.is_(None),
        )
        .order_by(DocumentExtraction.created_at.desc())
    )
    existing = result.scalars().first()
    if existing is not None:
        if is_stuck_analyzing(existing):
            logger.warning("Resetting stuck analysis for document %s", existing.id)
            existing.analysis_status = AnalysisStatus.pending
            existing.error_message = None
            await db.commit()
            await db.refresh(existing)
            if analyze:
                enqueue_extraction(existing.id)
        logger.info("Duplicate upload of %s matched document %s", file.filename, existing.id)
        return UploadResponse(document=serialize_document(existing), duplicate=True)

    filename = file.filename or "document"
    storage_path = build_storage_path(organization_id, filename)
    try:
        await asyncio.to_thread(storage.upload_bytes, storage_path, data, mime_type)
    except StorageError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    document = DocumentExtraction(
        organization_id=organization_id,
        product_id=product_id,
        filename=filename,
        mime_type=mime_type,
        file_size=len(data),
        storage_path=storage_path,
        content_sha256=content_sha256,
        industry_code=schema.code,
        analysis_status=AnalysisStatus.pending,
        extracted_values={},
        file_summary={},
    )
    db.add(document)
    await db.commit()
    await db.refresh(document)

    if analyze:
        enqueue_extraction(document.id)

    return UploadResponse(document=serialize_document(document))


@router.get("", response_model=List[DocumentResponse])
async def list_documents(
    product_id: Optional[int] = None,
    status: Optional[str] = None,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select(DocumentExtraction)
        .where(
            DocumentExtraction.organization_id == organization_id,
            DocumentExtraction.deleted_at.is_(None),
        )
        .order_by(DocumentExtraction.created_at.desc())
    )
    if product_id is not None:
        query = query.where(DocumentExtraction.product_id == product_id)
    if status:
        try:
            query = query.where(DocumentExtraction.analysis_status == AnalysisStatus(status))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    result = await db.execute(query)
    return [serialize_document(row) for row in result.scalars().all()]


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    return serialize_document(await get_org_document(db, document_id, organization_id))


@router.post("/{document_id}:extract", response_model=DocumentResponse)
async def extract_document(
    document_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Queue (re-)extraction of a stored document."""
    document = await get_org_document(db, document_id, organization_id)
    if document.analysis_status == AnalysisStatus.analyzing and not is_stuck_analyzing(document):
        raise HTTPException(status_code=409, detail="Document is already being analyzed")

    document.analysis_status = AnalysisStatus.pending
    document.error_message = None
    await db.commit()
    await db.refresh(document)

    enqueue_extraction(document.id)
    return serialize_document(document)


@router.patch("/{document_id}/review", response_model=DocumentResponse)
async def review_document(
    document_id: int,
    data: ReviewRequest,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Store the merchant-confirmed values for an extracted document."""
    document = await get_org_document(db, document_id, organization_id)
    if document.analysis_status not in (AnalysisStatus.completed, AnalysisStatus.reviewed):
        raise HTTPException(status_code=409, detail="Document has not been analyzed yet")

    document.reviewed_values = data.reviewed_values
    document.analysis_status = AnalysisStatus.reviewed
    document.updated_at = datetime.utcnow()
    await db.commit()
    await db.refresh(document)
    return serialize_document(document)


@router.get("/{document_id}/download")
async def download_document(
    document_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
    storage: DocumentStorage = Depends(get_storage),
):
    document = await get_org_document(db, document_id, organization_id)
    try:
        url = await asyncio.to_thread(
            storage.create_signed_url,
            document.storage_path,
            None,
            document.filename,
        )
    except StorageError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {"url": url, "filename": document.filename, "expires_in": get_settings().signed_url_ttl_seconds}


@router.delete("/{document_id}")
async def delete_document(
    document_id: int,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
    storage: DocumentStorage = Depends(get_storage),
):
    """Delete a document. Documents still attached to a product are only marked deleted."""
    document = await get_org_document(db, document_id, organization_id)
    if await is_referenced_by_product(db, document):
        document.deleted_at = datetime.utcnow()
        await db.commit()
        return {"deleted": True, "soft_deleted": True}

    try:
        await asyncio.to_thread(storage.delete_object, document.storage_path)
    except StorageError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    await db.delete(document)
    await db.commit()
    return {"deleted": True, "soft_deleted": False}


@router.post(":merge", response_model=MergeResponse)
async def merge_documents(
    data: MergeRequest,
    organization_id: int = Depends(get_merchant_org_id),
    db: AsyncSession = Depends(get_db),
):
    """Merge extracted fields into form data, optionally saving them onto a product."""
    product: Optional[Product] = None
    if data.product_id is not None:
        result = await db.execute(
            select(Product).where(Product.id == data.product_id, Product.organization_id == organization_id)
        )
        product = result.scalar_one_or_none()
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")

    industry_code = data.industry_code or (product.industry_code if product else None) or get_default_industry()
    try:
        schema = load_industry_schema(industry_code)
    except UnsupportedIndustryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    current = data.current_data or (dict(product.product_data or {}) if product else {})
    merged = await asyncio.to_thread(merge_product_data, current, data.new_fields, schema)

    if product is None:
        return MergeResponse(merged_data=merged)

    documents: List[DocumentExtraction] = []
    if data.document_ids:
        result = await db.execute(
            select(DocumentExtraction).where(
                DocumentExtraction.id.in_(data.document_ids),
                DocumentExtraction.organization_id == organization_id,
                DocumentExtraction.deleted_at.is_(None),
            )
        )
        documents = list(result.scalars().all())
        missing = set(data.document_ids) - {row.id for row in documents}
        if missing:
            raise HTTPException(status_code=404, detail=f"Documents not found: {sorted(missing)}")
        for document in documents:
            document.product_id = product.id

    values = product_values(merged)
    # File rows only ever come from the product itself and the linked documents.
    values[UPLOADED_FILES_FIELD] = list((product.product_data or {}).get(UPLOADED_FILES_FIELD) or [])
    product_data = product_fields(append_uploaded_files(values, documents), product.product_name, product.category)
    product.product_data = product_data
    product.field_permissions = seed_missing_permissions(
        dict(product.field_permissions or {}),
        product_data,
        schema.default_field_access,
    )
    product.updated_at = datetime.utcnow()
    await db.commit()
    logger.info("Merged %s documents into product %s", len(documents), product.id)
    return MergeResponse(merged_data=product_data, product_id=product.id)
