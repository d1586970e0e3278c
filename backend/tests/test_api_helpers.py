import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from app.api.deps import get_merchant_org_id, raise_validation_error
from app.api.documents import append_uploaded_files, is_stuck_analyzing
from app.api.products import permission_fields, seed_missing_permissions, slugify, status_change
from app.api.public import product_file_query
from app.models.document import AnalysisStatus
from app.models.product import ProductStatus
from app.services.access.defaults import UnknownFieldError
from app.services.access.levels import InvalidAccessLevelError
from app.services.industries import load_industry_schema


def test_slugify_is_url_safe_and_unique():
    slug = slugify("Vitamin C (Ascorbic Acid) 99%")
    assert slug.startswith("vitamin-c-ascorbic-acid-99-")
    assert len(slug.rsplit("-", 1)[-1]) == 6
    assert slugify("Vitamin C") != slugify("Vitamin C")
    assert slugify("!!!").startswith("product-")


def test_seed_missing_permissions_keeps_existing_levels():
    permissions = seed_missing_permissions(
        {"price": "public"},
        {"product_name": "Vitamin C", "price": 10, "cas_number": "50-81-7"},
    )
    assert permissions["price"] == "public"
    assert permissions["cas_number"] == "after_click"
    assert permissions["moq"] == "after_rfq"
    assert permissions["uploaded_files"] == "public"
    assert permissions["product_name"] == "public"


def test_permission_fields_allow_catalog_and_custom_product_fields():
    schema = load_industry_schema("food_supplement")
    fields = permission_fields(schema, {"custom_spec": "x"})
    assert "custom_spec" in fields
    assert "assay_min" in fields
    assert "bogus" not in fields


def test_validation_errors_map_to_422():
    with pytest.raises(HTTPException) as excinfo:
        raise_validation_error(UnknownFieldError(["bogus"]))
    assert excinfo.value.status_code == 422
    assert excinfo.value.detail["unknown_fields"] == ["bogus"]

    with pytest.raises(HTTPException) as excinfo:
        raise_validation_error(InvalidAccessLevelError("vip"))
    assert excinfo.value.status_code == 422
    assert excinfo.value.detail["invalid_level"] == "vip"


def test_merchant_org_header_is_required():
    assert asyncio.run(get_merchant_org_id("42")) == 42
    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(get_merchant_org_id(None))
    assert excinfo.value.status_code == 401
    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(get_merchant_org_id("acme"))
    assert excinfo.value.status_code == 400


def test_stuck_analysis_detection():
    now = datetime(2026, 5, 1, 12, 0)
    recent = SimpleNamespace(analysis_status=AnalysisStatus.analyzing, updated_at=now - timedelta(minutes=2), created_at=None)
    stale = SimpleNamespace(analysis_status=AnalysisStatus.analyzing, updated_at=now - timedelta(minutes=6), created_at=None)
    done = SimpleNamespace(analysis_status=AnalysisStatus.completed, updated_at=now - timedelta(hours=1), created_at=None)
    assert is_stuck_analyzing(recent, now=now) is False
    assert is_stuck_analyzing(stale, now=now) is True
    assert is_stuck_analyzing(done, now=now) is False


def test_append_uploaded_files_dedupes_by_file_id():
    existing = {"uploaded_files": [{"file_id": 1, "filename": "coa.pdf", "document_type": "COA", "mime_type": "application/pdf"}]}
    documents = [
        SimpleNamespace(id=1, filename="coa.pdf", document_type="COA", mime_type="application/pdf"),
        SimpleNamespace(id=2, filename="tds.docx", document_type="TDS", mime_type="application/msword"),
    ]
    data = append_uploaded_files(existing, documents)
    assert [row["file_id"] for row in data["uploaded_files"]] == [1, 2]
    assert data["uploaded_files"][1]["filename"] == "tds.docx"
    assert len(existing["uploaded_files"]) == 1


def test_patch_cannot_publish_a_draft():
    with pytest.raises(HTTPException) as excinfo:
        status_change(ProductStatus.draft, "published")
    assert excinfo.value.status_code == 409


def test_patch_status_changes():
    assert status_change(ProductStatus.published, "archived") is ProductStatus.archived
    assert status_change(ProductStatus.published, "published") is ProductStatus.published
    assert status_change(ProductStatus.draft, "archived") is ProductStatus.archived
    with pytest.raises(HTTPException) as excinfo:
        status_change(ProductStatus.draft, "live")
    assert excinfo.value.status_code == 400


def test_public_file_lookup_excludes_soft_deleted_documents():
    sql = str(product_file_query(SimpleNamespace(organization_id=1), 3))
    assert "document_extractions.deleted_at IS NULL" in sql
    assert "document_extractions.organization_id" in sql
