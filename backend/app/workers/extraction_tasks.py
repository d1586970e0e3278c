"""Celery tasks for document extraction and transactional email."""
import logging
from typing import Optional

from app.workers.celery_app import celery_app
from app.config import get_settings
from app.models.base import SyncSessionLocal
from app.models.document import AnalysisStatus, DocumentExtraction
from app.models.organization import Organization
from app.models.product import Product
from app.models.rfq import ProductRfq
from app.services.access.tokens import build_public_url, product_path
from app.services.extraction.cache import ExtractionCache
from app.services.extraction.pipeline import USER_FACING_FAILURE, DocumentExtractionPipeline
from app.services.notifications import (
    NotificationError,
    render_access_link_email,
    render_rfq_notification,
    send_email,
)

logger = logging.getLogger(__name__)

_pipeline: Optional[DocumentExtractionPipeline] = None


def get_pipeline() -> DocumentExtractionPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = DocumentExtractionPipeline(cache=ExtractionCache())
    return _pipeline


@celery_app.task(name="app.workers.extraction_tasks.run_document_extraction")
def run_document_extraction(document_id: int):
    """Analyze one uploaded document and persist the extracted values."""
    db = SyncSessionLocal()
    try:
        document = db.query(DocumentExtraction).filter(DocumentExtraction.id == document_id).first()
        if not document:
            return {"error": "Document not found"}
        if document.deleted_at is not None:
            return {"error": "Document deleted"}

        try:
            document = get_pipeline().extract(db, document)
        except Exception as e:
            logger.exception("Unexpected extraction error for document %s", document_id)
            db.rollback()
            document = db.query(DocumentExtraction).filter(DocumentExtraction.id == document_id).first()
            if document:
                document.analysis_status = AnalysisStatus.failed
                document.error_message = USER_FACING_FAILURE
                db.commit()
            return {"error": str(e)}

        if document.analysis_status == AnalysisStatus.failed:
            return {"error": document.error_message}
        return {
            "success": True,
            "document_id": document.id,
            "document_type": document.document_type,
            "field_count": len(document.extracted_values or {}),
        }
    finally:
        db.close()


@celery_app.task(name="app.workers.extraction_tasks.send_rfq_notification_email")
def send_rfq_notification_email(rfq_id: int):
    """Tell the product owner about a new RFQ. Failures are logged, never retried."""
    settings = get_settings()
    db = SyncSessionLocal()
    try:
        rfq = db.query(ProductRfq).filter(ProductRfq.id == rfq_id).first()
        if not rfq:
            return {"error": "RFQ not found"}
        product = db.query(Product).filter(Product.id == rfq.product_id).first()
        organization = db.query(Organization).filter(Organization.id == rfq.organization_id).first()
        if not product or not organization:
            return {"error": "Product not found"}
        if not organization.notification_email:
            logger.warning("Organization %s has no notification email; RFQ %s not sent", organization.id, rfq.id)
            return {"error": "No notification email configured"}

        email = render_rfq_notification(
            product_name=product.product_name,
            rfq={
                "name": rfq.name,
                "email": rfq.email,
                "company": rfq.company,
                "phone": rfq.phone,
                "message": rfq.message,
                "quantity": rfq.quantity,
                "target_date": rfq.target_date,
            },
            product_url=build_public_url(product_path(product.slug)),
            dashboard_url=f"{settings.public_app_url.rstrip('/')}/dashboard/rfqs/{rfq.id}",
        )
        try:
            message_id = send_email(organization.notification_email, email, reply_to=rfq.email)
        except NotificationError as e:
            logger.error("RFQ %s notification failed: %s", rfq.id, e)
            return {"error": str(e)}
        return {"success": True, "message_id": message_id}
    finally:
        db.close()


@celery_app.task(name="app.workers.extraction_tasks.send_access_link_email")
def send_access_link_email(to: str, product_name: str, url: str, expires_in_days: Optional[int] = None):
    email = render_access_link_email(product_name=product_name, url=url, expires_in_days=expires_in_days)
    try:
        message_id = send_email(to, email)
    except NotificationError as e:
        logger.error("Access link email for %s failed: %s", product_name, e)
        return {"error": str(e)}
    return {"success": True, "message_id": message_id}
