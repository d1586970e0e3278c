from app.models.base import Base
from app.models.organization import Organization
from app.models.product import Product, ProductStatus
from app.models.document import DocumentExtraction, AnalysisStatus
from app.models.access import ProductAccessToken, ProductAccessLog, ProductAccessAction
from app.models.rfq import ProductRfq, RfqStatus

__all__ = [
    "Base",
    "Organization",
    "Product", "ProductStatus",
    "DocumentExtraction", "AnalysisStatus",
    "ProductAccessToken", "ProductAccessLog", "ProductAccessAction",
    "ProductRfq", "RfqStatus",
]
