"""Uploaded product documents and their AI extraction results."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, ForeignKey, Enum, Float
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.models.base import Base


class AnalysisStatus(enum.Enum):
    pending = "pending"
    analyzing = "analyzing"
    completed = "completed"
    failed = "failed"
    reviewed = "reviewed"


class DocumentExtraction(Base):
    __tablename__ = "document_extractions"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)

    # File
    filename = Column(String(500), nullable=False)
    mime_type = Column(String(255), nullable=False)
    file_size = Column(Integer, default=0)
    storage_path = Column(String(1000), nullable=False)
    content_sha256 = Column(String(64), nullable=True, index=True)
    industry_code = Column(String(64), nullable=False, default="food_supplement")

    # Extraction
    analysis_status = Column(Enum(AnalysisStatus), default=AnalysisStatus.pending)
    document_type = Column(String(100), nullable=True)  # COA, TDS, MSDS, ...
    confidence_score = Column(Float, nullable=True)
    extracted_values = Column(JSON, default=dict)  # flat "group.field" keys + "_grouped"
    reviewed_values = Column(JSON, nullable=True)  # merchant-confirmed subset
    file_summary = Column(JSON, default=dict)
    raw_extracted_data = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="documents")
    product = relationship("Product")
