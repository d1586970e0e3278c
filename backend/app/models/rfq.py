"""Request-for-quote submissions from product pages."""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.models.base import Base


class RfqStatus(enum.Enum):
    new = "new"
    responded = "responded"
    closed = "closed"


class ProductRfq(Base):
    __tablename__ = "product_rfqs"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    access_id = Column(Integer, ForeignKey("product_access_logs.id"), nullable=True)

    # Buyer
    name = Column(String(255), nullable=False)
    email = Column(String(320), nullable=False, index=True)
    company = Column(String(255), nullable=False)
    phone = Column(String(64), nullable=True)

    message = Column(Text, nullable=False)
    quantity = Column(String(120), nullable=True)
    target_date = Column(String(64), nullable=True)

    status = Column(Enum(RfqStatus), default=RfqStatus.new)
    response_message = Column(Text, nullable=True)
    responded_at = Column(DateTime, nullable=True)
    responded_by = Column(String(255), nullable=True)
    submitted_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    product = relationship("Product", back_populates="rfqs")
