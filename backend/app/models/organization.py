"""Organization model - the supplier that owns products and documents."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime

from app.models.base import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=True)
    notification_email = Column(String(320), nullable=True)  # RFQ notifications go here
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    products = relationship("Product", back_populates="organization", cascade="all, delete-orphan")
    documents = relationship("DocumentExtraction", back_populates="organization", cascade="all, delete-orphan")
