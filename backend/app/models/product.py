"""Product model - a published (or draft) catalog page with tiered field access."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.models.base import Base


class ProductStatus(enum.Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    industry_code = Column(String(64), nullable=False, default="food_supplement")

    product_name = Column(String(255), nullable=False)
    category = Column(String(255), nullable=True)
    slug = Column(String(300), nullable=False, unique=True, index=True)
    status = Column(Enum(ProductStatus), default=ProductStatus.draft)

    # Field values keyed by the industry field catalog, plus "uploaded_files"
    product_data = Column(JSON, default=dict)
    # {"field_name": "public" | "after_click" | "after_rfq"}
    field_permissions = Column(JSON, default=dict)
    # [{"id": "email", "name": "Email Default", "parameter": "ch=email", "enabled": true}, ...]
    channel_links = Column(JSON, default=list)

    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="products")
    access_tokens = relationship("ProductAccessToken", back_populates="product", cascade="all, delete-orphan")
    access_logs = relationship("ProductAccessLog", back_populates="product", cascade="all, delete-orphan")
    rfqs = relationship("ProductRfq", back_populates="product", cascade="all, delete-orphan")
