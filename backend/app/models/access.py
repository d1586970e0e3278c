"""Channel access tokens, page access logs and tracked visitor actions."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime

from app.models.base import Base


class ProductAccessToken(Base):
    """Tokenized channel link. Only the SHA-256 hash of the token is stored."""
    __tablename__ = "product_access_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)

    channel_id = Column(String(120), nullable=False)
    channel_name = Column(String(255), nullable=True)
    access_level = Column(String(20), nullable=False)  # public | after_click | after_rfq

    expires_at = Column(DateTime, nullable=True)
    bound_ip = Column(String(64), nullable=True)
    created_by = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    is_revoked = Column(Boolean, default=False)

    # Usage
    use_count = Column(Integer, default=0)
    first_used_at = Column(DateTime, nullable=True)
    last_used_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    product = relationship("Product", back_populates="access_tokens")


class ProductAccessLog(Base):
    """One row per product page visit."""
    __tablename__ = "product_access_logs"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)

    access_method = Column(String(20), nullable=False)  # url | qr_code
    access_level = Column(String(20), default="public")
    channel_id = Column(String(120), nullable=True)
    channel_name = Column(String(255), nullable=True)
    token_id = Column(Integer, ForeignKey("product_access_tokens.id"), nullable=True)

    session_id = Column(String(255), nullable=False, index=True)
    visitor_id = Column(String(255), nullable=True, index=True)
    is_unique_visit = Column(Boolean, default=True)

    # Request context
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(1000), nullable=True)
    referrer = Column(String(1000), nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    country_code = Column(String(8), nullable=True)
    city = Column(String(255), nullable=True)
    device_type = Column(String(50), nullable=True)

    accessed_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    product = relationship("Product", back_populates="access_logs")
    actions = relationship("ProductAccessAction", back_populates="access_log", cascade="all, delete-orphan")


class ProductAccessAction(Base):
    __tablename__ = "product_access_actions"

    id = Column(Integer, primary_key=True, index=True)
    access_id = Column(Integer, ForeignKey("product_access_logs.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)

    action_type = Column(String(50), nullable=False)
    action_target = Column(String(255), nullable=True)
    action_metadata = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    access_log = relationship("ProductAccessLog", back_populates="actions")
