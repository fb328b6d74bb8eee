"""
Database Models

Two tables back the pipeline:

- ApiSettings: per-account fee configuration and source credentials
- ApiCache: one cached aggregated snapshot per (identity, date range)

Column types stay portable (JSON instead of JSONB, string ids) so the same
models run on PostgreSQL in production and SQLite in tests.
"""

from datetime import datetime
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


class ApiSettings(Base):
    """
    Account Settings Table

    One row per user (optionally scoped to a company or vendor) holding
    the fee policy switches and upstream credentials.
    """
    __tablename__ = "api_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(32), default="user")
    company_id: Mapped[Optional[str]] = mapped_column(String(64))
    vendor_id: Mapped[Optional[str]] = mapped_column(String(64))

    # Fee policy
    payment_gateway_enabled: Mapped[Optional[bool]] = mapped_column(Boolean, default=True)
    payment_gateway_fee: Mapped[Optional[float]] = mapped_column(Float, default=2.0)
    marketer_enabled: Mapped[Optional[bool]] = mapped_column(Boolean, default=False)
    marketer_type: Mapped[Optional[str]] = mapped_column(String(20), default="percentage")
    marketer_value: Mapped[Optional[float]] = mapped_column(Float, default=0.0)
    cod_remittance_fee: Mapped[Optional[float]] = mapped_column(Float, default=0.49)
    cod_fee_on_delivery_only: Mapped[Optional[bool]] = mapped_column(Boolean, default=False)

    # Orders source
    shopify_store_url: Mapped[Optional[str]] = mapped_column(String(255))
    shopify_access_token: Mapped[Optional[str]] = mapped_column(Text)

    # Shipments source
    shiprocket_email: Mapped[Optional[str]] = mapped_column(String(255))
    shiprocket_password: Mapped[Optional[str]] = mapped_column(Text)

    # Ads source
    facebook_access_token: Mapped[Optional[str]] = mapped_column(Text)
    facebook_ad_account_id: Mapped[Optional[str]] = mapped_column(String(64))
    facebook_app_id: Mapped[Optional[str]] = mapped_column(String(64))
    facebook_app_secret: Mapped[Optional[str]] = mapped_column(Text)

    # Audit
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_api_settings_user", "user_id"),
    )


class ApiCache(Base):
    """
    Snapshot Cache Table

    Upserted on every pipeline write; rows past ``expires_at`` are misses
    and are removed by the refresh job's purge step.
    """
    __tablename__ = "api_cache"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    identity_key: Mapped[str] = mapped_column(String(200), nullable=False)
    cache_key: Mapped[str] = mapped_column(String(64), nullable=False)
    cache_data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    cached_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("identity_key", "cache_key", name="uq_api_cache_identity_key"),
        Index("ix_api_cache_expires_at", "expires_at"),
    )
