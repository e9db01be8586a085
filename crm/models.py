"""Core SQLAlchemy models (2.x style) for the CRM schema.

Every tenant-owned table carries a non-null, indexed tenant_id and all reads
filter on it.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import JSON, Date, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class TenantStatus(str, Enum):
    """Tenant account status."""
    ACTIVE = "active"
    SUSPENDED = "suspended"


class PackageStatus(str, Enum):
    """Package lifecycle status."""
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class Tenant(Base):
    """Agency accounts."""
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default=TenantStatus.ACTIVE.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    packages: Mapped[list[Package]] = relationship("Package", back_populates="tenant")
    emails: Mapped[list[EmailRecord]] = relationship("EmailRecord", back_populates="tenant")


class Package(Base):
    """Sellable itinerary packages, one catalog per tenant."""
    __tablename__ = "packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    destination_city: Mapped[str | None] = mapped_column(String(255))
    destination_country: Mapped[str | None] = mapped_column(String(255))
    price: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    duration_days: Mapped[int | None] = mapped_column(Integer)
    capacity: Mapped[int | None] = mapped_column(Integer)
    available_from: Mapped[date | None] = mapped_column(Date)
    available_until: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default=PackageStatus.DRAFT.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationship
    tenant: Mapped[Tenant] = relationship("Tenant", back_populates="packages")

    __table_args__ = (
        Index("ix_packages_tenant_status", "tenant_id", "status"),
    )

    @property
    def destination_label(self) -> str:
        """City when known, otherwise country."""
        return self.destination_city or self.destination_country or ""


class EmailRecord(Base):
    """Inbound emails with their upstream extraction and last match run."""
    __tablename__ = "email_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    from_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(998), nullable=False)
    body_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    received_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    extracted_data: Mapped[dict | None] = mapped_column(JSON)
    match_results: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    matched_at: Mapped[datetime | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    # Relationship
    tenant: Mapped[Tenant] = relationship("Tenant", back_populates="emails")

    __table_args__ = (
        Index("ix_email_records_tenant_received", "tenant_id", "received_at"),
        UniqueConstraint("tenant_id", "message_id", name="uq_email_records_tenant_message"),
    )
