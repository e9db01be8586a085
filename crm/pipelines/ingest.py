"""Ingestion for tenants, package catalogs and inbound emails.

Every function takes the tenant id explicitly and filters on it; nothing here
reads tenant context from the request.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..errors import Conflict, InvalidTenant, NotFound, StorageError
from ..tenancy import ensure_active_tenant, is_valid_tenant_id

logger = logging.getLogger(__name__)


async def _commit(session: AsyncSession, what: str) -> None:
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to persist {what}: {e}")
        raise StorageError(f"Failed to persist {what}: {e}") from e


async def register_tenant(
    session: AsyncSession,
    *,
    name: str,
    slug: str,
    tenant_id: str | None = None,
) -> models.Tenant:
    """Create an active tenant.

    Raises:
        InvalidTenant: If the id is malformed or the id/slug is taken
        StorageError: If the insert fails for another reason
    """
    tenant_id = tenant_id or str(uuid.uuid4())
    if not is_valid_tenant_id(tenant_id):
        raise InvalidTenant(f"Invalid tenant id: {tenant_id!r}")

    tenant = models.Tenant(id=tenant_id, name=name, slug=slug)
    session.add(tenant)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise InvalidTenant(f"Tenant {tenant_id} or slug {slug!r} already exists") from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to register tenant {tenant_id}: {e}")
        raise StorageError(f"Failed to register tenant: {e}") from e

    logger.info(f"Registered tenant {tenant_id} ({slug})")
    return tenant


async def create_package(
    session: AsyncSession,
    tenant_id: str,
    *,
    title: str,
    price: float,
    currency: str = "USD",
    destination_city: str | None = None,
    destination_country: str | None = None,
    duration_days: int | None = None,
    capacity: int | None = None,
    available_from: date | None = None,
    available_until: date | None = None,
    status: models.PackageStatus = models.PackageStatus.DRAFT,
) -> models.Package:
    """Add a package to the tenant's catalog."""
    await ensure_active_tenant(session, tenant_id)

    package = models.Package(
        tenant_id=tenant_id,
        title=title,
        price=price,
        currency=currency.upper(),
        destination_city=destination_city,
        destination_country=destination_country,
        duration_days=duration_days,
        capacity=capacity,
        available_from=available_from,
        available_until=available_until,
        status=models.PackageStatus(status).value,
    )
    session.add(package)
    await _commit(session, "package")

    logger.info(f"Created package {package.id} for tenant {tenant_id}")
    return package


async def list_packages(
    session: AsyncSession,
    tenant_id: str,
    *,
    status: models.PackageStatus | None = None,
) -> list[models.Package]:
    """List the tenant's packages, optionally by status."""
    query = select(models.Package).where(models.Package.tenant_id == tenant_id)
    if status is not None:
        query = query.where(models.Package.status == models.PackageStatus(status).value)
    query = query.order_by(models.Package.id)

    try:
        result = await session.execute(query)
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to list packages: {e}") from e
    return list(result.scalars().all())


async def set_package_status(
    session: AsyncSession,
    tenant_id: str,
    package_id: int,
    status: models.PackageStatus,
) -> models.Package:
    """Move a package between draft, active and archived.

    Raises:
        NotFound: If the package is not in the tenant's catalog
    """
    try:
        result = await session.execute(
            select(models.Package).where(
                models.Package.id == package_id,
                models.Package.tenant_id == tenant_id,
            )
        )
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to load package: {e}") from e

    package = result.scalar_one_or_none()
    if package is None:
        raise NotFound(f"Package {package_id} not found")

    package.status = models.PackageStatus(status).value
    await _commit(session, "package status")
    return package


async def record_email(
    session: AsyncSession,
    tenant_id: str,
    *,
    message_id: str,
    from_email: str,
    subject: str,
    body_text: str = "",
    extracted_data: Mapping[str, Any] | None = None,
    received_at: datetime | None = None,
) -> models.EmailRecord:
    """Store an inbound email together with its upstream extraction.

    Raises:
        InvalidTenant: If the tenant is unknown or inactive
        Conflict: If the tenant already recorded this Message-ID
        StorageError: If the insert fails for another reason
    """
    await ensure_active_tenant(session, tenant_id)

    email = models.EmailRecord(
        tenant_id=tenant_id,
        message_id=message_id,
        from_email=from_email,
        subject=subject,
        body_text=body_text,
        extracted_data=dict(extracted_data) if extracted_data is not None else None,
        received_at=received_at or datetime.utcnow(),
        match_results=[],
    )
    session.add(email)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.info(f"Duplicate email {message_id!r} for tenant {tenant_id}")
        raise Conflict(f"Email {message_id} already recorded") from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to persist email: {e}")
        raise StorageError(f"Failed to persist email: {e}") from e

    logger.info(f"Recorded email {email.id} for tenant {tenant_id}")
    return email


async def get_email(
    session: AsyncSession,
    email_id: int,
    tenant_id: str,
) -> models.EmailRecord:
    """Load an email within the tenant.

    Raises:
        NotFound: If no such email exists for that tenant
    """
    try:
        result = await session.execute(
            select(models.EmailRecord).where(
                models.EmailRecord.id == email_id,
                models.EmailRecord.tenant_id == tenant_id,
            )
        )
    except SQLAlchemyError as e:
        raise StorageError(f"Failed to load email: {e}") from e

    email = result.scalar_one_or_none()
    if email is None:
        raise NotFound(f"Email {email_id} not found")
    return email
