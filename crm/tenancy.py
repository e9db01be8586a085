"""Tenant context resolution.

A request names its tenant through the tenant header, through the
authenticated principal, or both. Resolution is pure; checking that the
tenant exists is a separate, explicit database step.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .config import settings
from .errors import InvalidTenant, StorageError, TenantResolutionError

logger = logging.getLogger(__name__)

_TENANT_ID_RE = re.compile(settings.tenancy.id_pattern)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as set on request.state by the auth layer."""
    user_id: str
    tenant_id: str | None = None


def is_valid_tenant_id(tenant_id: str | None) -> bool:
    return bool(tenant_id) and _TENANT_ID_RE.match(tenant_id) is not None


def resolve_tenant(
    header_values: Iterable[str] | None,
    claim_tenant_id: str | None = None,
) -> str:
    """Resolve exactly one tenant id.

    Args:
        header_values: Every value received for the tenant header
        claim_tenant_id: Tenant id carried by the authenticated principal

    Returns:
        The tenant id

    Raises:
        TenantResolutionError: If the tenant is missing, ambiguous,
            mismatched or malformed
    """
    candidates: list[str] = []
    for raw in header_values or ():
        for part in raw.split(","):
            part = part.strip()
            if part and part not in candidates:
                candidates.append(part)

    if len(candidates) > 1:
        raise TenantResolutionError(
            "ambiguous",
            f"Multiple tenant ids supplied: {', '.join(candidates)}",
        )

    header_tenant = candidates[0] if candidates else None
    claim = claim_tenant_id.strip() if claim_tenant_id else None

    if header_tenant and claim and header_tenant != claim:
        raise TenantResolutionError(
            "mismatched",
            "Tenant header does not match the authenticated tenant",
        )

    tenant_id = header_tenant or claim
    if not tenant_id:
        raise TenantResolutionError("missing", "No tenant supplied")

    if not is_valid_tenant_id(tenant_id):
        raise TenantResolutionError("malformed", f"Malformed tenant id: {tenant_id!r}")

    return tenant_id


async def ensure_active_tenant(session: AsyncSession, tenant_id: str) -> models.Tenant:
    """Load an active tenant or fail.

    Raises:
        InvalidTenant: If the id is empty, unknown or the tenant is not active
        StorageError: If the lookup fails
    """
    if not is_valid_tenant_id(tenant_id):
        raise InvalidTenant(f"Invalid tenant id: {tenant_id!r}")

    try:
        result = await session.execute(select(models.Tenant).where(models.Tenant.id == tenant_id))
        tenant = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Tenant lookup failed for {tenant_id}: {e}")
        raise StorageError(f"Tenant lookup failed: {e}") from e

    if tenant is None:
        raise InvalidTenant(f"Unknown tenant: {tenant_id}")
    if tenant.status != models.TenantStatus.ACTIVE.value:
        raise InvalidTenant(f"Tenant {tenant_id} is {tenant.status}")
    return tenant
