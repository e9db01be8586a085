"""Match result persistence on email records.

Each save replaces the stored list in full, in a single commit. Concurrent
saves for the same email are last-write-wins.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crm import models
from crm.errors import NotFound, StorageError, TenantMismatch
from crm.extraction import Extraction
from crm.pipelines.matching import MatchResult, match_email

logger = logging.getLogger(__name__)


async def _load_email(session: AsyncSession, email_id: int) -> models.EmailRecord | None:
    try:
        result = await session.execute(
            select(models.EmailRecord).where(models.EmailRecord.id == email_id)
        )
    except SQLAlchemyError as e:
        logger.error(f"Loading email {email_id} failed: {e}")
        raise StorageError(f"Failed to load email: {e}") from e
    return result.scalar_one_or_none()


async def get_owned_email(
    session: AsyncSession,
    email_id: int,
    tenant_id: str,
) -> models.EmailRecord:
    """Load an email that must belong to `tenant_id`.

    Raises:
        NotFound: If the email does not exist
        TenantMismatch: If it belongs to another tenant
        StorageError: If the lookup fails
    """
    email = await _load_email(session, email_id)
    if email is None:
        raise NotFound(f"Email {email_id} not found")
    if email.tenant_id != tenant_id:
        logger.warning(f"Email {email_id} requested by tenant {tenant_id} belongs to another tenant")
        raise TenantMismatch(f"Email {email_id} does not belong to tenant {tenant_id}")
    return email


async def save_matches(
    session: AsyncSession,
    email_id: int,
    tenant_id: str,
    results: Sequence[MatchResult],
) -> None:
    """Replace the email's stored match results.

    Idempotent: saving the same list twice leaves the same state. On failure
    the transaction is rolled back and the previous list stays in place.

    Args:
        session: Database session
        email_id: Email record id
        tenant_id: Tenant the caller acts for
        results: Ordered results to store

    Raises:
        NotFound: If the email does not exist
        TenantMismatch: If the email belongs to another tenant
        StorageError: If the write fails
    """
    email = await get_owned_email(session, email_id, tenant_id)

    try:
        email.match_results = [r.to_document() for r in results]
        email.matched_at = datetime.utcnow()
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Saving matches for email {email_id} failed: {e}")
        raise StorageError(f"Match result persistence failed: {e}") from e

    logger.info(f"Saved {len(results)} matches for email {email_id}")


async def get_matches(
    session: AsyncSession,
    email_id: int,
    tenant_id: str,
) -> list[MatchResult]:
    """Return the most recently saved results, [] if never matched.

    Raises:
        NotFound: If the email does not exist for that tenant
        StorageError: If the lookup fails
    """
    email = await _load_email(session, email_id)
    if email is None or email.tenant_id != tenant_id:
        raise NotFound(f"Email {email_id} not found")
    return [MatchResult.from_document(doc) for doc in email.match_results or []]


async def match_and_save(
    session: AsyncSession,
    email_id: int,
    tenant_id: str,
    *,
    limit: int | None = None,
) -> list[MatchResult]:
    """Match an email's extraction against its tenant catalog and store the result.

    Raises:
        NotFound: If the email does not exist
        TenantMismatch: If the email belongs to another tenant
        InvalidTenant: If the tenant is not valid
        StorageError: If reading or writing fails
    """
    email = await get_owned_email(session, email_id, tenant_id)
    extraction = Extraction.from_document(email.extracted_data)

    results = await match_email(session, extraction, tenant_id, limit=limit)
    await save_matches(session, email_id, tenant_id, results)
    return results
