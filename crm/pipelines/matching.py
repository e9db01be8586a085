"""Matching pipeline: Extraction → tenant package catalog, scored and ranked.

Reads only. Persisting the ranked list is a separate step (see results.py).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crm import models
from crm.config import MatchingSettings, settings
from crm.errors import StorageError
from crm.extraction import Extraction
from crm.rules import CriterionConfig, CriterionType, PackageLike, PackageScore, ScoringEngine
from crm.tenancy import ensure_active_tenant

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """One ranked package, with a snapshot of the package at match time."""
    package_id: int
    score: int
    itinerary_title: str
    destination: str
    price: float
    currency: str
    duration: int | None
    match_reasons: list[str] = field(default_factory=list)
    gaps: list[str] = field(default_factory=list)
    breakdown: dict[str, int] = field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        """Shape stored on the email record."""
        return {
            "packageId": self.package_id,
            "score": self.score,
            "itineraryTitle": self.itinerary_title,
            "destination": self.destination,
            "price": self.price,
            "currency": self.currency,
            "duration": self.duration,
            "matchReasons": list(self.match_reasons),
            "gaps": list(self.gaps),
            "breakdown": dict(self.breakdown),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> MatchResult:
        return cls(
            package_id=doc["packageId"],
            score=doc["score"],
            itinerary_title=doc.get("itineraryTitle", ""),
            destination=doc.get("destination", ""),
            price=doc.get("price", 0.0),
            currency=doc.get("currency", settings.matching.default_currency),
            duration=doc.get("duration"),
            match_reasons=list(doc.get("matchReasons", [])),
            gaps=list(doc.get("gaps", [])),
            breakdown=dict(doc.get("breakdown", {})),
        )


def load_criteria(config: MatchingSettings | None = None) -> list[CriterionConfig]:
    """Build the criteria list from matching settings.

    The list order is the evaluation order, and therefore the order of the
    reasons attached to each match.

    Args:
        config: Matching settings (default from config)

    Returns:
        List of CriterionConfig objects
    """
    config = config or settings.matching

    criteria = [
        CriterionConfig(
            id="destination",
            name="Destination",
            type=CriterionType.DESTINATION,
            weight=config.weight_destination,
            label="Destination matches",
            required=config.destination_required,
        ),
        CriterionConfig(
            id="budget",
            name="Budget fit",
            type=CriterionType.BUDGET,
            weight=config.weight_budget,
            label="Within budget",
            params={"exchange_rates": dict(config.exchange_rates)},
        ),
        CriterionConfig(
            id="duration",
            name="Duration fit",
            type=CriterionType.DURATION,
            weight=config.weight_duration,
            label="Duration matches",
            params={"tolerance_days": config.duration_tolerance_days},
        ),
        CriterionConfig(
            id="dates",
            name="Date availability",
            type=CriterionType.DATES,
            weight=config.weight_dates,
            label="Available for requested dates",
        ),
        CriterionConfig(
            id="capacity",
            name="Group size",
            type=CriterionType.CAPACITY,
            weight=config.weight_capacity,
            label="Fits group size",
        ),
    ]
    return criteria


def _snapshot(package: PackageLike, result: PackageScore) -> MatchResult:
    return MatchResult(
        package_id=package.id,
        score=result.score,
        itinerary_title=package.title,
        destination=package.destination_label,
        price=package.price,
        currency=package.currency,
        duration=package.duration_days,
        match_reasons=result.reasons,
        gaps=result.gaps,
        breakdown=result.breakdown,
    )


def rank_packages(
    extraction: Extraction,
    packages: Iterable[PackageLike],
    tenant_id: str,
    *,
    engine: ScoringEngine | None = None,
    limit: int | None = None,
) -> list[MatchResult]:
    """Score, filter and order packages for one extraction.

    Packages of any other tenant are dropped before scoring. Packages that
    score 0 or fail a required criterion are excluded. Order is score
    descending, then price ascending, then package id ascending.

    Args:
        extraction: Requested trip
        packages: Candidate packages
        tenant_id: Tenant the extraction belongs to
        engine: Scoring engine (default built from settings)
        limit: Maximum results (default from config)

    Returns:
        Ordered list of MatchResult, possibly empty
    """
    engine = engine or ScoringEngine(load_criteria())
    if limit is None:
        limit = settings.matching.max_results

    scored: list[tuple[PackageLike, PackageScore]] = []
    for package in packages:
        if package.tenant_id != tenant_id:
            logger.warning(
                f"Dropping package {package.id} of tenant {package.tenant_id} "
                f"from matching for tenant {tenant_id}"
            )
            continue

        result = engine.score(extraction, package)
        if not result.eligible:
            logger.debug(f"Package {package.id} excluded by a required criterion")
            continue
        if result.score <= 0:
            continue
        scored.append((package, result))

    scored.sort(key=lambda item: (-item[1].score, item[0].price, item[0].id))

    return [_snapshot(package, result) for package, result in scored[:limit]]


async def load_active_packages(
    session: AsyncSession,
    tenant_id: str,
) -> list[models.Package]:
    """Load the tenant's active packages.

    Raises:
        StorageError: If the query fails
    """
    query = (
        select(models.Package)
        .where(
            models.Package.tenant_id == tenant_id,
            models.Package.status == models.PackageStatus.ACTIVE.value,
        )
        .order_by(models.Package.id)
    )
    try:
        result = await session.execute(query)
    except SQLAlchemyError as e:
        logger.error(f"Loading packages for tenant {tenant_id} failed: {e}")
        raise StorageError(f"Failed to load packages: {e}") from e
    return list(result.scalars().all())


async def match_email(
    session: AsyncSession,
    extraction: Extraction,
    tenant_id: str,
    *,
    limit: int | None = None,
) -> list[MatchResult]:
    """Match an extraction against the tenant's active catalog.

    Workflow:
    1. Validate the tenant
    2. Load active packages for that tenant only
    3. Score each package criterion by criterion
    4. Drop ineligible and zero-score packages, sort, truncate

    Args:
        session: Database session
        extraction: Requested trip, any subset of fields
        tenant_id: Owning tenant of the extraction's email
        limit: Maximum results (default from config)

    Returns:
        Ordered list of MatchResult; empty when nothing matches

    Raises:
        InvalidTenant: If the tenant is empty, unknown or inactive
        StorageError: If the catalog cannot be read
    """
    await ensure_active_tenant(session, tenant_id)

    notice = extraction.completeness()
    if notice is not None:
        logger.info(f"Matching for tenant {tenant_id}: {notice}")

    packages = await load_active_packages(session, tenant_id)
    if not packages:
        logger.info(f"No active packages for tenant {tenant_id}")
        return []

    matches = rank_packages(extraction, packages, tenant_id, limit=limit)

    logger.info(
        f"Scored {len(packages)} packages for tenant {tenant_id}, "
        f"returning {len(matches)} matches"
    )
    return matches
