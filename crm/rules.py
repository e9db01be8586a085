"""Criterion engine for config-driven package scoring.

Each criterion compares one extraction field with one package attribute and
either adds its full weight (PASS), adds nothing (FAIL), or is not evaluable
because a side of the comparison is missing (SKIP). Every evaluation leaves a
trace so that scores can be explained.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Protocol

from .destinations import DestinationMatcher
from .extraction import Extraction

logger = logging.getLogger(__name__)


class CriterionType(str, Enum):
    """Criterion types, in their default evaluation order."""
    DESTINATION = "destination"
    BUDGET = "budget"
    DURATION = "duration"
    DATES = "dates"
    CAPACITY = "capacity"


class RuleStatus(str, Enum):
    """Criterion evaluation status."""
    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"


class PackageLike(Protocol):
    """Attributes the engine reads from a package."""
    id: int
    tenant_id: str
    title: str
    destination_city: str | None
    destination_country: str | None
    price: float
    currency: str
    duration_days: int | None
    capacity: int | None
    available_from: date | None
    available_until: date | None

    @property
    def destination_label(self) -> str: ...


@dataclass
class RuleTrace:
    """Audit trace for a single criterion evaluation."""
    rule_id: str
    name: str
    status: RuleStatus
    reason: str
    points: int = 0


@dataclass
class CriterionConfig:
    """Configuration for a single criterion.

    `label` is the reason appended to a match when the criterion passes.
    A `required` criterion that FAILs removes the package from the results.
    """
    id: str
    name: str
    type: CriterionType
    weight: int
    label: str
    required: bool = False
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class PackageScore:
    """Outcome of scoring one package."""
    score: int
    traces: list[RuleTrace]
    eligible: bool = True

    @property
    def reasons(self) -> list[str]:
        return [t.reason for t in self.traces if t.status == RuleStatus.PASS]

    @property
    def gaps(self) -> list[str]:
        """Why failed criteria did not score, in criterion order."""
        return [t.reason for t in self.traces if t.status == RuleStatus.FAIL]

    @property
    def breakdown(self) -> dict[str, int]:
        """Points per criterion id."""
        return {t.rule_id: t.points for t in self.traces}


def convert_amount(
    amount: float,
    from_currency: str,
    to_currency: str,
    rates: dict[str, float],
) -> float | None:
    """Convert between currencies through a per-USD rate table.

    Returns:
        Converted amount, or None when either currency has no rate
    """
    source = from_currency.upper()
    target = to_currency.upper()
    if source == target:
        return amount
    if source not in rates or target not in rates:
        return None
    return amount / rates[source] * rates[target]


class ScoringEngine:
    """Evaluates configured criteria against packages, in configured order."""

    def __init__(
        self,
        criteria: list[CriterionConfig],
        *,
        destination_matcher: DestinationMatcher | None = None,
    ):
        """Initialize scoring engine.

        Args:
            criteria: Criteria, evaluated and reported in list order
            destination_matcher: Matcher for destination criteria
        """
        self.criteria = criteria
        self.destination_matcher = destination_matcher or DestinationMatcher()

        logger.debug(
            f"Initialized scoring engine: {len(criteria)} criteria, "
            f"max score {sum(c.weight for c in criteria)}"
        )

    def score(self, extraction: Extraction, package: PackageLike) -> PackageScore:
        """Score one package.

        Args:
            extraction: Requested trip
            package: Candidate package

        Returns:
            PackageScore clamped to [0, 100], ineligible when a required
            criterion failed
        """
        traces: list[RuleTrace] = []
        total = 0
        eligible = True

        for criterion in self.criteria:
            trace = self._evaluate(criterion, extraction, package)
            traces.append(trace)
            total += trace.points
            if criterion.required and trace.status == RuleStatus.FAIL:
                eligible = False

        return PackageScore(score=max(0, min(100, total)), traces=traces, eligible=eligible)

    def _evaluate(
        self,
        criterion: CriterionConfig,
        extraction: Extraction,
        package: PackageLike,
    ) -> RuleTrace:
        if criterion.type == CriterionType.DESTINATION:
            return self._eval_destination(criterion, extraction, package)
        elif criterion.type == CriterionType.BUDGET:
            return self._eval_budget(criterion, extraction, package)
        elif criterion.type == CriterionType.DURATION:
            return self._eval_duration(criterion, extraction, package)
        elif criterion.type == CriterionType.DATES:
            return self._eval_dates(criterion, extraction, package)
        elif criterion.type == CriterionType.CAPACITY:
            return self._eval_capacity(criterion, extraction, package)
        logger.warning(f"Unknown criterion type: {criterion.type}")
        return self._skip(criterion, f"Unknown criterion type: {criterion.type}")

    @staticmethod
    def _pass(criterion: CriterionConfig) -> RuleTrace:
        return RuleTrace(
            rule_id=criterion.id,
            name=criterion.name,
            status=RuleStatus.PASS,
            reason=criterion.label,
            points=criterion.weight,
        )

    @staticmethod
    def _fail(criterion: CriterionConfig, reason: str) -> RuleTrace:
        return RuleTrace(rule_id=criterion.id, name=criterion.name, status=RuleStatus.FAIL, reason=reason)

    @staticmethod
    def _skip(criterion: CriterionConfig, reason: str) -> RuleTrace:
        return RuleTrace(rule_id=criterion.id, name=criterion.name, status=RuleStatus.SKIP, reason=reason)

    def _eval_destination(
        self,
        criterion: CriterionConfig,
        extraction: Extraction,
        package: PackageLike,
    ) -> RuleTrace:
        """Evaluate destination criterion."""
        if not extraction.destination:
            return self._skip(criterion, "No destination requested")
        if not package.destination_label:
            return self._skip(criterion, "Package has no destination")

        match = self.destination_matcher.match(
            extraction.destination,
            package.destination_city,
            package.destination_country,
        )
        if match is None:
            return self._fail(
                criterion,
                f"Looking for {extraction.destination}, package offers "
                f"{package.destination_label}",
            )
        return self._pass(criterion)

    def _eval_budget(
        self,
        criterion: CriterionConfig,
        extraction: Extraction,
        package: PackageLike,
    ) -> RuleTrace:
        """Evaluate budget criterion: price at or under budget."""
        budget = extraction.budget
        if budget is None:
            return self._skip(criterion, "No budget given")

        rates = criterion.params.get("exchange_rates", {})
        price = convert_amount(package.price, package.currency, budget.currency, rates)
        if price is None:
            return self._skip(
                criterion,
                f"Cannot convert {package.currency} to {budget.currency}",
            )

        # Compare at cent precision
        if round(price, 2) <= round(budget.amount, 2):
            return self._pass(criterion)
        return self._fail(
            criterion,
            f"Price {price:.2f} {budget.currency} exceeds budget {budget.amount:.2f} {budget.currency}",
        )

    def _eval_duration(
        self,
        criterion: CriterionConfig,
        extraction: Extraction,
        package: PackageLike,
    ) -> RuleTrace:
        """Evaluate duration criterion: within tolerance of requested days."""
        requested = extraction.requested_duration
        if requested is None:
            return self._skip(criterion, "No duration requested")
        if package.duration_days is None:
            return self._skip(criterion, "Package has no duration")

        tolerance = criterion.params.get("tolerance_days", 1)
        if abs(package.duration_days - requested) <= tolerance:
            return self._pass(criterion)
        return self._fail(
            criterion,
            f"Package lasts {package.duration_days} days, requested {requested}",
        )

    def _eval_dates(
        self,
        criterion: CriterionConfig,
        extraction: Extraction,
        package: PackageLike,
    ) -> RuleTrace:
        """Evaluate dates criterion: requested window overlaps availability."""
        if extraction.dates is None:
            return self._skip(criterion, "No travel dates given")
        if package.available_from is None and package.available_until is None:
            return self._skip(criterion, "Package availability not tracked")

        start = extraction.dates.start
        end = extraction.dates.last_day
        if package.available_from is not None and end < package.available_from:
            return self._fail(criterion, f"Package available from {package.available_from.isoformat()}")
        if package.available_until is not None and start > package.available_until:
            return self._fail(criterion, f"Package available until {package.available_until.isoformat()}")
        return self._pass(criterion)

    def _eval_capacity(
        self,
        criterion: CriterionConfig,
        extraction: Extraction,
        package: PackageLike,
    ) -> RuleTrace:
        """Evaluate capacity criterion: party fits the package."""
        if extraction.travelers is None:
            return self._skip(criterion, "No traveler count given")
        if package.capacity is None:
            return self._skip(criterion, "Package capacity not set")

        if extraction.travelers <= package.capacity:
            return self._pass(criterion)
        return self._fail(
            criterion,
            f"Group of {extraction.travelers} exceeds capacity {package.capacity}",
        )
