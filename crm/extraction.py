"""Typed view over the extraction document stored on an email record.

The upstream extractor writes a schema-less JSON document. Matching needs to
know whether each field is present, so every field here is optional and an
unreadable value is treated the same as a missing one.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping

from .config import settings

logger = logging.getLogger(__name__)

EXTRACTION_FIELDS = ("destination", "dates", "budget", "travelers", "duration")

_NUMBER = r"\d[\d,]*(?:\.\d+)?"
_NUMBER_RE = re.compile(_NUMBER)
_NEGATIVE_RE = re.compile(r"^[^\d-]*-\s*\d")
_RANGE_RE = re.compile(rf"^\D*{_NUMBER}\s*(?:-|–|to)\s*\D*{_NUMBER}\D*$", re.IGNORECASE)


@dataclass(frozen=True)
class Money:
    """Amount in an ISO currency."""
    amount: float
    currency: str


@dataclass(frozen=True)
class DateRange:
    """Requested travel window. End is optional."""
    start: date
    end: date | None = None

    @property
    def last_day(self) -> date:
        return self.end or self.start

    @property
    def days(self) -> int | None:
        """Inclusive day count, when both ends are known."""
        if self.end is None:
            return None
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class ExtractionIncomplete:
    """Informational notice listing the fields the extraction lacks.

    Never raised: partial extractions are matched on whatever is present.
    """
    missing: tuple[str, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        return f"Extraction incomplete, missing: {', '.join(self.missing)}"


@dataclass(frozen=True)
class Extraction:
    """Trip requirements parsed from one inbound email."""
    destination: str | None = None
    dates: DateRange | None = None
    budget: Money | None = None
    travelers: int | None = None
    duration_days: int | None = None

    @property
    def requested_duration(self) -> int | None:
        """Explicit duration, else the inclusive length of the date range."""
        if self.duration_days is not None:
            return self.duration_days
        if self.dates is not None:
            return self.dates.days
        return None

    def missing_fields(self) -> list[str]:
        values = {
            "destination": self.destination,
            "dates": self.dates,
            "budget": self.budget,
            "travelers": self.travelers,
            "duration": self.requested_duration,
        }
        return [name for name in EXTRACTION_FIELDS if values[name] is None]

    def completeness(self) -> ExtractionIncomplete | None:
        missing = self.missing_fields()
        return ExtractionIncomplete(tuple(missing)) if missing else None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any] | None) -> Extraction:
        """Build an Extraction from the stored JSON document.

        Args:
            doc: extracted_data as written by the upstream extractor

        Returns:
            Extraction with absent or unreadable fields left as None
        """
        if not doc:
            return cls()

        destination = doc.get("destination")
        if isinstance(destination, Mapping):
            destination = destination.get("city") or destination.get("country")
        destination = destination.strip() if isinstance(destination, str) and destination.strip() else None

        return cls(
            destination=destination,
            dates=_parse_dates(doc.get("dates")),
            budget=_parse_budget(doc.get("budget")),
            travelers=_parse_travelers(doc.get("travelers")),
            duration_days=_parse_duration(doc.get("duration")),
        )

    def to_document(self) -> dict[str, Any]:
        """Inverse of from_document, omitting absent fields."""
        doc: dict[str, Any] = {}
        if self.destination is not None:
            doc["destination"] = self.destination
        if self.dates is not None:
            doc["dates"] = {
                "preferredStart": self.dates.start.isoformat(),
                "preferredEnd": self.dates.end.isoformat() if self.dates.end else None,
            }
        if self.budget is not None:
            doc["budget"] = {"amount": self.budget.amount, "currency": self.budget.currency}
        if self.travelers is not None:
            doc["travelers"] = self.travelers
        if self.duration_days is not None:
            doc["duration"] = self.duration_days
        return doc


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            logger.debug(f"Ignoring unreadable date: {value!r}")
    return None


def _parse_dates(value: Any) -> DateRange | None:
    if not isinstance(value, Mapping):
        return None
    start = _parse_date(value.get("preferredStart") or value.get("start"))
    end = _parse_date(value.get("preferredEnd") or value.get("end"))
    if start is None:
        return None
    if end is not None and end < start:
        logger.debug(f"Ignoring end date {end} before start {start}")
        end = None
    return DateRange(start=start, end=end)


def _parse_number(value: Any) -> float | None:
    """Read a number, or the upper bound of a range such as "$1,500 - $2,000".

    Negative values are returned signed so that callers can reject them.
    Text with several unrelated numbers is unreadable.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    numbers = [float(n.replace(",", "")) for n in _NUMBER_RE.findall(value)]
    if len(numbers) == 1:
        return -numbers[0] if _NEGATIVE_RE.match(value) else numbers[0]
    if len(numbers) == 2 and _RANGE_RE.match(value):
        return max(numbers)
    if numbers:
        logger.debug(f"Ignoring ambiguous number: {value!r}")
    return None


def _parse_int(value: Any) -> int | None:
    number = _parse_number(value)
    if number is None:
        return None
    return int(number)


def _parse_budget(value: Any) -> Money | None:
    if isinstance(value, Mapping):
        amount = _parse_number(value.get("amount"))
        currency = value.get("currency") or settings.matching.default_currency
    else:
        amount = _parse_number(value)
        currency = settings.matching.default_currency
    if amount is None or amount <= 0:
        return None
    return Money(amount=amount, currency=str(currency).strip().upper())


def _parse_travelers(value: Any) -> int | None:
    if isinstance(value, Mapping):
        parts = [_parse_int(value.get(key)) for key in ("adults", "children", "infants")]
        if parts[0] is None:
            return None
        total = sum(p for p in parts if p)
    else:
        total = _parse_int(value)
    if total is None or total <= 0:
        return None
    return total


def _parse_duration(value: Any) -> int | None:
    if isinstance(value, Mapping):
        value = value.get("days")
    days = _parse_int(value)
    if days is None or days <= 0:
        return None
    return days
