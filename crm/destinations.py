"""Destination comparison using aliases + rapidfuzz.

Compares a requested destination with a package's city and country.
Tried in order: exact (after normalization and alias resolution), whole-word
substring in either direction, then fuzzy token matching for misspellings.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from rapidfuzz import fuzz

from config.destination_aliases import DESTINATION_ALIASES
from crm.config import settings
from crm.pipelines.normalization import normalize_destination, split_places

logger = logging.getLogger(__name__)

MIN_SUBSTRING_LEN = 3
MIN_FUZZY_LEN = 4


class MatchMethod(str, Enum):
    """How a destination matched."""
    EXACT = "exact"
    ALIAS = "alias"
    SUBSTRING = "substring"
    FUZZY = "fuzzy"


@dataclass
class DestinationAlias:
    """Canonical place with the names people use for it."""
    canonical: str
    aliases: list[str] = field(default_factory=list)
    country: str | None = None


@dataclass(frozen=True)
class DestinationMatch:
    """Outcome of a successful destination comparison."""
    method: MatchMethod
    requested: str
    matched: str
    score: float = 100.0


class DestinationMatcher:
    """Normalizes and compares destinations.

    Instances are immutable after construction and safe to share.
    """

    def __init__(
        self,
        aliases: list[DestinationAlias] | None = None,
        *,
        fuzzy_threshold: int | None = None,
    ) -> None:
        self.aliases = aliases if aliases is not None else self._load_default_aliases()
        self.fuzzy_threshold = (
            fuzzy_threshold if fuzzy_threshold is not None else settings.matching.fuzzy_threshold
        )

        self._alias_map: dict[str, str] = {}  # alias -> canonical
        self._country_map: dict[str, str] = {}  # canonical city -> country
        self._build_indices()

        logger.debug(f"Loaded {len(self.aliases)} destinations with {len(self._alias_map)} aliases")

    @staticmethod
    def _load_default_aliases() -> list[DestinationAlias]:
        return [
            DestinationAlias(
                canonical=entry["canonical"],
                aliases=list(entry.get("aliases", [])),
                country=entry.get("country"),
            )
            for entry in DESTINATION_ALIASES
        ]

    def _build_indices(self) -> None:
        for entry in self.aliases:
            canonical = normalize_destination(entry.canonical)
            for alias in entry.aliases:
                self._alias_map[normalize_destination(alias)] = canonical
            if entry.country:
                self._country_map[canonical] = normalize_destination(entry.country)

    def canonicalize(self, place: str | None) -> str:
        """Normalize a place name and resolve it through the alias table."""
        normalized = normalize_destination(place)
        return self._alias_map.get(normalized, normalized)

    def _requested_forms(self, requested: str) -> list[tuple[str, bool]]:
        """Canonical forms of the request, flagged when an alias was applied."""
        normalized = normalize_destination(requested)
        forms: list[tuple[str, bool]] = []
        for part in [normalized, *split_places(normalized)]:
            canonical = self._alias_map.get(part, part)
            item = (canonical, canonical != part)
            if canonical and item not in forms:
                forms.append(item)
        return forms

    def _package_forms(self, city: str | None, country: str | None) -> list[str]:
        forms: list[str] = []
        for place in (city, country):
            canonical = self.canonicalize(place)
            if canonical and canonical not in forms:
                forms.append(canonical)
        if city and not country:
            known_country = self._country_map.get(self.canonicalize(city))
            if known_country and known_country not in forms:
                forms.append(known_country)
        if city and country:
            combined = normalize_destination(f"{city}, {country}")
            if combined not in forms:
                forms.append(combined)
        return forms

    @staticmethod
    def _contains_word(haystack: str, needle: str) -> bool:
        if len(needle) < MIN_SUBSTRING_LEN:
            return False
        return re.search(rf"\b{re.escape(needle)}\b", haystack) is not None

    def match(
        self,
        requested: str | None,
        city: str | None,
        country: str | None,
    ) -> DestinationMatch | None:
        """Compare a requested destination with a package location.

        Args:
            requested: Free-text destination from the extraction
            city: Package city
            country: Package country

        Returns:
            DestinationMatch, or None when nothing matches
        """
        requested_forms = self._requested_forms(requested or "")
        package_forms = self._package_forms(city, country)
        if not requested_forms or not package_forms:
            return None

        # 1. Exact / alias
        for req, via_alias in requested_forms:
            for place in package_forms:
                if req == place:
                    method = MatchMethod.ALIAS if via_alias else MatchMethod.EXACT
                    return DestinationMatch(method=method, requested=req, matched=place)

        # 2. Whole-word substring, either direction
        for req, _ in requested_forms:
            for place in package_forms:
                if self._contains_word(place, req) or self._contains_word(req, place):
                    return DestinationMatch(method=MatchMethod.SUBSTRING, requested=req, matched=place)

        # 3. Fuzzy, for misspellings
        best: DestinationMatch | None = None
        for req, _ in requested_forms:
            if len(req) < MIN_FUZZY_LEN:
                continue
            for place in package_forms:
                if len(place) < MIN_FUZZY_LEN:
                    continue
                score = fuzz.token_set_ratio(req, place)
                if score >= self.fuzzy_threshold and (best is None or score > best.score):
                    best = DestinationMatch(
                        method=MatchMethod.FUZZY,
                        requested=req,
                        matched=place,
                        score=float(score),
                    )
        return best
