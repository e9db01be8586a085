from __future__ import annotations

from crm.destinations import DestinationAlias, DestinationMatcher, MatchMethod
from crm.pipelines.normalization import normalize_destination, split_places


def test_normalize_destination() -> None:
    assert normalize_destination("  Zürich!! ") == "zurich"
    assert normalize_destination("PARIS ,France") == "paris, france"
    assert normalize_destination("St. Lucia") == "st lucia"
    assert normalize_destination("Côte d’Azur") == "cote d azur"
    assert normalize_destination(None) == ""
    assert normalize_destination("   ") == ""


def test_normalize_keeps_accents_on_request() -> None:
    assert normalize_destination("Zürich", preserve_diacritics=True) == "zürich"


def test_split_places() -> None:
    assert split_places("paris, france") == ["paris", "france"]
    assert split_places("tokyo") == ["tokyo"]


def test_exact_match_is_case_insensitive() -> None:
    match = DestinationMatcher().match("paris", "Paris", "France")
    assert match is not None
    assert match.method == MatchMethod.EXACT


def test_country_request_matches_package_country() -> None:
    match = DestinationMatcher().match("France", "Nice", "France")
    assert match is not None
    assert match.matched == "france"


def test_substring_match_either_direction() -> None:
    matcher = DestinationMatcher()
    assert matcher.match("Paris, France", "Paris", None).method == MatchMethod.EXACT
    assert matcher.match("bali island", "Bali", "Indonesia").method == MatchMethod.SUBSTRING
    assert matcher.match("rome", "Rome and Florence", "Italy").method == MatchMethod.SUBSTRING


def test_substring_needs_whole_words() -> None:
    assert DestinationMatcher(fuzzy_threshold=100).match("nice", "Venice", "Italy") is None


def test_alias_match() -> None:
    match = DestinationMatcher().match("NYC", "New York", "United States")
    assert match is not None
    assert match.method == MatchMethod.ALIAS


def test_custom_alias_table() -> None:
    matcher = DestinationMatcher([DestinationAlias("kyoto", ["old capital"])])
    assert matcher.match("old capital", "Kyoto", "Japan").method == MatchMethod.ALIAS
    assert matcher.match("nyc", "New York", None) is None


def test_fuzzy_match_for_misspelling() -> None:
    match = DestinationMatcher(fuzzy_threshold=85).match("Barcelonna", "Barcelona", "Spain")
    assert match is not None
    assert match.method == MatchMethod.FUZZY
    assert match.score >= 85


def test_different_cities_do_not_match() -> None:
    matcher = DestinationMatcher()
    assert matcher.match("paris", "Tokyo", "Japan") is None
    assert matcher.match("tokyo", "Kyoto", "Japan") is None


def test_missing_sides() -> None:
    matcher = DestinationMatcher()
    assert matcher.match(None, "Paris", "France") is None
    assert matcher.match("paris", None, None) is None


def test_country_request_matches_city_only_package_through_alias_table() -> None:
    matcher = DestinationMatcher()

    match = matcher.match("USA", "NYC", None)

    assert match is not None
    assert match.method == MatchMethod.ALIAS
    assert match.matched == "united states"
    assert matcher.match("India", "Bangkok", None) is None


def test_custom_alias_country() -> None:
    matcher = DestinationMatcher([DestinationAlias("porto", ["oporto"], country="portugal")])

    assert matcher.match("Portugal", "Oporto", None) is not None
    assert matcher.match("Spain", "Oporto", None) is None
