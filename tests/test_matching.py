from __future__ import annotations

import json

import pytest

from crm import models
from crm.config import MatchingSettings
from crm.errors import InvalidTenant
from crm.extraction import Extraction, Money
from crm.pipelines.matching import MatchResult, load_criteria, match_email, rank_packages
from crm.rules import ScoringEngine
from helpers import make_package

PARIS_REQUEST = Extraction(destination="paris", budget=Money(2000.0, "USD"), duration_days=5)


def _catalog() -> list[models.Package]:
    return [
        make_package(1, city="Paris", price=1800, duration_days=5),
        make_package(2, city="Paris", price=2500, duration_days=5),
        make_package(3, city="Tokyo", price=1500, duration_days=5),
    ]


def test_paris_scenario_ranking() -> None:
    results = rank_packages(PARIS_REQUEST, _catalog(), "acme")

    assert [r.package_id for r in results] == [1, 2]
    assert results[0].score > results[1].score
    assert results[0].match_reasons == ["Destination matches", "Within budget", "Duration matches"]
    assert results[1].match_reasons == ["Destination matches", "Duration matches"]


def test_empty_catalog_returns_empty_list() -> None:
    assert rank_packages(PARIS_REQUEST, [], "acme") == []


def test_zero_score_packages_are_excluded() -> None:
    catalog = [make_package(i, price=5000) for i in range(1, 50)]

    assert rank_packages(Extraction(budget=Money(100.0, "USD")), catalog, "acme") == []
    assert rank_packages(Extraction(), catalog, "acme") == []


def test_ties_break_on_price_then_id() -> None:
    catalog = [
        make_package(7, city="Paris", price=900),
        make_package(3, city="Paris", price=900),
        make_package(5, city="Paris", price=400),
        make_package(1, city="Paris", price=1200, duration_days=5),
    ]

    results = rank_packages(Extraction(destination="Paris", duration_days=5), catalog, "acme")

    assert [r.package_id for r in results] == [1, 5, 3, 7]


def test_results_are_totally_ordered() -> None:
    catalog = [
        make_package(i, city="Paris" if i % 2 else "Paris, France", price=500 + (i % 4) * 300, duration_days=3 + i % 5)
        for i in range(1, 40)
    ]

    results = rank_packages(PARIS_REQUEST, catalog, "acme")
    prices = {p.id: p.price for p in catalog}
    keys = [(-r.score, prices[r.package_id], r.package_id) for r in results]

    assert keys == sorted(keys)
    assert len(set(keys)) == len(keys)


def test_matching_is_deterministic() -> None:
    first = rank_packages(PARIS_REQUEST, _catalog(), "acme")
    second = rank_packages(PARIS_REQUEST, list(reversed(_catalog())), "acme")

    assert json.dumps([r.to_document() for r in first]) == json.dumps([r.to_document() for r in second])


def test_other_tenants_packages_never_appear() -> None:
    catalog = _catalog() + [make_package(99, tenant_id="globex", city="Paris", price=100, duration_days=5)]

    results = rank_packages(PARIS_REQUEST, catalog, "acme")

    assert 99 not in [r.package_id for r in results]


def test_limit_truncates() -> None:
    catalog = [make_package(i, city="Paris", price=100 * i) for i in range(1, 11)]

    results = rank_packages(Extraction(destination="paris"), catalog, "acme", limit=3)

    assert [r.package_id for r in results] == [1, 2, 3]


def test_custom_engine() -> None:
    engine = ScoringEngine(load_criteria(MatchingSettings(destination_required=False)))

    results = rank_packages(PARIS_REQUEST, _catalog(), "acme", engine=engine)

    # Tokyo now ranks on budget and duration alone
    assert [r.package_id for r in results] == [1, 2, 3]
    assert results[2].match_reasons == ["Within budget", "Duration matches"]


def test_snapshot_fields() -> None:
    package = make_package(4, title="Paris in Spring", city="Paris", country="France", price=1800, currency="USD", duration_days=5)

    [result] = rank_packages(PARIS_REQUEST, [package], "acme")

    assert result.to_document() == {
        "packageId": 4,
        "score": 85,
        "itineraryTitle": "Paris in Spring",
        "destination": "Paris",
        "price": 1800,
        "currency": "USD",
        "duration": 5,
        "matchReasons": ["Destination matches", "Within budget", "Duration matches"],
        "gaps": [],
        "breakdown": {"destination": 40, "budget": 25, "duration": 20, "dates": 0, "capacity": 0},
    }


def test_failed_criteria_are_explained() -> None:
    results = rank_packages(PARIS_REQUEST, _catalog(), "acme")

    assert results[0].gaps == []
    assert results[1].gaps == ["Price 2500.00 USD exceeds budget 2000.00 USD"]


def test_breakdown_lists_points_per_criterion() -> None:
    results = rank_packages(PARIS_REQUEST, _catalog(), "acme")

    assert results[1].breakdown == {"destination": 40, "budget": 0, "duration": 20, "dates": 0, "capacity": 0}
    assert sum(results[1].breakdown.values()) == results[1].score


def test_explanations_survive_the_stored_document() -> None:
    [_, over_budget] = rank_packages(PARIS_REQUEST, _catalog(), "acme")

    restored = MatchResult.from_document(over_budget.to_document())

    assert restored == over_budget
    assert restored.gaps == ["Price 2500.00 USD exceeds budget 2000.00 USD"]


def test_documents_without_explanations_still_load() -> None:
    doc = {
        "packageId": 1,
        "score": 40,
        "itineraryTitle": "Paris",
        "destination": "Paris",
        "price": 900,
        "currency": "USD",
        "duration": 4,
        "matchReasons": ["Destination matches"],
    }

    result = MatchResult.from_document(doc)

    assert result.gaps == []
    assert result.breakdown == {}


def test_zero_limit_returns_nothing() -> None:
    assert rank_packages(PARIS_REQUEST, _catalog(), "acme", limit=0) == []


async def _seed(session) -> None:
    session.add_all(
        [
            models.Tenant(id="acme", name="Acme", slug="acme"),
            models.Tenant(id="globex", name="Globex", slug="globex"),
        ]
    )
    await session.flush()
    session.add_all(
        [
            models.Package(tenant_id="acme", title="Paris Classic", destination_city="Paris", price=1800, currency="USD", duration_days=5, status="active"),
            models.Package(tenant_id="acme", title="Paris Draft", destination_city="Paris", price=1000, currency="USD", duration_days=5, status="draft"),
            models.Package(tenant_id="acme", title="Paris Old", destination_city="Paris", price=900, currency="USD", duration_days=5, status="archived"),
            models.Package(tenant_id="globex", title="Globex Paris", destination_city="Paris", price=1500, currency="USD", duration_days=5, status="active"),
        ]
    )
    await session.commit()


def test_match_email_reads_only_active_packages_of_tenant(run_db) -> None:
    async def scenario(session):
        await _seed(session)
        return await match_email(session, PARIS_REQUEST, "acme")

    results = run_db(scenario)

    assert [r.itinerary_title for r in results] == ["Paris Classic"]


def test_match_email_with_no_active_packages(run_db) -> None:
    async def scenario(session):
        session.add(models.Tenant(id="empty", name="Empty", slug="empty"))
        await session.commit()
        return await match_email(session, PARIS_REQUEST, "empty")

    assert run_db(scenario) == []


@pytest.mark.parametrize("tenant_id", ["", "missing"])
def test_match_email_invalid_tenant(run_db, tenant_id) -> None:
    async def scenario(session):
        await _seed(session)
        with pytest.raises(InvalidTenant):
            await match_email(session, PARIS_REQUEST, tenant_id)

    run_db(scenario)
