from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from crm import models
from crm.errors import NotFound, StorageError, TenantMismatch
from crm.pipelines.matching import MatchResult
from crm.pipelines.results import get_matches, match_and_save, save_matches


def _result(package_id: int, score: int, reasons: list[str]) -> MatchResult:
    return MatchResult(
        package_id=package_id,
        score=score,
        itinerary_title=f"Package {package_id}",
        destination="Paris",
        price=1000.0 + package_id,
        currency="USD",
        duration=5,
        match_reasons=reasons,
    )


FIRST = [_result(1, 85, ["Destination matches", "Within budget"]), _result(2, 40, ["Destination matches"])]
SECOND = [_result(3, 60, ["Destination matches", "Duration matches"])]


async def _seed(session) -> int:
    session.add_all(
        [
            models.Tenant(id="acme", name="Acme", slug="acme"),
            models.Tenant(id="globex", name="Globex", slug="globex"),
        ]
    )
    email = models.EmailRecord(
        tenant_id="acme",
        message_id="<m1@example.com>",
        from_email="customer@example.com",
        subject="Trip to Paris",
        body_text="Looking for 5 days in Paris under $2000",
        extracted_data={"destination": "paris", "budget": {"amount": 2000, "currency": "USD"}, "duration": 5},
        match_results=[],
    )
    session.add(email)
    await session.commit()
    return email.id


def test_never_matched_email_has_no_results(run_db) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        return await get_matches(session, email_id, "acme")

    assert run_db(scenario) == []


def test_save_then_get_returns_saved_list(run_db) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        await save_matches(session, email_id, "acme", FIRST)
        return await get_matches(session, email_id, "acme")

    assert run_db(scenario) == FIRST


def test_second_save_replaces_first(run_db) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        await save_matches(session, email_id, "acme", FIRST)
        await save_matches(session, email_id, "acme", SECOND)
        return await get_matches(session, email_id, "acme")

    assert run_db(scenario) == SECOND


def test_save_is_idempotent(run_db) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        await save_matches(session, email_id, "acme", FIRST)
        once = await get_matches(session, email_id, "acme")
        await save_matches(session, email_id, "acme", FIRST)
        twice = await get_matches(session, email_id, "acme")
        return once, twice

    once, twice = run_db(scenario)
    assert once == twice == FIRST


def test_save_for_other_tenant_is_rejected(run_db) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        await save_matches(session, email_id, "acme", FIRST)
        with pytest.raises(TenantMismatch):
            await save_matches(session, email_id, "globex", SECOND)
        return await get_matches(session, email_id, "acme")

    assert run_db(scenario) == FIRST


def test_missing_email(run_db) -> None:
    async def scenario(session):
        await _seed(session)
        with pytest.raises(NotFound):
            await save_matches(session, 404, "acme", FIRST)
        with pytest.raises(NotFound):
            await get_matches(session, 404, "acme")

    run_db(scenario)


def test_get_from_other_tenant_is_not_found(run_db) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        with pytest.raises(NotFound):
            await get_matches(session, email_id, "globex")

    run_db(scenario)


def test_failed_save_keeps_previous_results(run_db, monkeypatch) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        await save_matches(session, email_id, "acme", FIRST)

        async def broken_commit():
            raise OperationalError("UPDATE email_records", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", broken_commit)
        with pytest.raises(StorageError):
            await save_matches(session, email_id, "acme", SECOND)
        monkeypatch.undo()

        return await get_matches(session, email_id, "acme")

    assert run_db(scenario) == FIRST


def test_match_and_save(run_db) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        session.add_all(
            [
                models.Package(tenant_id="acme", title="Paris Classic", destination_city="Paris", price=1800, currency="USD", duration_days=5, status="active"),
                models.Package(tenant_id="acme", title="Paris Deluxe", destination_city="Paris", price=2500, currency="USD", duration_days=5, status="active"),
            ]
        )
        await session.commit()

        returned = await match_and_save(session, email_id, "acme")
        stored = await get_matches(session, email_id, "acme")
        return returned, stored

    returned, stored = run_db(scenario)
    assert [r.itinerary_title for r in returned] == ["Paris Classic", "Paris Deluxe"]
    assert stored == returned


def test_match_and_save_rejects_other_tenant(run_db) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        with pytest.raises(TenantMismatch):
            await match_and_save(session, email_id, "globex")

    run_db(scenario)


def test_saved_snapshot_ignores_later_package_edits(run_db) -> None:
    async def scenario(session):
        email_id = await _seed(session)
        package = models.Package(tenant_id="acme", title="Paris Classic", destination_city="Paris", price=1800, currency="USD", duration_days=5, status="active")
        session.add(package)
        await session.commit()

        saved = await match_and_save(session, email_id, "acme")

        package.title = "Paris Renamed"
        package.price = 3100
        package.destination_city = "Lyon"
        await session.commit()

        return saved, await get_matches(session, email_id, "acme")

    saved, stored = run_db(scenario)
    assert stored == saved
    assert stored[0].itinerary_title == "Paris Classic"
    assert stored[0].price == 1800
    assert stored[0].destination == "Paris"
