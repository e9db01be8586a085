from __future__ import annotations

from datetime import date
from typing import Optional

from crm import models


def make_package(
    id: int,
    *,
    tenant_id: str = "acme",
    title: Optional[str] = None,
    city: Optional[str] = None,
    country: Optional[str] = None,
    price: float = 1000.0,
    currency: str = "USD",
    duration_days: Optional[int] = None,
    capacity: Optional[int] = None,
    available_from: Optional[date] = None,
    available_until: Optional[date] = None,
    status: str = "active",
) -> models.Package:
    """Transient package, never attached to a session."""
    return models.Package(
        id=id,
        tenant_id=tenant_id,
        title=title or f"Package {id}",
        destination_city=city,
        destination_country=country,
        price=price,
        currency=currency,
        duration_days=duration_days,
        capacity=capacity,
        available_from=available_from,
        available_until=available_until,
        status=status,
    )
