"""FastAPI app: tenant catalog, email records and package matching.

Tenant context is resolved per request from the tenant header and the
authenticated principal, then passed explicitly into every pipeline call.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .config import settings
from .db import get_session
from .errors import Conflict, InvalidTenant, NotFound, StorageError, TenantMismatch, TenantResolutionError
from .logging_config import setup_logging
from .pipelines import ingest
from .pipelines.matching import MatchResult
from .pipelines.results import get_matches, match_and_save
from .tenancy import Principal, resolve_tenant

logger = logging.getLogger(__name__)


# Pydantic request/response models
class CamelModel(BaseModel):
    """Base DTO: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(CamelModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(CamelModel):
    """Error response."""
    error: str
    detail: str | None = None


class CreateTenantRequest(CamelModel):
    """Register tenant request."""
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=3, max_length=100, pattern=r"^[a-z0-9-]+$")
    id: str | None = Field(default=None, max_length=64)


class TenantResponse(CamelModel):
    """Tenant record."""
    id: str
    name: str
    slug: str
    status: str


class CreatePackageRequest(CamelModel):
    """Create package request."""
    title: str = Field(min_length=1, max_length=255)
    destination_city: str | None = Field(default=None, max_length=255)
    destination_country: str | None = Field(default=None, max_length=255)
    price: float = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    duration_days: int | None = Field(default=None, ge=1, le=365)
    capacity: int | None = Field(default=None, ge=1)
    available_from: date | None = None
    available_until: date | None = None
    status: models.PackageStatus = models.PackageStatus.DRAFT

    @field_validator("available_until")
    @classmethod
    def window_order(cls, v: date | None, info) -> date | None:
        start = info.data.get("available_from")
        if v is not None and start is not None and v < start:
            raise ValueError("availableUntil must not be before availableFrom")
        return v


class PackageStatusRequest(CamelModel):
    """Package status change request."""
    status: models.PackageStatus


class PackageResponse(CamelModel):
    """Package record."""
    id: int
    title: str
    destination_city: str | None
    destination_country: str | None
    price: float
    currency: str
    duration_days: int | None
    capacity: int | None
    available_from: date | None
    available_until: date | None
    status: str


class CreateEmailRequest(CamelModel):
    """Record inbound email request."""
    message_id: str = Field(min_length=1, max_length=255)
    from_email: str = Field(min_length=3, max_length=255)
    subject: str = Field(min_length=1, max_length=998)
    body_text: str = ""
    received_at: datetime | None = None
    extracted_data: dict[str, Any] | None = None


class MatchResultDTO(CamelModel):
    """Single match result, as stored on the email."""
    package_id: int
    score: int
    itinerary_title: str
    destination: str
    price: float
    currency: str
    duration: int | None
    match_reasons: list[str]
    gaps: list[str] = Field(default_factory=list)
    breakdown: dict[str, int] = Field(default_factory=dict)


class EmailResponse(CamelModel):
    """Email record with its last saved matches."""
    id: int
    message_id: str
    from_email: str
    subject: str
    body_text: str
    received_at: datetime
    extracted_data: dict[str, Any] | None
    match_results: list[MatchResultDTO]
    matched_at: datetime | None


def _package_response(package: models.Package) -> PackageResponse:
    return PackageResponse(
        id=package.id,
        title=package.title,
        destination_city=package.destination_city,
        destination_country=package.destination_country,
        price=package.price,
        currency=package.currency,
        duration_days=package.duration_days,
        capacity=package.capacity,
        available_from=package.available_from,
        available_until=package.available_until,
        status=package.status,
    )


def _match_dto(result: MatchResult) -> MatchResultDTO:
    return MatchResultDTO.model_validate(result.to_document())


def _email_response(email: models.EmailRecord) -> EmailResponse:
    return EmailResponse(
        id=email.id,
        message_id=email.message_id,
        from_email=email.from_email,
        subject=email.subject,
        body_text=email.body_text,
        received_at=email.received_at,
        extracted_data=email.extracted_data,
        match_results=[MatchResultDTO.model_validate(doc) for doc in email.match_results or []],
        matched_at=email.matched_at,
    )


# Tenant context dependencies
def get_principal(request: Request) -> Principal | None:
    """Authenticated caller placed on request.state by the auth layer, if any."""
    return getattr(request.state, "principal", None)


def get_tenant_id(
    request: Request,
    principal: Principal | None = Depends(get_principal),
) -> str:
    """Resolve the tenant for this request."""
    return resolve_tenant(
        request.headers.getlist(settings.tenancy.header_name),
        principal.tenant_id if principal else None,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info("Application starting up")

    yield

    # Shutdown
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Multi-tenant travel CRM: package catalog and email-to-package matching",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, error: str, detail: str | None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


# Exception handlers
@app.exception_handler(TenantResolutionError)
async def tenant_resolution_error_handler(request, exc: TenantResolutionError):
    """Handle missing, ambiguous, mismatched or malformed tenant context."""
    logger.warning(f"Tenant resolution failed ({exc.reason}): {exc}")
    return _error(status.HTTP_400_BAD_REQUEST, exc.code, str(exc))


@app.exception_handler(InvalidTenant)
async def invalid_tenant_handler(request, exc: InvalidTenant):
    """Handle unknown or inactive tenants."""
    logger.warning(f"Invalid tenant: {exc}")
    return _error(status.HTTP_400_BAD_REQUEST, exc.code, str(exc))


@app.exception_handler(NotFound)
async def not_found_handler(request, exc: NotFound):
    """Handle missing records."""
    return _error(status.HTTP_404_NOT_FOUND, exc.code, str(exc))


@app.exception_handler(TenantMismatch)
async def tenant_mismatch_handler(request, exc: TenantMismatch):
    """Report records of other tenants as absent."""
    logger.warning(f"Tenant mismatch: {exc}")
    return _error(status.HTTP_404_NOT_FOUND, NotFound.code, "Not found")


@app.exception_handler(Conflict)
async def conflict_handler(request, exc: Conflict):
    """Handle duplicate records."""
    return _error(status.HTTP_409_CONFLICT, exc.code, str(exc))


@app.exception_handler(StorageError)
async def storage_error_handler(request, exc: StorageError):
    """Handle persistence failures."""
    logger.error(f"Storage error: {exc}")
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc.code, str(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request, exc: RequestValidationError):
    """Malformed identifiers and bodies are client errors."""
    return _error(status.HTTP_400_BAD_REQUEST, "validation_error", str(exc.errors()))


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=settings.version,
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "tenants": "/tenants",
            "packages": "/packages",
            "emails": "/emails",
            "match_email": "/emails/{email_id}/match",
            "get_email": "/emails/{email_id}",
            "get_matches": "/emails/{email_id}/matches",
            "docs": "/docs",
        },
    }


@app.post(
    "/tenants",
    response_model=TenantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_tenant(
    request: CreateTenantRequest,
    session: AsyncSession = Depends(get_session),
) -> TenantResponse:
    """Register a new agency tenant."""
    tenant = await ingest.register_tenant(
        session,
        name=request.name,
        slug=request.slug,
        tenant_id=request.id,
    )
    return TenantResponse(id=tenant.id, name=tenant.name, slug=tenant.slug, status=tenant.status)


@app.post(
    "/packages",
    response_model=PackageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_package(
    request: CreatePackageRequest,
    tenant_id: str = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_session),
) -> PackageResponse:
    """Add a package to the caller's catalog."""
    package = await ingest.create_package(
        session,
        tenant_id,
        title=request.title,
        price=request.price,
        currency=request.currency,
        destination_city=request.destination_city,
        destination_country=request.destination_country,
        duration_days=request.duration_days,
        capacity=request.capacity,
        available_from=request.available_from,
        available_until=request.available_until,
        status=request.status,
    )
    return _package_response(package)


@app.get("/packages", response_model=list[PackageResponse])
async def list_packages(
    package_status: models.PackageStatus | None = Query(default=None, alias="status"),
    tenant_id: str = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_session),
) -> list[PackageResponse]:
    """List the caller's catalog."""
    packages = await ingest.list_packages(session, tenant_id, status=package_status)
    return [_package_response(p) for p in packages]


@app.patch("/packages/{package_id}/status", response_model=PackageResponse)
async def update_package_status(
    package_id: int,
    request: PackageStatusRequest,
    tenant_id: str = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_session),
) -> PackageResponse:
    """Publish, unpublish or archive a package."""
    package = await ingest.set_package_status(session, tenant_id, package_id, request.status)
    return _package_response(package)


@app.post(
    "/emails",
    response_model=EmailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_email(
    request: CreateEmailRequest,
    tenant_id: str = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_session),
) -> EmailResponse:
    """Record an inbound email with its extracted trip data."""
    email = await ingest.record_email(
        session,
        tenant_id,
        message_id=request.message_id,
        from_email=request.from_email,
        subject=request.subject,
        body_text=request.body_text,
        extracted_data=request.extracted_data,
        received_at=request.received_at,
    )
    return _email_response(email)


@app.get("/emails/{email_id}", response_model=EmailResponse)
async def get_email(
    email_id: int,
    tenant_id: str = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_session),
) -> EmailResponse:
    """Return an email with its last saved matches, without recomputing."""
    email = await ingest.get_email(session, email_id, tenant_id)
    return _email_response(email)


@app.get("/emails/{email_id}/matches", response_model=list[MatchResultDTO])
async def get_email_matches(
    email_id: int,
    tenant_id: str = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_session),
) -> list[MatchResultDTO]:
    """Return the last saved matches of an email."""
    results = await get_matches(session, email_id, tenant_id)
    return [_match_dto(r) for r in results]


@app.post(
    "/emails/{email_id}/match",
    response_model=list[MatchResultDTO],
    status_code=status.HTTP_200_OK,
)
async def match_email_packages(
    email_id: int,
    limit: int | None = Query(default=None, ge=1, le=500),
    tenant_id: str = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_session),
) -> list[MatchResultDTO]:
    """Match an email against the caller's active packages and store the ranking.

    Replaces any previously stored matches for the email. Returns the
    ordered list, which may be empty.
    """
    logger.info(f"Matching email {email_id} for tenant {tenant_id}")

    results = await match_and_save(session, email_id, tenant_id, limit=limit)
    return [_match_dto(r) for r in results]
