"""Error taxonomy shared by the tenancy, matching and storage layers.

Validation errors (tenant and lookup failures) surface to the caller as-is.
Storage failures are wrapped in StorageError with the driver error chained,
and are never retried here.
"""
from __future__ import annotations


class CRMError(Exception):
    """Base class for all service errors."""
    code = "crm_error"


class TenantResolutionError(CRMError):
    """Raised when a request does not resolve to exactly one tenant."""
    code = "tenant_resolution_error"

    def __init__(self, reason: str, detail: str | None = None) -> None:
        self.reason = reason
        super().__init__(detail or f"Tenant could not be resolved: {reason}")


class InvalidTenant(CRMError):
    """Raised when a tenant id is empty, unknown or not active."""
    code = "invalid_tenant"


class TenantMismatch(CRMError):
    """Raised when a record exists but belongs to another tenant."""
    code = "tenant_mismatch"


class NotFound(CRMError):
    """Raised when an email, package or tenant does not exist."""
    code = "not_found"


class StorageError(CRMError):
    """Raised when the underlying database operation fails."""
    code = "storage_error"


class Conflict(CRMError):
    """Raised when a record with the same natural key already exists."""
    code = "conflict"
