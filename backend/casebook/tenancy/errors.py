"""
Custom exceptions for tenant resolution, scoping and isolation.

Every error that could reveal another tenant's data maps to the same generic
response at the HTTP boundary.
"""


class TenancyError(Exception):
    code = "E_TENANCY"
    status_code = 400
    public_message = "Bad request"

    def to_payload(self) -> dict:
        return {"detail": self.public_message, "code": self.code}


class MissingTenantContext(TenancyError):
    """Raised when an operation needs an ambient tenant and none is active."""

    code = "E_MISSING_TENANT_CONTEXT"
    status_code = 400


class NotFound(TenancyError):
    """Raised when no row matches both the requested key and the current tenant."""

    code = "E_NOT_FOUND"
    status_code = 404
    public_message = "Resource not found"


class CrossTenantWrite(NotFound):
    """Raised when a flush would touch a row owned by another tenant."""


class CountMismatchDefect(TenancyError):
    """Raised when a paginated count and its data page disagree. A programming error."""

    code = "E_COUNT_MISMATCH"
    status_code = 500
    public_message = "Internal server error"


class UnscopedStatement(TenancyError):
    """Raised for a Core statement on a tenant-owned table that the session cannot filter."""

    code = "E_UNSCOPED_STATEMENT"
    status_code = 500
    public_message = "Internal server error"


class TenantNotSelected(TenancyError):
    """Raised when a request carries no resolvable tenant selector."""

    code = "E_TENANT_NOT_SELECTED"
    status_code = 400
    public_message = "Tenant must be provided via header or subdomain"


class TenantForbidden(TenancyError):
    """Raised when a user attempts an action outside their tenant or role."""

    code = "E_TENANT_FORBIDDEN"
    status_code = 403
    public_message = "Forbidden"

