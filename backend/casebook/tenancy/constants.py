"""
Constants for tenancy concerns.
"""

# Header carrying the active tenant selection from the frontend.
TENANT_HEADER = "X-Tenant-ID"

# Column every tenant-owned table carries.
TENANT_COLUMN = "tenant_id"

# Execution option that turns off automatic tenant filtering for one statement.
SKIP_TENANT_SCOPE = "skip_tenant_scope"
