"Tenancy utilities: ambient context, session scoping hooks, escape hatch and request boundary."

from .constants import SKIP_TENANT_SCOPE, TENANT_HEADER  # noqa: F401
from .context import (  # noqa: F401
    TenantContext,
    get_context,
    get_current_tenant_id,
    require_tenant_id,
    run,
    run_async,
    tenant_scope,
)
from .errors import (  # noqa: F401
    CountMismatchDefect,
    CrossTenantWrite,
    MissingTenantContext,
    NotFound,
    TenancyError,
    UnscopedStatement,
)
