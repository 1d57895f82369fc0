from .tenants import (
    create_tenant,
    get_tenant_by_id,
    get_tenant_by_subdomain,
    list_active_tenant_ids,
    list_tenants,
    update_tenant,
)
from .users import create_user, get_user_by_email
from .tenant_users import add_tenant_user, get_active_membership
from .clients import create_client, get_client, paginate_clients, update_client, delete_client
from .cases import create_case, get_case, paginate_cases, update_case, delete_case
from .deadlines import complete_deadline, create_deadline, get_deadline, paginate_deadlines, update_deadline
