from .tenants import Tenant
from .users import User
from .tenant_users import TenantUser
from .clients import Client
from .cases import Case
from .deadlines import Deadline
