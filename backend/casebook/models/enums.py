from enum import Enum

# Stored as strings (native enums disabled for easier evolution).


class TenantRoleEnum(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    LAWYER = "lawyer"
    ASSISTANT = "assistant"
    VIEWER = "viewer"


class ClientTypeEnum(str, Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"


class CaseStatusEnum(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    ARCHIVED = "archived"
    SUSPENDED = "suspended"


class CasePriorityEnum(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class CaseTypeEnum(str, Enum):
    CIVIL = "civil"
    CRIMINAL = "criminal"
    LABOR = "labor"
    FAMILY = "family"
    TAX = "tax"
    ADMINISTRATIVE = "administrative"
    OTHER = "other"


class DeadlineStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
