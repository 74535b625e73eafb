from enum import Enum
from typing import Dict, Any, List


UNLIMITED = -1


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    GRACE_PERIOD = "grace_period"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# Statuses that still carry an entitlement to the plan's ceilings
ENTITLED_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.GRACE_PERIOD.value)


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


BILLING_CYCLE_MONTHS: Dict[str, int] = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.ANNUALLY: 12,
}


class ResourceType(str, Enum):
    USERS = "users"
    PRODUCTS = "products"
    TRANSACTIONS = "transactions"
    BRANCHES = "branches"
    STORAGE = "storage"


# Plan column holding the ceiling for each metered resource
RESOURCE_CEILING_FIELDS: Dict[str, str] = {
    ResourceType.USERS: "max_users",
    ResourceType.PRODUCTS: "max_products",
    ResourceType.TRANSACTIONS: "max_transactions_per_month",
    ResourceType.BRANCHES: "max_branches",
    ResourceType.STORAGE: "max_storage_gb",
}

# Alert/notification type per resource
LIMIT_ALERT_TYPES: Dict[str, str] = {
    ResourceType.USERS: "user_limit",
    ResourceType.PRODUCTS: "product_limit",
    ResourceType.TRANSACTIONS: "transaction_limit",
    ResourceType.BRANCHES: "branch_limit",
    ResourceType.STORAGE: "storage_limit",
}

LIMIT_LABELS: Dict[str, str] = {
    ResourceType.USERS: "User",
    ResourceType.PRODUCTS: "Product",
    ResourceType.TRANSACTIONS: "Transaction",
    ResourceType.BRANCHES: "Branch",
    ResourceType.STORAGE: "Storage",
}

UPGRADE_RECOMMENDATIONS: Dict[str, str] = {
    ResourceType.USERS: "Upgrade your plan to add more users",
    ResourceType.PRODUCTS: "Upgrade your plan to add more products",
    ResourceType.TRANSACTIONS: "Upgrade your plan for more transactions",
    ResourceType.BRANCHES: "Upgrade your plan to add more branches",
    ResourceType.STORAGE: "Upgrade your plan for more storage",
}

ADMIN_OVERRIDE_RECOMMENDATION = "Purchase additional user licenses or upgrade your plan"


class NotificationSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class NotificationCategory(str, Enum):
    SUBSCRIPTION = "subscription"
    LIMIT = "limit"
    UPGRADE = "upgrade"


class SaleStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    VOIDED = "voided"
    REFUNDED = "refunded"


class UserRole(str, Enum):
    ADMIN = "admin"
    TENANT_ADMIN = "tenant_admin"
    PHARMACIST = "pharmacist"
    CASHIER = "cashier"


class ActivityType(str, Enum):
    TRANSACTION = "transaction"
    PRODUCT_OPERATION = "product_operation"
    USER_ACTIVITY = "user_activity"


RENEW_ACTION_URL = "/billing/renew"
UPGRADE_ACTION_URL = "/billing/upgrade"

# Per-row storage estimate in MB, plus a fixed system overhead
STORAGE_ESTIMATE_MB: Dict[str, float] = {
    "users": 0.5,
    "products": 0.2,
    "sales": 0.8,
    "branches": 0.3,
    "usage_records": 0.05,
}
STORAGE_OVERHEAD_MB = 10.0
# Attachments (documents, images) per user, never below the floor
FILE_STORAGE_PER_USER_MB = 0.1
FILE_STORAGE_FLOOR_MB = 0.5

# Request path segment -> plan feature name
FEATURE_NAMES: Dict[str, str] = {
    "inventory": "Inventory Management",
    "products": "Inventory Management",
    "sales": "Point of Sale",
    "reports": "Basic Reports",
    "analytics": "Advanced Analytics",
    "users": "User Management",
    "branches": "Multi-Branch Management",
    "prescriptions": "Prescription Management",
    "patients": "Patient Management",
    "suppliers": "Supplier Management",
    "compliance": "Compliance Reporting",
    "shifts": "Shift Management",
    "billing": "Billing Management",
}
ALL_FEATURES = "All Features"
DEFAULT_REQUIRED_PLAN = "professional"

# Default plan catalog, seeded on first start
DEFAULT_PLANS: List[Dict[str, Any]] = [
    {
        "name": "basic",
        "price": 1350,
        "max_users": 5,
        "max_products": 500,
        "max_transactions_per_month": 2000,
        "max_branches": 1,
        "max_storage_gb": 5,
        "features": [
            "Inventory Management",
            "Point of Sale",
            "Basic Reports",
            "User Management",
            "Patient Management",
        ],
    },
    {
        "name": "professional",
        "price": 4050,
        "max_users": 15,
        "max_products": 5000,
        "max_transactions_per_month": 20000,
        "max_branches": 3,
        "max_storage_gb": 10,
        "features": [
            "Inventory Management",
            "Point of Sale",
            "Basic Reports",
            "Advanced Analytics",
            "User Management",
            "Multi-Branch Management",
            "Prescription Management",
            "Patient Management",
            "Supplier Management",
            "Compliance Reporting",
            "Shift Management",
            "Billing Management",
        ],
    },
    {
        "name": "enterprise",
        "price": 13500,
        "max_users": 50,
        "max_products": UNLIMITED,
        "max_transactions_per_month": UNLIMITED,
        "max_branches": 10,
        "max_storage_gb": 50,
        "features": [ALL_FEATURES],
    },
]
