"""Error taxonomy for subscription and usage-limit handling."""
from typing import Optional


class SubscriptionError(Exception):
    """Base class for subscription core errors"""


class NotEntitled(SubscriptionError):
    """Tenant has no active or grace-period subscription"""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"No active subscription found for tenant {tenant_id}")


class StoreUnavailable(SubscriptionError):
    """Transient persistence failure"""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Store unavailable during {operation}: {cause}")


class InvalidPlanConfiguration(SubscriptionError):
    """A plan ceiling is missing or malformed"""

    def __init__(self, plan_name: Optional[str], field: str, value):
        self.plan_name = plan_name
        self.field = field
        self.value = value
        super().__init__(f"Invalid value for {field} on plan {plan_name!r}: {value!r}")


class NotificationDeliveryFailure(SubscriptionError):
    """Notification rows could not be persisted"""


class SubscriptionStateError(SubscriptionError):
    """Operation is not permitted in the subscription's current state"""
