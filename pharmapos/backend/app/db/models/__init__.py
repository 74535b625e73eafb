from app.db.models.tenant import Tenant
from app.db.models.user import User
from app.db.models.plan import SubscriptionPlan
from app.db.models.subscription import Subscription
from app.db.models.additional_user import AdditionalUserPurchase
from app.db.models.usage import UsageRecord
from app.db.models.notification import Notification
from app.db.models.inventory import InventoryItem
from app.db.models.sale import Sale
from app.db.models.branch import Branch

__all__ = [
    "Tenant",
    "User",
    "SubscriptionPlan",
    "Subscription",
    "AdditionalUserPurchase",
    "UsageRecord",
    "Notification",
    "InventoryItem",
    "Sale",
    "Branch",
]
