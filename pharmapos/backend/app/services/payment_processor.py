"""Payment gateway seam. Gateways are opaque: a charge either succeeds or it does not."""
from decimal import Decimal
from typing import Protocol, runtime_checkable

from app.db.models.subscription import Subscription


@runtime_checkable
class PaymentProcessor(Protocol):
    async def charge(self, subscription: Subscription, amount: Decimal) -> bool:
        ...
