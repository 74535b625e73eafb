"""
Plan Catalog

Named subscription plans and their per-resource ceilings. Plans are
soft-deactivated, never deleted, so historical subscriptions keep resolving.
"""
from typing import Any, Dict, List, Optional, Union
import logging

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import DEFAULT_PLANS, RESOURCE_CEILING_FIELDS, UNLIMITED
from app.core.exceptions import InvalidPlanConfiguration, StoreUnavailable, SubscriptionError
from app.db.models.plan import SubscriptionPlan
from app.db.repositories.plan_repository import PlanRepository
from app.schemas.subscription import PlanCreate, PlanUpdate

logger = logging.getLogger(__name__)


def plan_ceiling(plan: SubscriptionPlan, resource: str) -> int:
    """
    Ceiling for `resource`, with malformed stored values read as 0.

    A bad row must never unlock unlimited usage, so it denies instead.
    """
    try:
        return plan.ceiling_for(resource)
    except InvalidPlanConfiguration as e:
        logger.warning(f"{e}; treating ceiling as 0")
        return 0


def validate_ceilings(plan_name: Optional[str], values: Dict[str, Any]) -> None:
    for field in RESOURCE_CEILING_FIELDS.values():
        if field not in values or values[field] is None:
            continue
        value = values[field]
        if isinstance(value, bool) or not isinstance(value, int) or value < UNLIMITED:
            raise InvalidPlanConfiguration(plan_name, field, value)


def _as_dict(data: Union[BaseModel, Dict[str, Any]], exclude_unset: bool = False) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=exclude_unset)
    return dict(data)


class PlanCatalogService:
    """Read and maintain the plan catalog"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.plans = PlanRepository(session)

    async def list_plans(self, include_inactive: bool = False) -> List[SubscriptionPlan]:
        return await self.plans.list_plans(include_inactive=include_inactive)

    async def get_plan(self, plan_id: int) -> Optional[SubscriptionPlan]:
        return await self.plans.get(plan_id)

    async def get_plan_by_name(self, name: str) -> Optional[SubscriptionPlan]:
        return await self.plans.get_by_name(name)

    async def create_plan(self, data: Union[PlanCreate, Dict[str, Any]]) -> SubscriptionPlan:
        """
        Create a plan.

        Raises:
            InvalidPlanConfiguration: a ceiling is not -1 or a non-negative integer
            SubscriptionError: a plan with this name already exists
        """
        values = _as_dict(data)
        name = values.get("name")
        validate_ceilings(name, values)

        if await self.plans.get_by_name(name):
            raise SubscriptionError(f"Plan {name!r} already exists")

        try:
            plan = await self.plans.create(values)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating plan {name}: {e}")
            raise StoreUnavailable("create_plan", e) from e

        logger.info(f"Created plan {plan.name} (id={plan.id})")
        return plan

    async def update_plan(
        self, plan_id: int, data: Union[PlanUpdate, Dict[str, Any]]
    ) -> Optional[SubscriptionPlan]:
        plan = await self.plans.get(plan_id)
        if not plan:
            return None

        values = _as_dict(data, exclude_unset=True)
        validate_ceilings(values.get("name", plan.name), values)

        for key, value in values.items():
            setattr(plan, key, value)

        try:
            await self.session.commit()
            await self.session.refresh(plan)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error updating plan {plan_id}: {e}")
            raise StoreUnavailable("update_plan", e) from e

        logger.info(f"Updated plan {plan.name}: {sorted(values)}")
        return plan

    async def deactivate_plan(self, plan_id: int) -> Optional[SubscriptionPlan]:
        """Hide a plan from new subscriptions; existing subscriptions keep it"""
        return await self.update_plan(plan_id, {"is_active": False})

    async def seed_default_plans(self) -> int:
        """Insert any missing default plan. Returns the number created."""
        created = 0
        for definition in DEFAULT_PLANS:
            if await self.plans.get_by_name(definition["name"]):
                continue
            await self.create_plan(PlanCreate(**definition))
            created += 1

        if created:
            logger.info(f"Seeded {created} default plan(s)")
        return created

    async def find_cheapest_plan_with_feature(self, feature: str) -> Optional[SubscriptionPlan]:
        for plan in await self.plans.list_plans():
            if plan.has_feature(feature):
                return plan
        return None
