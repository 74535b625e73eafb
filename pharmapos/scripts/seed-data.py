# scripts/seed-data.py
"""Seed database with the default plan catalog and a demo pharmacy"""
import asyncio
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from app.db.database import async_session_local, init_db
from app.db.repositories.user_repository import UserRepository
from app.db.repositories.tenant_repository import TenantRepository
from app.services.plan_catalog import PlanCatalogService
from app.services.subscription_service import SubscriptionService

DEMO_TENANT_ID = "demo-pharmacy-001"


async def seed_data():
    """Seed database with demo data"""
    await init_db()

    async with async_session_local() as session:
        catalog = PlanCatalogService(session)
        created = await catalog.seed_default_plans()
        print(f"Seeded {created} plan(s)")

        tenant_repo = TenantRepository(session)
        user_repo = UserRepository(session)

        if await tenant_repo.get_by_id(DEMO_TENANT_ID):
            print(f"Tenant {DEMO_TENANT_ID} already exists, skipping")
            return

        # Create demo tenant
        tenant = await tenant_repo.create({
            "id": DEMO_TENANT_ID,
            "name": "Demo Pharmacy",
        })
        print(f"Created tenant: {tenant.name}")

        # Create demo admin
        user = await user_repo.create({
            "email": "admin@demo-pharmacy.test",
            "full_name": "Demo Admin",
            "tenant_id": tenant.id,
            "role": "tenant_admin",
            "is_active": True,
        })
        print(f"Created user: {user.email}")

        basic = await catalog.get_plan_by_name("basic")
        subscription = await SubscriptionService(session).create_subscription(tenant.id, basic.id)
        print(f"Created subscription {subscription.id} on plan {basic.name}, ends {subscription.end_date:%Y-%m-%d}")


if __name__ == "__main__":
    asyncio.run(seed_data())
