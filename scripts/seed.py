"""
Seed script: creates the default tenant with starter categories and payment methods.
Run from the project root: python -m scripts.seed
"""
import asyncio
import uuid

from sqlalchemy import select
from expense_api.database import AsyncSessionLocal, engine, set_tenant_context
from expense_api.models.tenant import Tenant
from expense_api.models.category import Category, PaymentMethod, Subcategory

# ---------- Fixed UUIDs ----------

DEFAULT_TENANT_ID = uuid.UUID("a0000000-0000-0000-0000-000000000001")

STARTER_CATEGORIES = {
    "Food": ["Groceries", "Restaurants"],
    "Home": ["Rent", "Utilities"],
    "Transport": ["Fuel", "Public transport"],
    "Leisure": [],
}

STARTER_PAYMENT_METHODS = ["Cash", "Debit card", "Credit card"]


async def seed():
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Tenant).where(Tenant.id == DEFAULT_TENANT_ID))
        if result.scalar_one_or_none():
            print("Seed data already exists. Skipping.")
            return

        db.add(Tenant(id=DEFAULT_TENANT_ID, name="Household", is_default=True))
        await db.flush()
        await set_tenant_context(db, str(DEFAULT_TENANT_ID))

        for name, subs in STARTER_CATEGORIES.items():
            category = Category(tenant_id=DEFAULT_TENANT_ID, name=name)
            db.add(category)
            await db.flush()
            for sub in subs:
                db.add(Subcategory(tenant_id=DEFAULT_TENANT_ID, category_id=category.id, name=sub))

        for name in STARTER_PAYMENT_METHODS:
            db.add(PaymentMethod(tenant_id=DEFAULT_TENANT_ID, name=name, is_active=True))

        await db.commit()
        print(
            f"Seeded default tenant with {len(STARTER_CATEGORIES)} categories "
            f"and {len(STARTER_PAYMENT_METHODS)} payment methods."
        )

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
