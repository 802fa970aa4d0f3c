"""
Menu Seeding Script

Adds sample tables and menu items to the restaurant owned by an email.
The owner must have logged in once (POST /auth/google) so the tenant exists.

Run from project root: python scripts/seed_menu.py owner@pizzeria.com

Author: Khalil Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from sqlalchemy import select  # noqa: E402

from app.core.config import get_logger, setup_logging  # noqa: E402
from app.database import async_session_maker, engine, init_db  # noqa: E402
from app.models import MenuItem, RestaurantTable, User  # noqa: E402

logger = get_logger("seed_menu")

SAMPLE_TABLES = [("T1", 2), ("T2", 4), ("T3", 4), ("T4", 6), ("PATIO-1", 4)]

SAMPLE_MENU = [
    ("Paneer Tikka", "Starters", "240.00"),
    ("Veg Spring Roll", "Starters", "180.00"),
    ("Butter Chicken", "Mains", "360.00"),
    ("Dal Makhani", "Mains", "260.00"),
    ("Garlic Naan", "Breads", "60.00"),
    ("Jeera Rice", "Rice", "150.00"),
    ("Gulab Jamun", "Desserts", "90.00"),
    ("Masala Chai", "Beverages", "40.00"),
    ("Fresh Lime Soda", "Beverages", "80.00"),
]


async def seed(owner_email: str) -> dict[str, int]:
    """Insert sample tables and menu items that do not exist yet."""
    await init_db()

    async with async_session_maker() as db:
        user = await db.scalar(select(User).where(User.email == owner_email.strip().lower()))
        if user is None:
            raise SystemExit(f"No user with email {owner_email}; log in once first.")
        tenant_id = user.tenant_id

        existing_tables = set(
            (await db.execute(
                select(RestaurantTable.table_number).where(RestaurantTable.tenant_id == tenant_id)
            )).scalars().all()
        )
        existing_items = set(
            (await db.execute(
                select(MenuItem.name).where(MenuItem.tenant_id == tenant_id)
            )).scalars().all()
        )

        tables = [
            RestaurantTable(tenant_id=tenant_id, table_number=number, capacity=capacity)
            for number, capacity in SAMPLE_TABLES
            if number not in existing_tables
        ]
        items = [
            MenuItem(tenant_id=tenant_id, name=name, category=category, price=Decimal(price))
            for name, category, price in SAMPLE_MENU
            if name not in existing_items
        ]
        db.add_all(tables + items)
        await db.commit()

    await engine.dispose()
    logger.info(f"Tenant {tenant_id}: added {len(tables)} tables and {len(items)} menu items")
    return {"tables": len(tables), "menu_items": len(items)}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed sample tables and menu items")
    parser.add_argument("email", help="Owner email of the restaurant to seed")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(seed(args.email))
