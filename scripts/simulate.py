"""
Chaos Simulation Script

Simulates a busy service against a running API:
    - Logs in a throwaway owner (development / mock identity)
    - Seeds tables and menu items for the new restaurant
    - Fires concurrent orders, then races status updates on the same orders
    - Checks that a rotated refresh token cannot be reused

Run from project root: python scripts/simulate.py --orders 50

Author: Khalil Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import os
import random
import sys
import time
import uuid
from datetime import datetime
from typing import Any

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from sqlalchemy import select  # noqa: E402

from app.database import async_session_maker, engine  # noqa: E402
from app.models import MenuItem, RestaurantTable  # noqa: E402
from scripts.seed_menu import seed  # noqa: E402

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

FIRST_NAMES = ["Aarav", "Diya", "Kabir", "Meera", "Rohan", "Isha", "Vikram", "Anaya", "Arjun", "Priya"]
LAST_NAMES = ["Sharma", "Iyer", "Patel", "Nair", "Reddy", "Gupta", "Menon", "Singh", "Das", "Rao"]
ORDER_TYPES = ["DINE_IN", "TAKEAWAY", "DELIVERY"]
STATUS_FLOW = ["CONFIRMED", "PREPARING", "READY", "SERVED", "COMPLETED"]


def generate_random_customer() -> dict[str, str]:
    """Generate random customer info."""
    first = random.choice(FIRST_NAMES)
    last = random.choice(LAST_NAMES)
    return {
        "customerName": f"{first} {last}",
        "customerPhone": f"98{random.randint(10000000, 99999999)}",
    }


def generate_order_payload(menu_ids: list[str], table_ids: list[str]) -> dict[str, Any]:
    order_type = random.choice(ORDER_TYPES)
    payload = {
        **generate_random_customer(),
        "orderType": order_type,
        "deviceId": f"pos-terminal-{random.randint(1, 4):02d}",
        "notes": random.choice([None, "Less spicy", "Birthday table", "Pack separately"]),
        "items": [
            {"menuItemId": menu_id, "quantity": random.randint(1, 3)}
            for menu_id in random.sample(menu_ids, k=random.randint(1, 4))
        ],
    }
    if order_type == "DINE_IN" and table_ids:
        payload["tableId"] = random.choice(table_ids)
    return payload


async def load_menu(tenant_id: str) -> tuple[list[str], list[str]]:
    """Menu item and table ids of the tenant, read straight from the database."""
    async with async_session_maker() as db:
        menu_ids = (await db.execute(
            select(MenuItem.id).where(MenuItem.tenant_id == uuid.UUID(tenant_id))
        )).scalars().all()
        table_ids = (await db.execute(
            select(RestaurantTable.id).where(RestaurantTable.tenant_id == uuid.UUID(tenant_id))
        )).scalars().all()
    await engine.dispose()
    return [str(i) for i in menu_ids], [str(i) for i in table_ids]


async def login(client: httpx.AsyncClient, email: str) -> dict[str, Any]:
    response = await client.post(
        f"{API_BASE_URL}/auth/google",
        json={"email": email, "name": "Simulation Owner", "googleId": uuid.uuid4().hex},
    )
    response.raise_for_status()
    return response.json()


# =============================================================================
# ORDER TRAFFIC
# =============================================================================

async def send_order(
    client: httpx.AsyncClient,
    headers: dict[str, str],
    payload: dict[str, Any],
    order_num: int,
) -> dict[str, Any]:
    start_time = time.time()
    try:
        response = await client.post(f"{API_BASE_URL}/orders", json=payload, headers=headers, timeout=30.0)
        elapsed = round(time.time() - start_time, 3)
        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data["id"],
                "version": data["version"],
                "total": float(data["totalAmount"]),
                "time": elapsed,
            }
        return {"order_num": order_num, "success": False, "error": response.text[:100], "time": elapsed}
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {"order_num": order_num, "success": False, "error": str(e)[:100], "time": elapsed}


async def race_status_update(
    client: httpx.AsyncClient,
    headers: dict[str, str],
    order: dict[str, Any],
    status: str,
) -> int:
    """Status update pinned to the version we last saw; 409 when another writer won."""
    response = await client.patch(
        f"{API_BASE_URL}/orders/{order['order_id']}/status",
        json={"status": status, "expectedVersion": order["version"]},
        headers=headers,
    )
    return response.status_code


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    print("=" * 70)
    print("CHAOS SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"Total Orders: {num_orders}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    email = f"sim-{uuid.uuid4().hex[:8]}@example.com"

    async with httpx.AsyncClient() as client:
        auth = await login(client, email)
        tenant_id = auth["tenant"]["id"]
        print(f"\nOnboarded tenant {tenant_id} ({email})")

        await seed(email)
        menu_ids, table_ids = await load_menu(tenant_id)
        headers = {"Authorization": f"Bearer {auth['accessToken']}"}

        start_time = time.time()
        results = await asyncio.gather(*[
            send_order(client, headers, generate_order_payload(menu_ids, table_ids), i + 1)
            for i in range(num_orders)
        ])
        order_time = round(time.time() - start_time, 2)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        # Two devices update the same orders at once: exactly one of each pair must win
        race_codes = await asyncio.gather(*[
            race_status_update(client, headers, order, status)
            for order in successful
            for status in random.sample(STATUS_FLOW, k=2)
        ])
        wins = race_codes.count(200)
        conflicts = race_codes.count(409)

        # Refresh rotation: the first refresh succeeds, replaying the old token fails
        first = await client.post(f"{API_BASE_URL}/auth/refresh", json={"refreshToken": auth["refreshToken"]})
        replay = await client.post(f"{API_BASE_URL}/auth/refresh", json={"refreshToken": auth["refreshToken"]})

    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nSuccessful Orders: {len(successful)}/{num_orders}")
    print(f"Failed Orders: {len(failed)}/{num_orders}")
    print(f"Order Burst Time: {order_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        total_revenue = sum(r["total"] for r in successful)
        print(f"   Average Response: {avg_time}s")
        print(f"   Total Revenue: {total_revenue:.2f}")

    print(f"\nStatus races: {wins} won, {conflicts} conflicts (expected {len(successful)} each)")
    print(f"Refresh rotation: first={first.status_code}, replay={replay.status_code} (expected 200/401)")

    if failed:
        print("\nFailed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("VERIFICATION STEPS")
    print("=" * 70)
    print("1. Check Celery terminal - all export tasks should complete")
    print(f"2. Run: python scripts/verify.py {tenant_id}")
    print("=" * 70)

    return {
        "tenant_id": tenant_id,
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "race_wins": wins,
        "race_conflicts": conflicts,
        "results": results,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    args = parser.parse_args()

    asyncio.run(run_simulation(args.orders))
