"""
Checkout Simulation Script

Fires concurrent checkout submissions at a running development server
(ENV_MODE=development, mock gateway) and then checks, through the admin
API, that every session produced exactly one order.

Each simulated session submits its order, then resubmits it with the
returned ``orderId`` the way a customer double-clicking "Place order"
would.

Run from project root:
    pip install -e ".[scripts]"
    uvicorn dormside.main:app --port 8001
    python scripts/simulate.py --orders 50
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
DELIVERY_FEE = Decimal("3.00")

# Sample data for random orders
FIRST_NAMES = ["Jamie", "Alex", "Sam", "Riley", "Jordan", "Casey", "Morgan", "Taylor"]
HALLS = ["Elm Hall", "Oak Hall", "North Tower", "Maple House", "West Commons"]
MENU_ITEMS = [
    {"name": "Mac and Cheese", "price": "$9.50"},
    {"name": "Chicken Tenders", "price": "$8.75"},
    {"name": "Garden Salad", "price": "$6.00"},
    {"name": "Cold Brew", "price": "$3.25"},
    {"name": "Cookie", "price": "$1.50"},
]


def generate_random_items() -> list[dict]:
    """Generate random cart lines."""
    return [
        {**random.choice(MENU_ITEMS), "quantity": random.randint(1, 3)}
        for _ in range(random.randint(1, 3))
    ]


def generate_order_payload() -> dict[str, Any]:
    """Generate a consistent body for POST /api/orders."""
    items = generate_random_items()
    fulfillment = random.choice(["pickup", "delivery"])
    tip = Decimal(random.choice(["0", "1.00", "1.50", "2.00"]))
    subtotal = sum(Decimal(i["price"].lstrip("$")) * i["quantity"] for i in items)
    fee = DELIVERY_FEE if fulfillment == "delivery" else Decimal("0")

    return {
        "fulfillment": fulfillment,
        "paymentMethod": random.choice(["cash", "card"]),
        "tip": float(tip),
        "deliveryFee": float(fee),
        "total": float(subtotal + fee + tip),
        "items": items,
        "customer": {
            "name": random.choice(FIRST_NAMES),
            "email": "",
            "phone": f"555-{random.randint(1000, 9999)}",
            "address": f"Room {random.randint(100, 499)}, {random.choice(HALLS)}",
        },
    }


async def run_session(client: httpx.AsyncClient, session_num: int) -> dict[str, Any]:
    """Submit one order, then resubmit it with its orderId."""
    payload = generate_order_payload()
    start_time = time.time()

    try:
        first = await client.post("/api/orders", json=payload)
        if first.status_code != 200:
            return {"session": session_num, "success": False, "error": first.text[:100]}

        order = first.json()["order"]
        second = await client.post("/api/orders", json={**payload, "orderId": order["id"]})
        repeat = second.json().get("order", {})

        return {
            "session": session_num,
            "success": second.status_code == 200 and repeat.get("id") == order["id"],
            "order_id": order["id"],
            "intent_id": order.get("paymentIntentId"),
            "repeat_intent_id": repeat.get("paymentIntentId"),
            "total": order["total"],
            "time": round(time.time() - start_time, 3),
        }
    except httpx.HTTPError as e:
        return {"session": session_num, "success": False, "error": str(e)[:100]}


async def verify_orders(client: httpx.AsyncClient, results: list[dict], username: str, password: str) -> bool:
    """Log in as admin and confirm one stored order per successful session."""
    response = await client.post("/api/admin/login", json={"username": username, "password": password})
    if response.status_code != 200:
        print(f"   ❌ Admin login failed: {response.text}")
        return False

    stored = {o["id"]: o for o in (await client.get("/api/orders")).json()["orders"]}
    successful = [r for r in results if r["success"]]

    missing = [r for r in successful if r["order_id"] not in stored]
    intent_changed = [r for r in successful if r["intent_id"] != r["repeat_intent_id"]]

    print(f"   Orders stored for this run: {len(successful) - len(missing)}/{len(successful)}")
    print(f"   Sessions whose intent changed on resubmission: {len(intent_changed)}")
    return not missing and not intent_changed


async def run_simulation(num_orders: int, username: str, password: str) -> dict[str, Any]:
    print("=" * 70)
    print("🔥 CHECKOUT SIMULATION - CONCURRENT SUBMISSIONS")
    print("=" * 70)
    print(f"📋 Sessions: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0) as client:
        health = await client.get("/health")
        print(f"\n🩺 Health: {health.json().get('status')} ({health.json().get('storageBackend')})")

        results = await asyncio.gather(*(run_session(client, i + 1) for i in range(num_orders)))
        total_time = round(time.time() - start_time, 2)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        print("\n" + "=" * 70)
        print("📊 SIMULATION RESULTS")
        print("=" * 70)
        print(f"\n✅ Successful Sessions: {len(successful)}/{num_orders}")
        print(f"❌ Failed Sessions: {len(failed)}/{num_orders}")
        print(f"⏱️  Total Time: {total_time}s")

        if successful:
            avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
            print(f"   Average Session: {avg_time}s")
            print(f"   💰 Total Revenue: ${sum(r['total'] for r in successful):.2f}")

        for f in failed[:5]:
            print(f"   Session #{f['session']}: {f.get('error', 'Unknown error')}")

        print("\n🔍 Verifying stored orders...")
        verified = await verify_orders(client, list(results), username, password)
        print(f"   {'✅ Verified' if verified else '❌ Verification failed'}")

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "verified": verified,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Checkout Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of sessions")
    parser.add_argument("--url", default=API_BASE_URL, help="Server base URL")
    parser.add_argument("--admin-user", default="admin")
    parser.add_argument("--admin-password", default="admin")
    args = parser.parse_args()

    API_BASE_URL = args.url
    summary = asyncio.run(run_simulation(args.orders, args.admin_user, args.admin_password))
    sys.exit(0 if summary["verified"] and not summary["failed"] else 1)
