#!/usr/bin/env python3
"""
Seed the service catalogue and subscription plans.

Safe to run repeatedly: rows are matched by name and only missing ones are
inserted.
"""
import asyncio
import os
import sys

# Add the project root to the Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from sqlalchemy import select  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import AsyncSessionLocal, create_tables, engine  # noqa: E402
from app.models import Service, SubscriptionPlan  # noqa: E402

SERVICES = [
    {"name": "Dinner Date", "billing_type": "per_day", "base_rate": 500_000, "commission": 15,
     "description": "Dinner and conversation"},
    {"name": "Travel Partner", "billing_type": "per_day", "base_rate": 1_500_000, "commission": 15,
     "description": "Company for a day trip or journey"},
    {"name": "Drinking Friend", "billing_type": "per_hour", "hourly_rate": 150_000, "commission": 15,
     "description": "Company for drinks, billed by the hour"},
    {"name": "Private Session", "billing_type": "per_session", "one_time_price": 800_000,
     "one_night_price": 2_000_000, "commission": 20, "description": "One-time or overnight session"},
    {"name": "Video Call", "billing_type": "per_minute", "minute_rate": 10_000, "commission": 20,
     "description": "Audio or video call, billed per started minute"},
]

PLANS = [
    {"name": "24-Hour Trial", "price": 10_000, "duration_days": 1,
     "description": "Try every feature for a day", "features": ["Browse all models", "Unlimited bookings"]},
    {"name": "Weekly", "price": 50_000, "duration_days": 7,
     "description": "One week of full access", "features": ["Browse all models", "Unlimited bookings"]},
    {"name": "Monthly", "price": 150_000, "duration_days": 30, "is_popular": True,
     "description": "Best value for regulars",
     "features": ["Browse all models", "Unlimited bookings", "Priority support"]},
]


async def seed():
    print(f"Seeding catalogue into {settings.database_url}")
    await create_tables()

    async with AsyncSessionLocal() as db:
        added = 0
        for model, rows in ((Service, SERVICES), (SubscriptionPlan, PLANS)):
            existing = set((await db.execute(select(model.name))).scalars().all())
            for row in rows:
                if row["name"] in existing:
                    continue
                db.add(model(status="active", **row))
                added += 1
        await db.commit()
    await engine.dispose()

    print(f"✅ Added {added} rows ({len(SERVICES)} services, {len(PLANS)} plans defined)")


if __name__ == "__main__":
    asyncio.run(seed())
