"""
Demo Data Seeder

Writes Faker-generated customers with order history into the configured
database, then runs a first recalculation pass so tags, a summary and
new_customer triggers exist for local demos.

Usage:
    python scripts/seed_demo_data.py --restaurant demo --customers 200
"""

import argparse
import asyncio

import structlog

from restaurant_crm.automation import recalculate_restaurant
from restaurant_crm.config.logging import configure_logging
from restaurant_crm.data import DemoCustomerProvider
from restaurant_crm.database import CustomerStore, close_database, get_db, init_database

logger = structlog.get_logger(__name__)


async def seed(restaurant_id: str, count: int, seed_value: int) -> None:
    await init_database(create_schema=True)
    try:
        customers = DemoCustomerProvider(count=count, seed=seed_value).customers(restaurant_id)

        async with get_db() as db:
            store = CustomerStore(db)
            for customer in customers:
                await store.upsert(customer)

        logger.info("Demo customers stored", restaurant_id=restaurant_id, customers=len(customers))

        async with get_db() as db:
            report = await recalculate_restaurant(db, restaurant_id)

        logger.info(
            "Initial tagging pass complete",
            restaurant_id=restaurant_id,
            triggers=report.triggers_created,
        )
    finally:
        await close_database()


def main():
    parser = argparse.ArgumentParser(description="Seed demo restaurant customers")
    parser.add_argument("--restaurant", default="demo", help="Restaurant id")
    parser.add_argument("--customers", type=int, default=100, help="Number of customers")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(seed(args.restaurant, args.customers, args.seed))


if __name__ == "__main__":
    main()
