"""
Prefect Workflow Orchestration - Tag Recalculation

Scheduled recalculation of customer tags for a set of restaurants,
followed by dispatch of the triggers each pass created. Restaurants are
recalculated one at a time, each in its own transaction.
"""

from datetime import datetime
from typing import List, Optional

from prefect import flow, get_run_logger, task

from restaurant_crm.automation import process_pending_triggers, recalculate_restaurant
from restaurant_crm.config.logging import configure_logging
from restaurant_crm.database.connection import close_database, get_db, init_database
from restaurant_crm.serving.cache import summary_cache
from restaurant_crm.tagging.models import ensure_utc, utc_now


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="recalculate_restaurant_tags",
    description="Run a full tagging pass for one restaurant",
    retries=2,
    retry_delay_seconds=30,
)
async def recalculate_restaurant_tags(restaurant_id: str, as_of: datetime) -> dict:
    """Recalculate and persist tags, summary and triggers"""
    logger = get_run_logger()

    async with get_db() as db:
        report = await recalculate_restaurant(db, restaurant_id, as_of=as_of)

    await summary_cache.delete(restaurant_id)

    logger.info(
        f"Restaurant {restaurant_id}: {report.customers_evaluated} customers, "
        f"{report.triggers_created} new triggers"
    )
    return {
        "restaurant_id": restaurant_id,
        "customers_evaluated": report.customers_evaluated,
        "customers_changed": report.customers_changed,
        "triggers_created": report.triggers_created,
    }


@task(
    name="dispatch_pending_triggers",
    description="Compose and hand off messages for pending triggers",
    retries=2,
    retry_delay_seconds=60,
)
async def dispatch_pending_triggers(restaurant_id: str, limit: int = 500) -> dict:
    """Process pending triggers for one restaurant"""
    logger = get_run_logger()

    async with get_db() as db:
        outcomes = await process_pending_triggers(db, restaurant_id, limit=limit)

    logger.info(f"Restaurant {restaurant_id}: {len(outcomes)} triggers processed")
    return {"restaurant_id": restaurant_id, "processed": len(outcomes)}


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="recalculate_customer_tags",
    description="Recalculate customer tags and dispatch automation triggers",
)
async def recalculate_customer_tags(
    restaurant_ids: List[str],
    as_of: Optional[datetime] = None,
    dispatch: bool = True,
) -> dict:
    """
    Nightly tag recalculation.

    Steps:
    1. Recalculate tags for each restaurant
    2. Process the pending triggers of each restaurant
    """
    logger = get_run_logger()
    as_of = ensure_utc(as_of) if as_of else utc_now()

    logger.info(f"Recalculating tags for {len(restaurant_ids)} restaurants as of {as_of.isoformat()}")

    await init_database()
    results = {"as_of": as_of.isoformat(), "restaurants": []}

    try:
        for restaurant_id in restaurant_ids:
            entry = await recalculate_restaurant_tags(restaurant_id, as_of)
            if dispatch:
                entry["dispatch"] = await dispatch_pending_triggers(restaurant_id)
            results["restaurants"].append(entry)
    finally:
        await close_database()

    results["status"] = "success"
    return results


if __name__ == "__main__":
    import asyncio
    import sys

    configure_logging()
    asyncio.run(recalculate_customer_tags(sys.argv[1:] or ["demo"]))
