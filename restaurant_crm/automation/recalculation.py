"""
Restaurant Recalculation

Loads a restaurant's stored customers, runs a full tagging pass against
the tags they currently carry, and writes back tags, the summary snapshot
and any new automation triggers in the caller's transaction.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog
from prometheus_client import Counter, Histogram
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_crm.config import TaggingSettings
from restaurant_crm.database.repository import CustomerStore, SummaryStore, TriggerStore
from restaurant_crm.quality.validators import validate_customer_records
from restaurant_crm.tagging.models import ensure_utc, utc_now
from restaurant_crm.tagging.pipeline import PassResult, TaggingPipeline
from restaurant_crm.tagging.triggers import snapshot_tags

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

RECALCULATION_TIME = Histogram(
    "restaurant_crm_recalculation_seconds",
    "Time spent on a stored recalculation pass",
)

TRIGGERS_CREATED = Counter(
    "restaurant_crm_triggers_created_total",
    "Automation triggers appended to the trigger log",
    ["restaurant_id"],
)


@dataclass(frozen=True)
class RecalculationReport:
    """What a stored recalculation pass changed"""
    restaurant_id: str
    as_of: datetime
    customers_evaluated: int
    customers_changed: int
    triggers_created: int
    result: PassResult

    def to_dict(self) -> dict:
        return {
            "restaurant_id": self.restaurant_id,
            "as_of": self.as_of.isoformat(),
            "customers_evaluated": self.customers_evaluated,
            "customers_changed": self.customers_changed,
            "triggers_created": self.triggers_created,
            "summary": self.result.summary.to_dict(),
        }


async def recalculate_restaurant(
    session: AsyncSession,
    restaurant_id: str,
    as_of: Optional[datetime] = None,
    policy: Optional[TaggingSettings] = None,
) -> RecalculationReport:
    """
    Recalculate and persist tags for every active customer of a restaurant.

    Args:
        session: Open session; the caller commits
        restaurant_id: Restaurant to recalculate
        as_of: Reference time, defaults to now
        policy: Tagging thresholds, defaults to configured settings

    Returns:
        RecalculationReport

    Raises:
        ValueError: If stored customer records fail validation
    """
    start = time.perf_counter()
    as_of = ensure_utc(as_of) if as_of else utc_now()
    log = logger.bind(restaurant_id=restaurant_id, as_of=as_of.isoformat())

    customers = await CustomerStore(session).list_customers(restaurant_id)
    validate_customer_records(customers)

    # Taken before the pass; nothing below may touch it
    previous_tags = snapshot_tags(customers)

    result = TaggingPipeline(policy).run(
        customers,
        previous_tags,
        restaurant_id=restaurant_id,
        as_of=as_of,
    )

    await CustomerStore(session).write_tags(result.customers)
    await SummaryStore(session).save(result.summary)
    created = await TriggerStore(session).append(result.triggers, restaurant_id=restaurant_id)

    TRIGGERS_CREATED.labels(restaurant_id=restaurant_id).inc(created)
    RECALCULATION_TIME.observe(time.perf_counter() - start)

    report = RecalculationReport(
        restaurant_id=restaurant_id,
        as_of=as_of,
        customers_evaluated=len(result.customers),
        customers_changed=len(result.changed_customer_ids),
        triggers_created=created,
        result=result,
    )
    log.info(
        "Restaurant recalculated",
        customers=report.customers_evaluated,
        changed=report.customers_changed,
        triggers=report.triggers_created,
    )
    return report
