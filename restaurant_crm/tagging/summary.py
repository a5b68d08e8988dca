"""
Restaurant Summary Aggregator

Folds a tagged customer list into a RestaurantCustomerSummary. The
summary is always regenerated from the full list; nothing is patched
incrementally.
"""

import math
from collections import Counter
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple, Type

from restaurant_crm.config import TaggingSettings, get_settings
from restaurant_crm.tagging.models import (
    ActivityTag,
    BehaviorTag,
    Customer,
    RestaurantCustomerSummary,
    SpendTag,
    TagCount,
    ensure_utc,
    utc_now,
)


def _percentage(count: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(count / total * 100, 2)


def _distribution(
    counts: Counter,
    members: Type[Enum],
    total: int,
) -> Tuple[TagCount, ...]:
    """Counts for every member of the enum, zero included"""
    return tuple(
        TagCount(tag=member.value, count=counts.get(member, 0), percentage=_percentage(counts.get(member, 0), total))
        for member in members
    )


def restaurant_average_visit_gap(customers: Iterable[Customer]) -> float:
    """
    Mean personal visit gap across customers that have one.

    Single-visit customers carry a zero gap and are left out.
    """
    gaps = [c.average_visit_gap_days for c in customers if c.average_visit_gap_days > 0]
    if not gaps:
        return 0.0
    return round(sum(gaps) / len(gaps), 2)


def summarize(
    customers: Sequence[Customer],
    restaurant_id: Optional[str] = None,
    policy: Optional[TaggingSettings] = None,
    as_of: Optional[datetime] = None,
) -> RestaurantCustomerSummary:
    """
    Build the segment summary for a tagged customer list.

    Args:
        customers: Customers whose tags are final for this pass
        restaurant_id: Restaurant the summary belongs to
        policy: Tagging settings (active window, top-N sizes)
        as_of: Reference time, recorded as calculated_at

    Returns:
        RestaurantCustomerSummary, zeroed for an empty list
    """
    policy = policy or get_settings().tagging
    calculated_at = ensure_utc(as_of) if as_of else utc_now()
    total = len(customers)

    spend_counts = Counter(c.spend_tag for c in customers)
    activity_counts = Counter(c.activity_tag for c in customers)
    behavior_counts = Counter(tag for c in customers for tag in c.behavior_tags)

    behavior_distribution = _distribution(behavior_counts, BehaviorTag, total)
    most_common = tuple(
        sorted(
            (entry for entry in behavior_distribution if entry.count > 0),
            key=lambda entry: (-entry.count, entry.tag),
        )[: policy.top_behavior_tags]
    )

    active_since = calculated_at - timedelta(days=policy.active_window_days)
    recently_active = sum(
        1 for c in customers
        if c.last_visit_date is not None and ensure_utc(c.last_visit_date) >= active_since
    )

    with_data = [c for c in customers if c.has_order_history]
    average_order_value = (
        round(sum(c.average_order_value for c in with_data) / len(with_data), 2) if with_data else 0.0
    )

    top_count = math.ceil(total * policy.top_ltv_fraction) if total else 0
    by_ltv = sorted(customers, key=lambda c: (-c.total_spend, c.customer_id))
    top_ltv_ids = tuple(c.customer_id for c in by_ltv[:top_count])

    return RestaurantCustomerSummary(
        restaurant_id=restaurant_id,
        total_customers=total,
        spend_tag_distribution=_distribution(spend_counts, SpendTag, total),
        activity_tag_distribution=_distribution(activity_counts, ActivityTag, total),
        behavior_tag_distribution=behavior_distribution,
        most_common_behavior_tags=most_common,
        churn_rate=_percentage(activity_counts.get(ActivityTag.AT_RISK, 0), total),
        dormant_rate=_percentage(activity_counts.get(ActivityTag.DORMANT, 0), total),
        active_rate=_percentage(recently_active, total),
        new_customers_count=activity_counts.get(ActivityTag.NEW_CUSTOMER, 0),
        insufficient_data_count=activity_counts.get(ActivityTag.INSUFFICIENT_DATA, 0),
        average_visit_gap=restaurant_average_visit_gap(customers),
        average_order_value=average_order_value,
        total_revenue=round(sum(c.total_spend for c in customers), 2),
        top_ltv_customer_ids=top_ltv_ids,
        calculated_at=calculated_at,
    )
