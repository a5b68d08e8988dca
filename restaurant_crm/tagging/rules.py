"""
Tag Rule Evaluator

Derives spend, activity and behavior tags for every customer from the
customer's own stats and restaurant-wide distributions of the same input.
Evaluation is a pure function of (customers, restaurant average gap,
policy, as_of): identical input always yields identical tags.

Order timestamps are absolute instants. The weekday and daypart rules
read them in the restaurant timezone (TAGGING_TIMEZONE).
"""

from collections import Counter
from datetime import datetime
from typing import FrozenSet, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

import numpy as np
import structlog

from restaurant_crm.config import TaggingSettings, get_settings
from restaurant_crm.tagging.models import (
    ActivityTag,
    BehaviorTag,
    Customer,
    CustomerTags,
    SpendTag,
    TagResult,
    ensure_utc,
    utc_now,
)

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 86400.0


class TagRuleEvaluator:
    """
    Rule-based tag evaluation for a restaurant's customers.

    Example:
        evaluator = TagRuleEvaluator(as_of=datetime(2025, 3, 1, tzinfo=timezone.utc))
        results = evaluator.evaluate(customers, restaurant_avg_visit_gap=14.0)
    """

    def __init__(
        self,
        policy: Optional[TaggingSettings] = None,
        as_of: Optional[datetime] = None,
    ):
        self.policy = policy or get_settings().tagging
        self.as_of = ensure_utc(as_of) if as_of else utc_now()
        self.local_tz = ZoneInfo(self.policy.timezone)

    def evaluate(
        self,
        customers: Sequence[Customer],
        restaurant_avg_visit_gap: float,
    ) -> List[TagResult]:
        """
        Compute new tags for each customer, in input order.

        Args:
            customers: Customers to tag
            restaurant_avg_visit_gap: Restaurant-wide average days between visits

        Returns:
            One TagResult per customer
        """
        if not customers:
            return []

        with_data = [c for c in customers if c.has_order_history]
        high_threshold, mid_threshold = self._spend_thresholds(with_data)
        frequent_threshold = self._frequent_visit_threshold(with_data)

        results = []
        for customer in customers:
            if not customer.has_order_history:
                tags = CustomerTags.insufficient_data()
            else:
                tags = CustomerTags(
                    spend_tag=self.spend_tag(customer, high_threshold, mid_threshold),
                    activity_tag=self.activity_tag(customer, restaurant_avg_visit_gap),
                    behavior_tags=self.behavior_tags(customer, frequent_threshold),
                )
            results.append(TagResult(customer_id=customer.customer_id, new_tags=tags))

        logger.debug(
            "Customer tags evaluated",
            customers=len(customers),
            with_order_history=len(with_data),
            high_spend_threshold=high_threshold,
            mid_spend_threshold=mid_threshold,
        )
        return results

    # -------------------------------------------------------------------------
    # Spend
    # -------------------------------------------------------------------------

    def _spend_thresholds(self, customers: Sequence[Customer]) -> Tuple[float, float]:
        """(high, mid) AOV thresholds for this evaluation"""
        if self.policy.spend_strategy == "bands" or not customers:
            return self.policy.high_spend_threshold, self.policy.mid_spend_threshold

        aov = np.array([c.average_order_value for c in customers], dtype=float)
        high = float(np.quantile(aov, self.policy.high_spend_percentile))
        mid = float(np.quantile(aov, self.policy.mid_spend_percentile))
        return high, mid

    def spend_tag(self, customer: Customer, high_threshold: float, mid_threshold: float) -> SpendTag:
        if customer.average_order_value >= high_threshold:
            return SpendTag.HIGH_SPENDER
        if customer.average_order_value >= mid_threshold:
            return SpendTag.MID_SPENDER
        return SpendTag.LOW_SPENDER

    # -------------------------------------------------------------------------
    # Activity
    # -------------------------------------------------------------------------

    def _days_since(self, moment: datetime) -> float:
        elapsed = (self.as_of - ensure_utc(moment)).total_seconds() / SECONDS_PER_DAY
        return max(elapsed, 0.0)

    def activity_tag(self, customer: Customer, restaurant_avg_visit_gap: float) -> ActivityTag:
        """
        Recency against the customer's personal cadence.

        The personal average gap falls back to the restaurant average, then
        to the configured default, for customers with a single visit.
        """
        timestamps = [order.timestamp for order in customer.orders]
        first_visit = customer.first_visit_date or min(timestamps)
        last_visit = customer.last_visit_date or max(timestamps)

        restaurant_gap = restaurant_avg_visit_gap
        if restaurant_gap <= 0:
            restaurant_gap = self.policy.default_visit_gap_days

        personal_gap = customer.average_visit_gap_days
        if personal_gap <= 0:
            personal_gap = restaurant_gap

        if self._days_since(first_visit) <= self.policy.new_customer_gap_fraction * restaurant_gap:
            return ActivityTag.NEW_CUSTOMER

        days_since_last = self._days_since(last_visit)
        if (
            days_since_last > self.policy.dormant_after_days
            or days_since_last > self.policy.dormant_gap_multiplier * personal_gap
        ):
            return ActivityTag.DORMANT
        if days_since_last > self.policy.at_risk_gap_multiplier * personal_gap:
            return ActivityTag.AT_RISK
        return ActivityTag.ACTIVE

    # -------------------------------------------------------------------------
    # Behavior
    # -------------------------------------------------------------------------

    def _frequent_visit_threshold(self, customers: Sequence[Customer]) -> float:
        if not customers:
            return float("inf")
        visits = np.array([c.total_visits for c in customers], dtype=float)
        quantile = float(np.quantile(visits, self.policy.frequent_visitor_percentile))
        return max(quantile, float(self.policy.frequent_visitor_min_visits))

    def behavior_tags(self, customer: Customer, frequent_threshold: float) -> FrozenSet[BehaviorTag]:
        policy = self.policy
        orders = customer.orders
        tags = set()

        if not orders:
            return frozenset()

        order_count = len(orders)

        combo_orders = sum(1 for order in orders if order.has_combo)
        if combo_orders >= policy.min_combo_orders and combo_orders / order_count >= policy.combo_order_share:
            tags.add(BehaviorTag.COMBO_BUYER)

        category_counts = Counter(
            category for order in orders for category in order.categories
        )
        total_occurrences = sum(category_counts.values())
        if total_occurrences:
            top_count = max(category_counts.values())
            if top_count / total_occurrences >= policy.category_loyalty_share:
                tags.add(BehaviorTag.CATEGORY_LOYALIST)

        if customer.guest_estimate_avg >= policy.large_party_guest_avg:
            tags.add(BehaviorTag.LARGE_PARTY)

        local_times = [ensure_utc(order.timestamp).astimezone(self.local_tz) for order in orders]

        weekend_orders = sum(1 for local in local_times if local.weekday() >= 5)
        if weekend_orders / order_count >= policy.weekend_share:
            tags.add(BehaviorTag.WEEKEND_REGULAR)

        lunch_start, lunch_end = policy.lunch_hours
        dinner_start, dinner_end = policy.dinner_hours
        lunch_orders = sum(1 for local in local_times if lunch_start <= local.hour <= lunch_end)
        dinner_orders = sum(1 for local in local_times if dinner_start <= local.hour <= dinner_end)
        if lunch_orders / order_count >= policy.daypart_share:
            tags.add(BehaviorTag.LUNCH_REGULAR)
        if dinner_orders / order_count >= policy.daypart_share:
            tags.add(BehaviorTag.DINNER_REGULAR)

        if customer.average_order_value < policy.price_sensitive_aov:
            tags.add(BehaviorTag.PRICE_SENSITIVE)
        elif customer.average_order_value > policy.premium_seeker_aov:
            tags.add(BehaviorTag.PREMIUM_SEEKER)

        if customer.total_visits >= frequent_threshold:
            tags.add(BehaviorTag.FREQUENT_VISITOR)

        return frozenset(tags)


def evaluate_tags(
    customers: Sequence[Customer],
    restaurant_avg_visit_gap: float,
    policy: Optional[TaggingSettings] = None,
    as_of: Optional[datetime] = None,
) -> List[TagResult]:
    """
    Convenience function to evaluate tags for a customer list.

    Args:
        customers: Customers to tag
        restaurant_avg_visit_gap: Restaurant-wide average visit gap in days
        policy: Tagging thresholds, defaults to configured settings
        as_of: Reference time for recency rules, defaults to now

    Returns:
        One TagResult per input customer
    """
    return TagRuleEvaluator(policy=policy, as_of=as_of).evaluate(customers, restaurant_avg_visit_gap)
