"""
Customer Stats Enrichment

Recomputes a customer's aggregate stats from its order history:
- Visit count and lifetime spend
- Average order value
- First and last visit
- Average days between visits
- Average guest estimate

Stats are always derived from the full history, never adjusted in place.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Optional, Sequence

import polars as pl
import structlog

from restaurant_crm.tagging.models import Customer, Order, ensure_utc
from restaurant_crm.transformation.frames import orders_frame

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CustomerStats:
    """Aggregate stats for one customer"""
    total_visits: int = 0
    total_spend: float = 0.0
    average_order_value: float = 0.0
    average_visit_gap_days: float = 0.0
    guest_estimate_avg: float = 0.0
    first_visit_date: Optional[datetime] = None
    last_visit_date: Optional[datetime] = None


class CustomerStatsEnricher:
    """
    Derives customer stats from orders with Polars aggregations.

    Example:
        enricher = CustomerStatsEnricher()
        customer = enricher.record_order(customer, order)
    """

    def stats_by_customer(self, customers: Sequence[Customer]) -> Dict[str, CustomerStats]:
        """
        Aggregate order history per customer.

        Args:
            customers: Customers with order history

        Returns:
            Stats keyed by customer id; customers without orders are absent
        """
        frame = orders_frame(customers)
        if frame.is_empty():
            return {}

        aggregated = frame.group_by("customer_id").agg([
            pl.len().alias("total_visits"),
            pl.col("total_amount").sum().alias("total_spend"),
            pl.col("total_amount").mean().alias("average_order_value"),
            pl.col("guest_count_estimate").mean().alias("guest_estimate_avg"),
            pl.col("timestamp").min().alias("first_visit_date"),
            pl.col("timestamp").max().alias("last_visit_date"),
        ])

        stats = {}
        for row in aggregated.iter_rows(named=True):
            visits = row["total_visits"]
            first_visit = ensure_utc(row["first_visit_date"])
            last_visit = ensure_utc(row["last_visit_date"])

            # Mean of consecutive gaps reduces to the span over (visits - 1)
            gap_days = 0.0
            if visits > 1:
                gap_days = (last_visit - first_visit).total_seconds() / 86400 / (visits - 1)

            stats[row["customer_id"]] = CustomerStats(
                total_visits=visits,
                total_spend=round(row["total_spend"], 2),
                average_order_value=round(row["average_order_value"], 2),
                average_visit_gap_days=round(gap_days, 2),
                guest_estimate_avg=round(row["guest_estimate_avg"], 2),
                first_visit_date=first_visit,
                last_visit_date=last_visit,
            )
        return stats

    def refresh(self, customer: Customer) -> Customer:
        """Return a copy of the customer with stats recomputed from its orders"""
        stats = self.stats_by_customer([customer]).get(customer.customer_id, CustomerStats())
        return replace(
            customer,
            total_visits=stats.total_visits,
            total_spend=stats.total_spend,
            average_order_value=stats.average_order_value,
            average_visit_gap_days=stats.average_visit_gap_days,
            guest_estimate_avg=stats.guest_estimate_avg,
            first_visit_date=stats.first_visit_date,
            last_visit_date=stats.last_visit_date,
        )

    def refresh_all(self, customers: Sequence[Customer]) -> list:
        """Recompute stats for many customers in a single aggregation"""
        stats = self.stats_by_customer(customers)
        refreshed = []
        for customer in customers:
            s = stats.get(customer.customer_id, CustomerStats())
            refreshed.append(replace(
                customer,
                total_visits=s.total_visits,
                total_spend=s.total_spend,
                average_order_value=s.average_order_value,
                average_visit_gap_days=s.average_visit_gap_days,
                guest_estimate_avg=s.guest_estimate_avg,
                first_visit_date=s.first_visit_date,
                last_visit_date=s.last_visit_date,
            ))
        return refreshed

    def record_order(self, customer: Customer, order: Order) -> Customer:
        """
        Append an order to a customer's history and refresh stats.

        Raises:
            ValueError: If the order id is already on the customer's history
        """
        if any(existing.order_id == order.order_id for existing in customer.orders):
            raise ValueError(f"Order {order.order_id} already recorded for customer {customer.customer_id}")

        orders = sorted(customer.orders + [order], key=lambda o: ensure_utc(o.timestamp))
        updated = self.refresh(replace(customer, orders=orders))

        logger.debug(
            "Order recorded",
            customer_id=customer.customer_id,
            order_id=order.order_id,
            total_visits=updated.total_visits,
        )
        return updated
