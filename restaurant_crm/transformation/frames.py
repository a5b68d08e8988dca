"""
Polars frames for customer records.

Flattens in-memory customers, orders and line items into typed frames for
validation and aggregation. Schemas are explicit so empty inputs still
produce well-typed frames.
"""

from typing import Sequence

import polars as pl

from restaurant_crm.tagging.models import Customer, ensure_utc

CUSTOMER_SCHEMA = {
    "customer_id": pl.Utf8,
    "name": pl.Utf8,
    "total_visits": pl.Int64,
    "total_spend": pl.Float64,
    "average_order_value": pl.Float64,
    "average_visit_gap_days": pl.Float64,
}

ORDER_SCHEMA = {
    "customer_id": pl.Utf8,
    "order_id": pl.Utf8,
    "timestamp": pl.Datetime("us", "UTC"),
    "total_amount": pl.Float64,
    "guest_count_estimate": pl.Int64,
    "source": pl.Utf8,
    "item_count": pl.Int64,
}

LINE_ITEM_SCHEMA = {
    "customer_id": pl.Utf8,
    "order_id": pl.Utf8,
    "name": pl.Utf8,
    "category": pl.Utf8,
    "price": pl.Float64,
    "quantity": pl.Int64,
    "is_combo": pl.Boolean,
}


def customers_frame(customers: Sequence[Customer]) -> pl.DataFrame:
    return pl.DataFrame(
        {
            "customer_id": [c.customer_id for c in customers],
            "name": [c.name for c in customers],
            "total_visits": [c.total_visits for c in customers],
            "total_spend": [c.total_spend for c in customers],
            "average_order_value": [c.average_order_value for c in customers],
            "average_visit_gap_days": [c.average_visit_gap_days for c in customers],
        },
        schema=CUSTOMER_SCHEMA,
    )


def orders_frame(customers: Sequence[Customer]) -> pl.DataFrame:
    """One row per order, keyed by owning customer"""
    rows = [
        (c.customer_id, order)
        for c in customers
        for order in c.orders
    ]
    return pl.DataFrame(
        {
            "customer_id": [cid for cid, _ in rows],
            "order_id": [o.order_id for _, o in rows],
            "timestamp": [ensure_utc(o.timestamp) if o.timestamp is not None else None for _, o in rows],
            "total_amount": [o.total_amount for _, o in rows],
            "guest_count_estimate": [o.guest_count_estimate for _, o in rows],
            "source": [o.source.value if o.source is not None else None for _, o in rows],
            "item_count": [len(o.items) for _, o in rows],
        },
        schema=ORDER_SCHEMA,
    )


def line_items_frame(customers: Sequence[Customer]) -> pl.DataFrame:
    """One row per line item"""
    rows = [
        (c.customer_id, order.order_id, item)
        for c in customers
        for order in c.orders
        for item in order.items
    ]
    return pl.DataFrame(
        {
            "customer_id": [cid for cid, _, _ in rows],
            "order_id": [oid for _, oid, _ in rows],
            "name": [i.name for _, _, i in rows],
            "category": [i.category for _, _, i in rows],
            "price": [i.price for _, _, i in rows],
            "quantity": [i.quantity for _, _, i in rows],
            "is_combo": [i.is_combo for _, _, i in rows],
        },
        schema=LINE_ITEM_SCHEMA,
    )
