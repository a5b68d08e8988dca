"""
Data Transformation Module
"""
from .enrichers import CustomerStats, CustomerStatsEnricher
from .frames import customers_frame, line_items_frame, orders_frame

__all__ = [
    "CustomerStats",
    "CustomerStatsEnricher",
    "customers_frame",
    "line_items_frame",
    "orders_frame",
]
