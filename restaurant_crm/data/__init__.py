"""
Demo Data Module
"""
from .generators import CustomerProvider, DemoCustomerProvider

__all__ = ["CustomerProvider", "DemoCustomerProvider"]
