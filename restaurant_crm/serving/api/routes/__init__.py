"""
API Routes Module
"""
from .customers import router as customers_router
from .health import router as health_router
from .tagging import router as tagging_router
from .triggers import router as triggers_router

__all__ = [
    "customers_router",
    "health_router",
    "tagging_router",
    "triggers_router",
]
