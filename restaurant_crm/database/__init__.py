"""
Database Module
"""
from .connection import close_database, get_db, get_db_dependency, init_database
from .models import Base
from .repository import CustomerStore, SummaryStore, TriggerStore

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_db_dependency",
    "Base",
    "CustomerStore",
    "SummaryStore",
    "TriggerStore",
]
