"""
Automation Module
"""
from .dispatch import (
    DispatchOutcome,
    LoggingMessageSink,
    MessageSink,
    process_pending_triggers,
    process_trigger,
)
from .recalculation import RecalculationReport, recalculate_restaurant

__all__ = [
    "DispatchOutcome",
    "LoggingMessageSink",
    "MessageSink",
    "process_pending_triggers",
    "process_trigger",
    "RecalculationReport",
    "recalculate_restaurant",
]
