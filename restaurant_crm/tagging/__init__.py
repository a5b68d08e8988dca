"""
Customer Tagging Module
"""
from .models import (
    ActivityTag,
    AutomationTrigger,
    BehaviorTag,
    Customer,
    CustomerTags,
    LineItem,
    Order,
    OrderSource,
    RestaurantCustomerSummary,
    SpendTag,
    TagDimension,
    TagResult,
    TriggerType,
)
from .rules import TagRuleEvaluator, evaluate_tags
from .summary import summarize, restaurant_average_visit_gap
from .triggers import process_tag_changes, snapshot_tags
from .messages import OutboundMessage, build_personalization, dispatch_trigger, generate_message
from .pipeline import PassResult, TaggingPipeline

__all__ = [
    "ActivityTag",
    "AutomationTrigger",
    "BehaviorTag",
    "Customer",
    "CustomerTags",
    "LineItem",
    "Order",
    "OrderSource",
    "RestaurantCustomerSummary",
    "SpendTag",
    "TagDimension",
    "TagResult",
    "TriggerType",
    "TagRuleEvaluator",
    "evaluate_tags",
    "summarize",
    "restaurant_average_visit_gap",
    "process_tag_changes",
    "snapshot_tags",
    "OutboundMessage",
    "build_personalization",
    "dispatch_trigger",
    "generate_message",
    "PassResult",
    "TaggingPipeline",
]
