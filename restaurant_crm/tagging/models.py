"""
Customer Tagging Domain Models

Plain in-memory records shared by the tag rule evaluator, the summary
aggregator, the trigger generator and the message composer:

- Enumerations for every tag dimension and trigger type
- Orders and their line items (immutable once created)
- Customers with aggregate stats and derived tags
- Tag snapshots, summaries and automation triggers
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Tuple


# =============================================================================
# ENUMERATIONS
# =============================================================================

class SpendTag(str, Enum):
    """Customer classification by average order value"""
    HIGH_SPENDER = "high_spender"
    MID_SPENDER = "mid_spender"
    LOW_SPENDER = "low_spender"
    INSUFFICIENT_DATA = "insufficient_data"


class ActivityTag(str, Enum):
    """Customer classification by recency against personal cadence"""
    NEW_CUSTOMER = "new_customer"
    ACTIVE = "active"
    AT_RISK = "at_risk"
    DORMANT = "dormant"
    INSUFFICIENT_DATA = "insufficient_data"


class BehaviorTag(str, Enum):
    """Non-exclusive ordering pattern labels"""
    COMBO_BUYER = "combo_buyer"
    CATEGORY_LOYALIST = "category_loyalist"
    LARGE_PARTY = "large_party"
    WEEKEND_REGULAR = "weekend_regular"
    LUNCH_REGULAR = "lunch_regular"
    DINNER_REGULAR = "dinner_regular"
    PRICE_SENSITIVE = "price_sensitive"
    PREMIUM_SEEKER = "premium_seeker"
    FREQUENT_VISITOR = "frequent_visitor"


class OrderSource(str, Enum):
    """Where an order was placed"""
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"
    ONLINE = "online"


class TagDimension(str, Enum):
    """Tag dimension a trigger refers to, in emission order"""
    SPEND = "spend"
    ACTIVITY = "activity"
    BEHAVIOR = "behavior"


class TriggerType(str, Enum):
    """Follow-up action a tag transition calls for"""
    NEW_CUSTOMER = "new_customer"
    CHURN_RISK = "churn_risk"
    DORMANT_CUSTOMER = "dormant_customer"
    WIN_BACK = "win_back"
    SPEND_UPGRADE = "spend_upgrade"
    SPEND_DOWNGRADE = "spend_downgrade"
    BEHAVIOR_CHANGE = "behavior_change"
    TAG_CHANGED = "tag_changed"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix offsets."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def sort_behavior_tags(tags: Iterable[BehaviorTag]) -> Tuple[BehaviorTag, ...]:
    """Behavior tags in declaration order."""
    members = list(BehaviorTag)
    return tuple(sorted(set(tags), key=members.index))


# =============================================================================
# ORDERS
# =============================================================================

@dataclass(frozen=True)
class LineItem:
    """Single line on an order"""
    name: str
    category: str
    price: float
    quantity: int = 1
    is_combo: bool = False

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class Order:
    """A completed order, owned by exactly one customer"""
    order_id: str
    timestamp: datetime
    items: Tuple[LineItem, ...] = ()
    total_amount: float = 0.0
    guest_count_estimate: int = 1
    source: OrderSource = OrderSource.DINE_IN

    @property
    def categories(self) -> FrozenSet[str]:
        """Distinct categories ordered"""
        return frozenset(item.category for item in self.items)

    @property
    def has_combo(self) -> bool:
        return any(item.is_combo for item in self.items)


# =============================================================================
# TAGS
# =============================================================================

@dataclass(frozen=True)
class CustomerTags:
    """Snapshot of one customer's derived tags"""
    spend_tag: SpendTag
    activity_tag: ActivityTag
    behavior_tags: FrozenSet[BehaviorTag] = frozenset()

    @classmethod
    def insufficient_data(cls) -> "CustomerTags":
        """Sentinel tag set for customers without order history"""
        return cls(
            spend_tag=SpendTag.INSUFFICIENT_DATA,
            activity_tag=ActivityTag.INSUFFICIENT_DATA,
            behavior_tags=frozenset(),
        )

    def to_dict(self) -> dict:
        return {
            "spend_tag": self.spend_tag.value,
            "activity_tag": self.activity_tag.value,
            "behavior_tags": [tag.value for tag in sort_behavior_tags(self.behavior_tags)],
        }


@dataclass(frozen=True)
class TagResult:
    """Evaluator output for a single customer"""
    customer_id: str
    new_tags: CustomerTags


# =============================================================================
# CUSTOMERS
# =============================================================================

@dataclass
class Customer:
    """
    Restaurant customer with aggregate stats and derived tags.

    The tag fields are only ever replaced as a whole from a TagResult
    (see apply_tag_result); stats are recomputed from the order history.
    """
    customer_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    restaurant_id: Optional[str] = None

    # Lifecycle
    first_visit_date: Optional[datetime] = None
    last_visit_date: Optional[datetime] = None

    # Aggregate stats
    total_visits: int = 0
    total_spend: float = 0.0
    average_order_value: float = 0.0
    average_visit_gap_days: float = 0.0
    guest_estimate_avg: float = 0.0

    orders: List[Order] = field(default_factory=list)

    # Derived tags
    spend_tag: SpendTag = SpendTag.INSUFFICIENT_DATA
    activity_tag: ActivityTag = ActivityTag.INSUFFICIENT_DATA
    behavior_tags: FrozenSet[BehaviorTag] = frozenset()
    tags_evaluated_at: Optional[datetime] = None

    is_active: bool = True

    @property
    def tags(self) -> CustomerTags:
        return CustomerTags(
            spend_tag=self.spend_tag,
            activity_tag=self.activity_tag,
            behavior_tags=frozenset(self.behavior_tags),
        )

    @property
    def has_order_history(self) -> bool:
        """Whether spend and activity tags can be computed at all"""
        return self.total_visits > 0 and len(self.orders) > 0

    @property
    def first_name(self) -> str:
        parts = self.name.split()
        return parts[0] if parts else self.name


def apply_tag_result(
    customer: Customer,
    result: TagResult,
    evaluated_at: Optional[datetime] = None,
) -> Customer:
    """Return a copy of the customer carrying the evaluated tags."""
    if result.customer_id != customer.customer_id:
        raise ValueError(
            f"Tag result for {result.customer_id} applied to customer {customer.customer_id}"
        )
    return replace(
        customer,
        spend_tag=result.new_tags.spend_tag,
        activity_tag=result.new_tags.activity_tag,
        behavior_tags=frozenset(result.new_tags.behavior_tags),
        tags_evaluated_at=evaluated_at or utc_now(),
    )


# =============================================================================
# SUMMARY
# =============================================================================

@dataclass(frozen=True)
class TagCount:
    """Count and share of customers carrying a tag"""
    tag: str
    count: int
    percentage: float


@dataclass(frozen=True)
class RestaurantCustomerSummary:
    """
    Restaurant-wide rollup of tag distributions.

    A snapshot regenerated in full on every recalculation pass.
    """
    restaurant_id: Optional[str]
    total_customers: int
    spend_tag_distribution: Tuple[TagCount, ...]
    activity_tag_distribution: Tuple[TagCount, ...]
    behavior_tag_distribution: Tuple[TagCount, ...]
    most_common_behavior_tags: Tuple[TagCount, ...]
    churn_rate: float
    dormant_rate: float
    active_rate: float
    new_customers_count: int
    insufficient_data_count: int
    average_visit_gap: float
    average_order_value: float
    total_revenue: float
    top_ltv_customer_ids: Tuple[str, ...]
    calculated_at: datetime

    def count_for(self, tag: Enum) -> int:
        """Number of customers carrying the given tag value"""
        if isinstance(tag, SpendTag):
            distribution = self.spend_tag_distribution
        elif isinstance(tag, ActivityTag):
            distribution = self.activity_tag_distribution
        elif isinstance(tag, BehaviorTag):
            distribution = self.behavior_tag_distribution
        else:
            raise ValueError(f"Unknown tag type: {type(tag).__name__}")
        for entry in distribution:
            if entry.tag == tag.value:
                return entry.count
        return 0

    def to_dict(self) -> dict:
        def rows(distribution: Tuple[TagCount, ...]) -> List[dict]:
            return [
                {"tag": c.tag, "count": c.count, "percentage": c.percentage}
                for c in distribution
            ]

        return {
            "restaurant_id": self.restaurant_id,
            "total_customers": self.total_customers,
            "spend_tag_distribution": rows(self.spend_tag_distribution),
            "activity_tag_distribution": rows(self.activity_tag_distribution),
            "behavior_tag_distribution": rows(self.behavior_tag_distribution),
            "most_common_behavior_tags": rows(self.most_common_behavior_tags),
            "churn_rate": self.churn_rate,
            "dormant_rate": self.dormant_rate,
            "active_rate": self.active_rate,
            "new_customers_count": self.new_customers_count,
            "insufficient_data_count": self.insufficient_data_count,
            "average_visit_gap": self.average_visit_gap,
            "average_order_value": self.average_order_value,
            "total_revenue": self.total_revenue,
            "top_ltv_customer_ids": list(self.top_ltv_customer_ids),
            "calculated_at": self.calculated_at.isoformat(),
        }


# =============================================================================
# AUTOMATION TRIGGERS
# =============================================================================

@dataclass(frozen=True)
class AutomationTrigger:
    """
    Record of a single tag-dimension transition.

    old_tags is empty when the customer had no prior snapshot. Lifecycle
    is created -> processed; a processed trigger is immutable history.
    """
    trigger_id: str
    customer_id: str
    dimension: TagDimension
    trigger_type: TriggerType
    old_tags: Tuple[str, ...]
    new_tags: Tuple[str, ...]
    created_at: datetime
    processed: bool = False
    campaign_sent_at: Optional[datetime] = None

    @property
    def old_tag(self) -> Optional[str]:
        """Previous value of a single-valued dimension"""
        return self.old_tags[0] if self.old_tags else None

    @property
    def new_tag(self) -> Optional[str]:
        """New value of a single-valued dimension"""
        return self.new_tags[0] if self.new_tags else None

    @property
    def gained_tags(self) -> Tuple[str, ...]:
        return tuple(tag for tag in self.new_tags if tag not in self.old_tags)

    @property
    def lost_tags(self) -> Tuple[str, ...]:
        return tuple(tag for tag in self.old_tags if tag not in self.new_tags)

    def mark_processed(self, sent_at: Optional[datetime] = None) -> "AutomationTrigger":
        """Return the processed copy of this trigger."""
        if self.processed:
            raise ValueError(f"Trigger {self.trigger_id} is already processed")
        return replace(self, processed=True, campaign_sent_at=sent_at or utc_now())

    def to_dict(self) -> dict:
        return {
            "trigger_id": self.trigger_id,
            "customer_id": self.customer_id,
            "dimension": self.dimension.value,
            "trigger_type": self.trigger_type.value,
            "old_tags": list(self.old_tags),
            "new_tags": list(self.new_tags),
            "created_at": self.created_at.isoformat(),
            "processed": self.processed,
            "campaign_sent_at": self.campaign_sent_at.isoformat() if self.campaign_sent_at else None,
        }
