"""
Database Models

Relational schema backing the tagging engine:

- CustomerRecord: customer identity, aggregate stats and current tags
- OrderRecord / OrderItemRecord: immutable order history
- AutomationTriggerRecord: append-only trigger log
- CustomerSummaryRecord: segment summary snapshots per restaurant

Column types are portable so the same models run on PostgreSQL and on
SQLite in tests.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Type

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from restaurant_crm.tagging.models import (
    ActivityTag,
    OrderSource,
    SpendTag,
    TagDimension,
    TriggerType,
)


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def _enum(enum_cls: Type[Enum]) -> SQLEnum:
    """Store enum values (not member names) as plain strings"""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


class CustomerRecord(Base):
    """
    Customer Table

    Stats are recomputed from order history; tag columns are written back
    by each recalculation pass. Rows are deactivated, never deleted.
    """
    __tablename__ = "customers"

    customer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Contact
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    email: Mapped[Optional[str]] = mapped_column(String(255))

    # Lifecycle
    first_visit_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_visit_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Aggregate stats
    total_visits: Mapped[int] = mapped_column(Integer, default=0)
    total_spend: Mapped[float] = mapped_column(Float, default=0.0)
    average_order_value: Mapped[float] = mapped_column(Float, default=0.0)
    average_visit_gap_days: Mapped[float] = mapped_column(Float, default=0.0)
    guest_estimate_avg: Mapped[float] = mapped_column(Float, default=0.0)

    # Derived tags
    spend_tag: Mapped[SpendTag] = mapped_column(_enum(SpendTag), default=SpendTag.INSUFFICIENT_DATA)
    activity_tag: Mapped[ActivityTag] = mapped_column(_enum(ActivityTag), default=ActivityTag.INSUFFICIENT_DATA)
    behavior_tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    tags_evaluated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Audit
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    orders: Mapped[List["OrderRecord"]] = relationship(
        back_populates="customer",
        order_by="OrderRecord.timestamp",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_customers_restaurant", "restaurant_id"),
        Index("ix_customers_spend_tag", "spend_tag"),
        Index("ix_customers_activity_tag", "activity_tag"),
    )


class OrderRecord(Base):
    """Order Table - immutable once written"""
    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer_id: Mapped[str] = mapped_column(ForeignKey("customers.customer_id"), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    guest_count_estimate: Mapped[int] = mapped_column(Integer, default=1)
    source: Mapped[OrderSource] = mapped_column(_enum(OrderSource), default=OrderSource.DINE_IN)

    customer: Mapped["CustomerRecord"] = relationship(back_populates="orders")
    items: Mapped[List["OrderItemRecord"]] = relationship(
        back_populates="order",
        order_by="OrderItemRecord.line_number",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_orders_customer", "customer_id"),
        Index("ix_orders_timestamp", "timestamp"),
    )


class OrderItemRecord(Base):
    """Order Line Item Table"""
    __tablename__ = "order_items"

    item_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.order_id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    is_combo: Mapped[bool] = mapped_column(Boolean, default=False)

    order: Mapped["OrderRecord"] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
    )


class AutomationTriggerRecord(Base):
    """
    Automation Trigger Table

    Append-only; the only update is marking a trigger processed.
    """
    __tablename__ = "automation_triggers"

    trigger_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    restaurant_id: Mapped[Optional[str]] = mapped_column(String(64))
    customer_id: Mapped[str] = mapped_column(ForeignKey("customers.customer_id"), nullable=False)
    dimension: Mapped[TagDimension] = mapped_column(_enum(TagDimension), nullable=False)
    trigger_type: Mapped[TriggerType] = mapped_column(_enum(TriggerType), nullable=False)
    old_tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    new_tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed: Mapped[bool] = mapped_column(Boolean, default=False)
    campaign_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_automation_triggers_customer", "customer_id"),
        Index("ix_automation_triggers_pending", "restaurant_id", "processed"),
    )


class CustomerSummaryRecord(Base):
    """Segment summary snapshot, one row per recalculation pass"""
    __tablename__ = "customer_summaries"

    summary_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    restaurant_id: Mapped[Optional[str]] = mapped_column(String(64))
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_customers: Mapped[int] = mapped_column(Integer, default=0)
    churn_rate: Mapped[float] = mapped_column(Float, default=0.0)
    active_rate: Mapped[float] = mapped_column(Float, default=0.0)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    __table_args__ = (
        Index("ix_customer_summaries_restaurant", "restaurant_id", "calculated_at"),
    )
