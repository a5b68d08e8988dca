"""
Persistence Stores

Thin async stores translating between ORM records and the tagging domain
objects. Each store works inside a caller-supplied session; the caller
owns the transaction.
"""

from datetime import datetime
from typing import Collection, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_crm.database.models import (
    AutomationTriggerRecord,
    CustomerRecord,
    CustomerSummaryRecord,
    OrderItemRecord,
    OrderRecord,
)
from restaurant_crm.tagging.models import (
    ActivityTag,
    AutomationTrigger,
    BehaviorTag,
    Customer,
    LineItem,
    Order,
    RestaurantCustomerSummary,
    SpendTag,
    TriggerType,
    ensure_utc,
    sort_behavior_tags,
)
from restaurant_crm.transformation.enrichers import CustomerStatsEnricher

logger = structlog.get_logger(__name__)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


# =============================================================================
# RECORD <-> DOMAIN
# =============================================================================

def order_to_domain(record: OrderRecord) -> Order:
    return Order(
        order_id=record.order_id,
        timestamp=ensure_utc(record.timestamp),
        items=tuple(
            LineItem(
                name=item.name,
                category=item.category,
                price=item.price,
                quantity=item.quantity,
                is_combo=item.is_combo,
            )
            for item in record.items
        ),
        total_amount=record.total_amount,
        guest_count_estimate=record.guest_count_estimate,
        source=record.source,
    )


def order_to_record(customer_id: str, order: Order) -> OrderRecord:
    return OrderRecord(
        order_id=order.order_id,
        customer_id=customer_id,
        timestamp=ensure_utc(order.timestamp),
        total_amount=order.total_amount,
        guest_count_estimate=order.guest_count_estimate,
        source=order.source,
        items=[
            OrderItemRecord(
                line_number=position,
                name=item.name,
                category=item.category,
                price=item.price,
                quantity=item.quantity,
                is_combo=item.is_combo,
            )
            for position, item in enumerate(order.items)
        ],
    )


def customer_to_domain(record: CustomerRecord) -> Customer:
    orders = sorted((order_to_domain(o) for o in record.orders), key=lambda o: o.timestamp)
    return Customer(
        customer_id=record.customer_id,
        name=record.name,
        phone=record.phone,
        email=record.email,
        restaurant_id=record.restaurant_id,
        first_visit_date=_utc(record.first_visit_date),
        last_visit_date=_utc(record.last_visit_date),
        total_visits=record.total_visits,
        total_spend=record.total_spend,
        average_order_value=record.average_order_value,
        average_visit_gap_days=record.average_visit_gap_days,
        guest_estimate_avg=record.guest_estimate_avg,
        orders=orders,
        spend_tag=SpendTag(record.spend_tag),
        activity_tag=ActivityTag(record.activity_tag),
        behavior_tags=frozenset(BehaviorTag(tag) for tag in (record.behavior_tags or [])),
        tags_evaluated_at=_utc(record.tags_evaluated_at),
        is_active=record.is_active,
    )


def trigger_to_domain(record: AutomationTriggerRecord) -> AutomationTrigger:
    return AutomationTrigger(
        trigger_id=record.trigger_id,
        customer_id=record.customer_id,
        dimension=record.dimension,
        trigger_type=record.trigger_type,
        old_tags=tuple(record.old_tags or ()),
        new_tags=tuple(record.new_tags or ()),
        created_at=ensure_utc(record.created_at),
        processed=record.processed,
        campaign_sent_at=_utc(record.campaign_sent_at),
    )


# =============================================================================
# STORES
# =============================================================================

class CustomerStore:
    """
    Customer and order persistence.

    Example:
        async with get_db() as db:
            customers = await CustomerStore(db).list_customers("r-1")
    """

    def __init__(self, session: AsyncSession, enricher: Optional[CustomerStatsEnricher] = None):
        self.session = session
        self.enricher = enricher or CustomerStatsEnricher()

    async def list_customers(
        self,
        restaurant_id: str,
        include_inactive: bool = False,
        spend_tag: Optional[SpendTag] = None,
        activity_tag: Optional[ActivityTag] = None,
        behavior_tag: Optional[BehaviorTag] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Customer]:
        """Customers of a restaurant ordered by id, optionally filtered by tag"""
        query = select(CustomerRecord).where(CustomerRecord.restaurant_id == restaurant_id)
        if not include_inactive:
            query = query.where(CustomerRecord.is_active.is_(True))
        if spend_tag is not None:
            query = query.where(CustomerRecord.spend_tag == spend_tag)
        if activity_tag is not None:
            query = query.where(CustomerRecord.activity_tag == activity_tag)
        query = query.order_by(CustomerRecord.customer_id)

        result = await self.session.execute(query)
        customers = [customer_to_domain(record) for record in result.scalars().all()]

        # JSON containment is not portable across backends
        if behavior_tag is not None:
            customers = [c for c in customers if behavior_tag in c.behavior_tags]

        if limit is not None:
            return customers[offset:offset + limit]
        return customers[offset:]

    async def get(self, customer_id: str) -> Optional[Customer]:
        record = await self.session.get(CustomerRecord, customer_id)
        return customer_to_domain(record) if record else None

    async def upsert(self, customer: Customer) -> None:
        """
        Write contact details, stats and any orders not yet stored.

        Existing orders are never rewritten. Tags are only written on
        insert; afterwards they change through write_tags.
        """
        if not customer.restaurant_id:
            raise ValueError(f"Customer {customer.customer_id} has no restaurant_id")

        record = await self.session.get(CustomerRecord, customer.customer_id)
        if record is None:
            record = CustomerRecord(
                customer_id=customer.customer_id,
                restaurant_id=customer.restaurant_id,
                name=customer.name,
                spend_tag=customer.spend_tag,
                activity_tag=customer.activity_tag,
                behavior_tags=[tag.value for tag in sort_behavior_tags(customer.behavior_tags)],
                tags_evaluated_at=customer.tags_evaluated_at,
                orders=[],
            )
            self.session.add(record)
        elif record.restaurant_id != customer.restaurant_id:
            raise ValueError(
                f"Customer {customer.customer_id} belongs to restaurant {record.restaurant_id}"
            )

        record.name = customer.name
        record.phone = customer.phone
        record.email = customer.email
        record.first_visit_date = _utc(customer.first_visit_date)
        record.last_visit_date = _utc(customer.last_visit_date)
        record.total_visits = customer.total_visits
        record.total_spend = customer.total_spend
        record.average_order_value = customer.average_order_value
        record.average_visit_gap_days = customer.average_visit_gap_days
        record.guest_estimate_avg = customer.guest_estimate_avg
        record.is_active = customer.is_active

        stored = {o.order_id for o in record.orders}
        for order in customer.orders:
            if order.order_id not in stored:
                record.orders.append(order_to_record(customer.customer_id, order))

        await self.session.flush()

    async def record_order(self, customer: Customer, order: Order) -> Customer:
        """
        Append an order to a customer's history and persist refreshed stats.

        Raises:
            ValueError: If the order id already exists
        """
        if await self.session.get(OrderRecord, order.order_id) is not None:
            raise ValueError(f"Order {order.order_id} already exists")

        updated = self.enricher.record_order(customer, order)
        await self.upsert(updated)

        logger.info(
            "Order stored",
            customer_id=customer.customer_id,
            order_id=order.order_id,
            total_visits=updated.total_visits,
        )
        return updated

    async def write_tags(self, customers: Sequence[Customer]) -> int:
        """Persist the tag fields of already-stored customers"""
        if not customers:
            return 0

        by_id: Dict[str, Customer] = {c.customer_id: c for c in customers}
        result = await self.session.execute(
            select(CustomerRecord).where(CustomerRecord.customer_id.in_(list(by_id)))
        )
        records = result.scalars().all()

        missing = set(by_id) - {r.customer_id for r in records}
        if missing:
            raise ValueError(f"Cannot write tags for unknown customers: {sorted(missing)}")

        for record in records:
            customer = by_id[record.customer_id]
            record.spend_tag = customer.spend_tag
            record.activity_tag = customer.activity_tag
            record.behavior_tags = [tag.value for tag in sort_behavior_tags(customer.behavior_tags)]
            record.tags_evaluated_at = customer.tags_evaluated_at

        await self.session.flush()
        return len(records)

    async def deactivate(self, customer_id: str) -> bool:
        """Soft-delete a customer; returns False if unknown"""
        record = await self.session.get(CustomerRecord, customer_id)
        if record is None:
            return False
        record.is_active = False
        await self.session.flush()
        logger.info("Customer deactivated", customer_id=customer_id)
        return True


class TriggerStore:
    """Append-only automation trigger log"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, triggers: Sequence[AutomationTrigger], restaurant_id: Optional[str] = None) -> int:
        """
        Store new triggers, skipping ids already present.

        Returns:
            Number of triggers written
        """
        if not triggers:
            return 0

        ids = [t.trigger_id for t in triggers]
        result = await self.session.execute(
            select(AutomationTriggerRecord.trigger_id).where(AutomationTriggerRecord.trigger_id.in_(ids))
        )
        existing = set(result.scalars().all())

        new_records = [
            AutomationTriggerRecord(
                trigger_id=t.trigger_id,
                restaurant_id=restaurant_id,
                customer_id=t.customer_id,
                dimension=t.dimension,
                trigger_type=t.trigger_type,
                old_tags=list(t.old_tags),
                new_tags=list(t.new_tags),
                created_at=t.created_at,
                processed=t.processed,
                campaign_sent_at=t.campaign_sent_at,
            )
            for t in triggers
            if t.trigger_id not in existing
        ]
        self.session.add_all(new_records)
        await self.session.flush()

        if existing:
            logger.debug("Skipped existing triggers", count=len(existing))
        return len(new_records)

    async def list(
        self,
        restaurant_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        processed: Optional[bool] = None,
        trigger_type: Optional[TriggerType] = None,
        active_only: bool = False,
        exclude_ids: Optional[Collection[str]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AutomationTrigger]:
        """
        Triggers oldest first.

        Args:
            active_only: Only triggers whose customer exists and is active
            exclude_ids: Trigger ids to leave out of the page
        """
        query = select(AutomationTriggerRecord)
        if active_only:
            query = query.join(
                CustomerRecord, CustomerRecord.customer_id == AutomationTriggerRecord.customer_id
            ).where(CustomerRecord.is_active.is_(True))
        if exclude_ids:
            query = query.where(AutomationTriggerRecord.trigger_id.notin_(list(exclude_ids)))
        if restaurant_id is not None:
            query = query.where(AutomationTriggerRecord.restaurant_id == restaurant_id)
        if customer_id is not None:
            query = query.where(AutomationTriggerRecord.customer_id == customer_id)
        if processed is not None:
            query = query.where(AutomationTriggerRecord.processed.is_(processed))
        if trigger_type is not None:
            query = query.where(AutomationTriggerRecord.trigger_type == trigger_type)

        query = query.order_by(
            AutomationTriggerRecord.created_at,
            AutomationTriggerRecord.customer_id,
            AutomationTriggerRecord.trigger_id,
        ).offset(offset).limit(limit)

        result = await self.session.execute(query)
        return [trigger_to_domain(r) for r in result.scalars().all()]

    async def get(self, trigger_id: str) -> Optional[AutomationTrigger]:
        record = await self.session.get(AutomationTriggerRecord, trigger_id)
        return trigger_to_domain(record) if record else None

    async def mark_processed(self, trigger: AutomationTrigger) -> None:
        """
        Persist a processed trigger.

        Raises:
            ValueError: If the trigger is unknown, not processed, or already
                processed in storage
        """
        if not trigger.processed:
            raise ValueError(f"Trigger {trigger.trigger_id} has not been processed")

        record = await self.session.get(AutomationTriggerRecord, trigger.trigger_id)
        if record is None:
            raise ValueError(f"Trigger {trigger.trigger_id} not found")
        if record.processed:
            raise ValueError(f"Trigger {trigger.trigger_id} is already processed")

        record.processed = True
        record.campaign_sent_at = trigger.campaign_sent_at
        await self.session.flush()


class SummaryStore:
    """Segment summary snapshots"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, summary: RestaurantCustomerSummary) -> None:
        self.session.add(CustomerSummaryRecord(
            restaurant_id=summary.restaurant_id,
            calculated_at=summary.calculated_at,
            total_customers=summary.total_customers,
            churn_rate=summary.churn_rate,
            active_rate=summary.active_rate,
            payload=summary.to_dict(),
        ))
        await self.session.flush()

    async def latest(self, restaurant_id: str) -> Optional[dict]:
        """Most recent summary payload for a restaurant"""
        result = await self.session.execute(
            select(CustomerSummaryRecord)
            .where(CustomerSummaryRecord.restaurant_id == restaurant_id)
            .order_by(CustomerSummaryRecord.calculated_at.desc(), CustomerSummaryRecord.summary_id.desc())
            .limit(1)
        )
        record = result.scalars().first()
        return dict(record.payload) if record else None
