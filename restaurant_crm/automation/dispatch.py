"""
Trigger Dispatch

Turns pending automation triggers into outbound messages, hands them to
a message sink and records the triggers as processed. Delivery itself
(SMS, email, push) happens behind the sink.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Set

import structlog
from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_crm.config import MessagingSettings
from restaurant_crm.database.repository import CustomerStore, TriggerStore
from restaurant_crm.tagging.messages import OutboundMessage, dispatch_trigger
from restaurant_crm.tagging.models import AutomationTrigger, Customer

logger = structlog.get_logger(__name__)

MESSAGES_DISPATCHED = Counter(
    "restaurant_crm_messages_dispatched_total",
    "Trigger messages handed to the message sink",
    ["trigger_type", "status"],
)


class MessageSink(Protocol):
    """Anything that can accept a composed message for delivery"""

    async def send(self, customer: Customer, trigger: AutomationTrigger, message: OutboundMessage) -> None:
        ...


class LoggingMessageSink:
    """
    Sink that only logs; used when no delivery provider is configured.

    With keep_sent the messages are also collected on `sent`. The
    process-wide default sink keeps nothing.
    """

    def __init__(self, keep_sent: bool = False):
        self.keep_sent = keep_sent
        self.sent: List[OutboundMessage] = []

    async def send(self, customer: Customer, trigger: AutomationTrigger, message: OutboundMessage) -> None:
        if self.keep_sent:
            self.sent.append(message)
        logger.info(
            "Message handed off",
            customer_id=customer.customer_id,
            trigger_id=trigger.trigger_id,
            trigger_type=trigger.trigger_type.value,
            subject=message.subject,
        )


@dataclass(frozen=True)
class DispatchOutcome:
    trigger: AutomationTrigger
    message: OutboundMessage


async def process_trigger(
    session: AsyncSession,
    trigger_id: str,
    sink: Optional[MessageSink] = None,
    sent_at: Optional[datetime] = None,
    messaging: Optional[MessagingSettings] = None,
) -> DispatchOutcome:
    """
    Compose, send and mark a single trigger processed.

    Raises:
        LookupError: If the trigger or its customer does not exist
        ValueError: If the trigger is already processed
    """
    triggers = TriggerStore(session)
    trigger = await triggers.get(trigger_id)
    if trigger is None:
        raise LookupError(f"Trigger {trigger_id} not found")
    if trigger.processed:
        raise ValueError(f"Trigger {trigger_id} is already processed")

    customer = await CustomerStore(session).get(trigger.customer_id)
    if customer is None:
        raise LookupError(f"Customer {trigger.customer_id} not found")

    processed, message = dispatch_trigger(trigger, customer, sent_at=sent_at, messaging=messaging)
    await (sink or LoggingMessageSink()).send(customer, processed, message)
    await triggers.mark_processed(processed)
    MESSAGES_DISPATCHED.labels(trigger_type=processed.trigger_type.value, status="sent").inc()

    return DispatchOutcome(trigger=processed, message=message)


async def process_pending_triggers(
    session: AsyncSession,
    restaurant_id: str,
    sink: Optional[MessageSink] = None,
    limit: int = 100,
    sent_at: Optional[datetime] = None,
    messaging: Optional[MessagingSettings] = None,
) -> List[DispatchOutcome]:
    """
    Process up to `limit` pending triggers for a restaurant, oldest first.

    Triggers of deactivated customers stay pending and are not read. A
    trigger whose send fails stays pending for the next run; the pass
    pages past it so later triggers still go out.
    """
    sink = sink or LoggingMessageSink()
    customers = CustomerStore(session)
    triggers = TriggerStore(session)

    outcomes: List[DispatchOutcome] = []
    failed_ids: Set[str] = set()

    while len(outcomes) < limit:
        batch = await triggers.list(
            restaurant_id=restaurant_id,
            processed=False,
            active_only=True,
            exclude_ids=failed_ids,
            limit=limit - len(outcomes),
        )
        if not batch:
            break

        for trigger in batch:
            customer = await customers.get(trigger.customer_id)
            processed, message = dispatch_trigger(trigger, customer, sent_at=sent_at, messaging=messaging)
            try:
                await sink.send(customer, processed, message)
            except Exception as e:
                failed_ids.add(trigger.trigger_id)
                MESSAGES_DISPATCHED.labels(trigger_type=trigger.trigger_type.value, status="failed").inc()
                logger.error(
                    "Message hand-off failed",
                    trigger_id=trigger.trigger_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            await triggers.mark_processed(processed)
            MESSAGES_DISPATCHED.labels(trigger_type=processed.trigger_type.value, status="sent").inc()
            outcomes.append(DispatchOutcome(trigger=processed, message=message))

    logger.info(
        "Pending triggers processed",
        restaurant_id=restaurant_id,
        processed=len(outcomes),
        failed=len(failed_ids),
    )
    return outcomes
