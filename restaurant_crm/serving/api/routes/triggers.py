"""
Automation Trigger Endpoints

Browse the trigger log, preview the message a trigger would send, and
process triggers.
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_crm.automation.dispatch import (
    DispatchOutcome,
    LoggingMessageSink,
    MessageSink,
    process_pending_triggers,
    process_trigger,
)
from restaurant_crm.database.connection import get_db_dependency
from restaurant_crm.database.repository import CustomerStore, TriggerStore
from restaurant_crm.tagging.messages import OutboundMessage, generate_message
from restaurant_crm.tagging.models import TriggerType

router = APIRouter()
logger = structlog.get_logger(__name__)

_default_sink = LoggingMessageSink()


def get_message_sink() -> MessageSink:
    """Delivery hand-off; override to plug in a provider"""
    return _default_sink


class MessageOut(BaseModel):
    subject: Optional[str]
    body: str
    short_text: Optional[str]


class ProcessedTrigger(BaseModel):
    trigger: dict
    message: MessageOut


def _message_out(message: OutboundMessage) -> MessageOut:
    return MessageOut(subject=message.subject, body=message.body, short_text=message.short_text)


def _processed(outcome: DispatchOutcome) -> ProcessedTrigger:
    return ProcessedTrigger(trigger=outcome.trigger.to_dict(), message=_message_out(outcome.message))


@router.get("")
async def list_triggers(
    restaurant_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    processed: Optional[bool] = None,
    trigger_type: Optional[TriggerType] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[dict]:
    triggers = await TriggerStore(db).list(
        restaurant_id=restaurant_id,
        customer_id=customer_id,
        processed=processed,
        trigger_type=trigger_type,
        limit=limit,
        offset=offset,
    )
    return [t.to_dict() for t in triggers]


@router.get("/{trigger_id}/message", response_model=MessageOut)
async def preview_message(
    trigger_id: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> MessageOut:
    """Render the message without sending it or marking the trigger."""
    trigger = await TriggerStore(db).get(trigger_id)
    if trigger is None:
        raise HTTPException(status_code=404, detail=f"Trigger {trigger_id} not found")

    customer = await CustomerStore(db).get(trigger.customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail=f"Customer {trigger.customer_id} not found")

    return _message_out(generate_message(trigger, customer))


@router.post("/{trigger_id}/process", response_model=ProcessedTrigger)
async def process_one(
    trigger_id: str,
    db: AsyncSession = Depends(get_db_dependency),
    sink: MessageSink = Depends(get_message_sink),
) -> ProcessedTrigger:
    try:
        outcome = await process_trigger(db, trigger_id, sink=sink)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _processed(outcome)


@router.post("/process-pending", response_model=List[ProcessedTrigger])
async def process_pending(
    restaurant_id: str,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db_dependency),
    sink: MessageSink = Depends(get_message_sink),
) -> List[ProcessedTrigger]:
    outcomes = await process_pending_triggers(db, restaurant_id, sink=sink, limit=limit)
    return [_processed(o) for o in outcomes]
