"""
Automation Trigger Generator

Compares freshly evaluated tags against the snapshot taken before the
pass and emits one AutomationTrigger per changed dimension. A customer
missing from the snapshot has no prior tags, so every dimension that now
carries a value counts as changed.
"""

import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import structlog

from restaurant_crm.tagging.models import (
    ActivityTag,
    AutomationTrigger,
    Customer,
    CustomerTags,
    SpendTag,
    TagDimension,
    TagResult,
    TriggerType,
    ensure_utc,
    sort_behavior_tags,
    utc_now,
)

logger = structlog.get_logger(__name__)

TRIGGER_NAMESPACE = uuid.UUID("6f1c2b7e-3d4a-5e8f-9a0b-1c2d3e4f5a6b")

_SPEND_RANK = {
    SpendTag.INSUFFICIENT_DATA: 0,
    SpendTag.LOW_SPENDER: 1,
    SpendTag.MID_SPENDER: 2,
    SpendTag.HIGH_SPENDER: 3,
}


def snapshot_tags(customers: Iterable[Customer]) -> Dict[str, CustomerTags]:
    """
    Previous-tags snapshot for a pass.

    Only customers that have been evaluated before appear; the rest are
    treated as having no prior tags.
    """
    return {
        c.customer_id: c.tags
        for c in customers
        if c.tags_evaluated_at is not None
    }


def classify_activity_change(old: Optional[ActivityTag], new: ActivityTag) -> TriggerType:
    if new == ActivityTag.NEW_CUSTOMER:
        return TriggerType.NEW_CUSTOMER
    if new == ActivityTag.AT_RISK:
        return TriggerType.CHURN_RISK
    if new == ActivityTag.DORMANT:
        return TriggerType.DORMANT_CUSTOMER
    if new == ActivityTag.ACTIVE and old in (ActivityTag.AT_RISK, ActivityTag.DORMANT):
        return TriggerType.WIN_BACK
    return TriggerType.TAG_CHANGED


def classify_spend_change(old: Optional[SpendTag], new: SpendTag) -> TriggerType:
    old_rank = _SPEND_RANK[old] if old is not None else 0
    if new == SpendTag.HIGH_SPENDER and old_rank < _SPEND_RANK[SpendTag.HIGH_SPENDER]:
        return TriggerType.SPEND_UPGRADE
    if old == SpendTag.HIGH_SPENDER and _SPEND_RANK[new] < old_rank:
        return TriggerType.SPEND_DOWNGRADE
    return TriggerType.TAG_CHANGED


def _trigger_id(
    customer_id: str,
    dimension: TagDimension,
    old_tags: Tuple[str, ...],
    new_tags: Tuple[str, ...],
    created_at: datetime,
) -> str:
    """Stable id: the same transition at the same created_at instant always hashes alike"""
    key = "|".join([
        customer_id,
        dimension.value,
        ",".join(old_tags),
        ",".join(new_tags),
        created_at.isoformat(),
    ])
    return str(uuid.uuid5(TRIGGER_NAMESPACE, key))


def _make_trigger(
    customer_id: str,
    dimension: TagDimension,
    trigger_type: TriggerType,
    old_tags: Tuple[str, ...],
    new_tags: Tuple[str, ...],
    created_at: datetime,
) -> AutomationTrigger:
    return AutomationTrigger(
        trigger_id=_trigger_id(customer_id, dimension, old_tags, new_tags, created_at),
        customer_id=customer_id,
        dimension=dimension,
        trigger_type=trigger_type,
        old_tags=old_tags,
        new_tags=new_tags,
        created_at=created_at,
    )


def detect_changes(
    customer_id: str,
    previous: Optional[CustomerTags],
    current: CustomerTags,
    created_at: datetime,
) -> List[AutomationTrigger]:
    """Triggers for a single customer, in TagDimension order"""
    triggers = []

    old_spend = previous.spend_tag if previous else None
    if old_spend != current.spend_tag:
        triggers.append(_make_trigger(
            customer_id,
            TagDimension.SPEND,
            classify_spend_change(old_spend, current.spend_tag),
            (old_spend.value,) if old_spend else (),
            (current.spend_tag.value,),
            created_at,
        ))

    old_activity = previous.activity_tag if previous else None
    if old_activity != current.activity_tag:
        triggers.append(_make_trigger(
            customer_id,
            TagDimension.ACTIVITY,
            classify_activity_change(old_activity, current.activity_tag),
            (old_activity.value,) if old_activity else (),
            (current.activity_tag.value,),
            created_at,
        ))

    old_behavior = frozenset(previous.behavior_tags) if previous else frozenset()
    if old_behavior != frozenset(current.behavior_tags):
        triggers.append(_make_trigger(
            customer_id,
            TagDimension.BEHAVIOR,
            TriggerType.BEHAVIOR_CHANGE,
            tuple(tag.value for tag in sort_behavior_tags(old_behavior)),
            tuple(tag.value for tag in sort_behavior_tags(current.behavior_tags)),
            created_at,
        ))

    return triggers


def process_tag_changes(
    tag_results: Iterable[TagResult],
    previous_tags: Mapping[str, CustomerTags],
    created_at: Optional[datetime] = None,
) -> List[AutomationTrigger]:
    """
    Emit automation triggers for every changed tag dimension.

    Args:
        tag_results: Evaluator output for this pass
        previous_tags: Snapshot taken immediately before the pass
        created_at: Timestamp recorded on the triggers, defaults to now.
            It is part of each trigger id, so ids repeat across runs only
            when the same instant is passed; the pipeline passes as_of.

    Returns:
        Triggers sorted by customer id, then dimension
    """
    created_at = ensure_utc(created_at) if created_at else utc_now()
    triggers = []

    for result in sorted(tag_results, key=lambda r: r.customer_id):
        triggers.extend(detect_changes(
            result.customer_id,
            previous_tags.get(result.customer_id),
            result.new_tags,
            created_at,
        ))

    if triggers:
        logger.info(
            "Automation triggers generated",
            triggers=len(triggers),
            customers=len({t.customer_id for t in triggers}),
        )
    return triggers
