"""
Unit Tests - Automation Triggers
"""
from datetime import timedelta, timezone

import pytest

from restaurant_crm.tagging.models import (
    ActivityTag,
    BehaviorTag,
    Customer,
    CustomerTags,
    SpendTag,
    TagDimension,
    TagResult,
    TriggerType,
)
from restaurant_crm.tagging.triggers import (
    classify_activity_change,
    classify_spend_change,
    process_tag_changes,
    snapshot_tags,
)


def tags(spend=SpendTag.MID_SPENDER, activity=ActivityTag.ACTIVE, behavior=()):
    return CustomerTags(spend_tag=spend, activity_tag=activity, behavior_tags=frozenset(behavior))


class TestProcessTagChanges:
    """Tests for change detection"""

    def test_active_to_at_risk_emits_one_churn_trigger(self, as_of):
        previous = {"c-1": tags()}
        results = [TagResult("c-1", tags(activity=ActivityTag.AT_RISK))]

        triggers = process_tag_changes(results, previous, created_at=as_of)

        assert len(triggers) == 1
        trigger = triggers[0]
        assert trigger.dimension == TagDimension.ACTIVITY
        assert trigger.trigger_type == TriggerType.CHURN_RISK
        assert trigger.old_tag == "active"
        assert trigger.new_tag == "at_risk"
        assert trigger.processed is False
        assert trigger.campaign_sent_at is None
        assert trigger.created_at == as_of

    def test_unchanged_tags_emit_nothing(self, as_of):
        current = tags(behavior=[BehaviorTag.COMBO_BUYER])

        assert process_tag_changes([TagResult("c-1", current)], {"c-1": current}, created_at=as_of) == []

    def test_two_changed_dimensions_emit_two_triggers(self, as_of):
        previous = {"c-1": tags(spend=SpendTag.MID_SPENDER, activity=ActivityTag.ACTIVE)}
        results = [TagResult("c-1", tags(spend=SpendTag.HIGH_SPENDER, activity=ActivityTag.DORMANT))]

        triggers = process_tag_changes(results, previous, created_at=as_of)

        assert [(t.dimension, t.trigger_type) for t in triggers] == [
            (TagDimension.SPEND, TriggerType.SPEND_UPGRADE),
            (TagDimension.ACTIVITY, TriggerType.DORMANT_CUSTOMER),
        ]

    def test_behavior_change_records_full_sets(self, as_of):
        previous = {"c-1": tags(behavior=[BehaviorTag.LUNCH_REGULAR])}
        results = [TagResult("c-1", tags(behavior=[BehaviorTag.COMBO_BUYER, BehaviorTag.LUNCH_REGULAR]))]

        (trigger,) = process_tag_changes(results, previous, created_at=as_of)

        assert trigger.trigger_type == TriggerType.BEHAVIOR_CHANGE
        assert trigger.old_tags == ("lunch_regular",)
        assert trigger.new_tags == ("combo_buyer", "lunch_regular")
        assert trigger.gained_tags == ("combo_buyer",)
        assert trigger.lost_tags == ()

    def test_missing_snapshot_means_no_prior_tags(self, as_of):
        results = [TagResult("c-1", tags(activity=ActivityTag.NEW_CUSTOMER))]

        triggers = process_tag_changes(results, {}, created_at=as_of)

        assert [t.dimension for t in triggers] == [TagDimension.SPEND, TagDimension.ACTIVITY]
        assert all(t.old_tags == () for t in triggers)
        assert triggers[1].trigger_type == TriggerType.NEW_CUSTOMER

    def test_missing_snapshot_with_behavior_tags(self, as_of):
        results = [TagResult("c-1", tags(behavior=[BehaviorTag.PREMIUM_SEEKER]))]

        triggers = process_tag_changes(results, {}, created_at=as_of)

        assert [t.dimension for t in triggers] == [
            TagDimension.SPEND,
            TagDimension.ACTIVITY,
            TagDimension.BEHAVIOR,
        ]

    def test_output_sorted_by_customer_then_dimension(self, as_of):
        results = [
            TagResult("c-2", tags(spend=SpendTag.LOW_SPENDER, activity=ActivityTag.AT_RISK)),
            TagResult("c-1", tags(activity=ActivityTag.DORMANT)),
        ]
        previous = {"c-1": tags(), "c-2": tags()}

        triggers = process_tag_changes(results, previous, created_at=as_of)

        assert [(t.customer_id, t.dimension) for t in triggers] == [
            ("c-1", TagDimension.ACTIVITY),
            ("c-2", TagDimension.SPEND),
            ("c-2", TagDimension.ACTIVITY),
        ]

    def test_deterministic_ids(self, as_of):
        previous = {"c-1": tags(), "c-2": tags()}
        results = [
            TagResult("c-1", tags(activity=ActivityTag.AT_RISK)),
            TagResult("c-2", tags(spend=SpendTag.HIGH_SPENDER)),
        ]

        first = process_tag_changes(results, previous, created_at=as_of)
        second = process_tag_changes(list(reversed(results)), previous, created_at=as_of)
        later = process_tag_changes(results, previous, created_at=as_of + timedelta(days=1))

        assert first == second
        assert len({t.trigger_id for t in first}) == 2
        assert {t.trigger_id for t in first}.isdisjoint({t.trigger_id for t in later})

    def test_ids_depend_on_instant_not_offset(self, as_of):
        previous = {"c-1": tags()}
        results = [TagResult("c-1", tags(activity=ActivityTag.AT_RISK))]
        ist = timezone(timedelta(hours=5, minutes=30))

        utc_ids = [t.trigger_id for t in process_tag_changes(results, previous, created_at=as_of)]
        ist_ids = [t.trigger_id for t in process_tag_changes(results, previous, created_at=as_of.astimezone(ist))]

        assert utc_ids == ist_ids

    def test_snapshot_skips_unevaluated_customers(self, make_customer, as_of):
        evaluated = make_customer("seen")
        evaluated.tags_evaluated_at = as_of
        fresh = Customer(customer_id="fresh", name="New Face")

        snapshot = snapshot_tags([evaluated, fresh])

        assert list(snapshot) == ["seen"]


class TestClassification:
    """Tests for trigger type selection"""

    @pytest.mark.parametrize("old,new,expected", [
        (ActivityTag.AT_RISK, ActivityTag.ACTIVE, TriggerType.WIN_BACK),
        (ActivityTag.DORMANT, ActivityTag.ACTIVE, TriggerType.WIN_BACK),
        (ActivityTag.NEW_CUSTOMER, ActivityTag.ACTIVE, TriggerType.TAG_CHANGED),
        (None, ActivityTag.NEW_CUSTOMER, TriggerType.NEW_CUSTOMER),
        (ActivityTag.ACTIVE, ActivityTag.INSUFFICIENT_DATA, TriggerType.TAG_CHANGED),
    ])
    def test_activity(self, old, new, expected):
        assert classify_activity_change(old, new) == expected

    @pytest.mark.parametrize("old,new,expected", [
        (SpendTag.LOW_SPENDER, SpendTag.HIGH_SPENDER, TriggerType.SPEND_UPGRADE),
        (SpendTag.HIGH_SPENDER, SpendTag.MID_SPENDER, TriggerType.SPEND_DOWNGRADE),
        (SpendTag.LOW_SPENDER, SpendTag.MID_SPENDER, TriggerType.TAG_CHANGED),
        (None, SpendTag.HIGH_SPENDER, TriggerType.SPEND_UPGRADE),
    ])
    def test_spend(self, old, new, expected):
        assert classify_spend_change(old, new) == expected
