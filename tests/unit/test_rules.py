"""
Unit Tests - Tag Rules
"""
import random

import pytest

from restaurant_crm.config import TaggingSettings
from restaurant_crm.tagging.models import (
    ActivityTag,
    BehaviorTag,
    Customer,
    CustomerTags,
    SpendTag,
)
from restaurant_crm.tagging.rules import TagRuleEvaluator, evaluate_tags


def tags_by_id(results):
    return {r.customer_id: r.new_tags for r in results}


class TestSpendTags:
    """Tests for spend classification"""

    def test_aov_above_high_band_is_high_spender(self, make_customer, as_of):
        """AOV 1250 with the 1000 band is high_spender"""
        customer = make_customer(amount=1250.0)

        results = evaluate_tags([customer], restaurant_avg_visit_gap=10.0, as_of=as_of)

        assert customer.average_order_value == 1250.0
        assert results[0].new_tags.spend_tag == SpendTag.HIGH_SPENDER

    @pytest.mark.parametrize("amount,expected", [
        (1000.0, SpendTag.HIGH_SPENDER),
        (999.0, SpendTag.MID_SPENDER),
        (400.0, SpendTag.MID_SPENDER),
        (399.0, SpendTag.LOW_SPENDER),
    ])
    def test_band_edges(self, make_customer, as_of, amount, expected):
        customer = make_customer(amount=amount)

        results = evaluate_tags([customer], restaurant_avg_visit_gap=10.0, as_of=as_of)

        assert results[0].new_tags.spend_tag == expected

    def test_percentile_strategy(self, make_customer, as_of):
        """Percentile mode ranks customers against each other"""
        policy = TaggingSettings(spend_strategy="percentile")
        customers = [
            make_customer("cheap", amount=100.0),
            make_customer("middle", amount=500.0),
            make_customer("lavish", amount=900.0),
        ]

        tags = tags_by_id(evaluate_tags(customers, 10.0, policy=policy, as_of=as_of))

        assert tags["lavish"].spend_tag == SpendTag.HIGH_SPENDER
        assert tags["middle"].spend_tag == SpendTag.MID_SPENDER
        assert tags["cheap"].spend_tag == SpendTag.LOW_SPENDER

    def test_invalid_bands_rejected(self):
        with pytest.raises(ValueError):
            TaggingSettings(high_spend_threshold=300.0, mid_spend_threshold=400.0)


class TestActivityTags:
    """Tests for recency classification"""

    def test_forty_days_with_ten_day_gap_is_at_risk(self, make_customer, as_of):
        customer = make_customer(days_ago=(70, 60, 50, 40))

        results = evaluate_tags([customer], restaurant_avg_visit_gap=10.0, as_of=as_of)

        assert customer.average_visit_gap_days == 10.0
        assert results[0].new_tags.activity_tag == ActivityTag.AT_RISK

    def test_recent_visit_is_active(self, make_customer, as_of):
        customer = make_customer(days_ago=(30, 20, 10, 5))

        results = evaluate_tags([customer], restaurant_avg_visit_gap=10.0, as_of=as_of)

        assert results[0].new_tags.activity_tag == ActivityTag.ACTIVE

    def test_long_absence_is_dormant(self, make_customer, as_of):
        customer = make_customer(days_ago=(130, 120, 110, 100))

        results = evaluate_tags([customer], restaurant_avg_visit_gap=10.0, as_of=as_of)

        assert results[0].new_tags.activity_tag == ActivityTag.DORMANT

    def test_four_gaps_absent_is_dormant(self, make_customer, as_of):
        customer = make_customer(days_ago=(75, 70, 65, 60, 55, 50, 45, 40, 35, 30, 25))

        results = evaluate_tags([customer], restaurant_avg_visit_gap=10.0, as_of=as_of)

        assert results[0].new_tags.activity_tag == ActivityTag.DORMANT

    def test_first_visit_within_half_restaurant_gap_is_new(self, make_customer, as_of):
        customer = make_customer(days_ago=(3,))

        results = evaluate_tags([customer], restaurant_avg_visit_gap=10.0, as_of=as_of)

        assert results[0].new_tags.activity_tag == ActivityTag.NEW_CUSTOMER

    def test_single_visit_falls_back_to_restaurant_gap(self, make_customer, as_of):
        """One visit 25 days ago against a 10 day restaurant gap"""
        customer = make_customer(days_ago=(25,))

        results = evaluate_tags([customer], restaurant_avg_visit_gap=10.0, as_of=as_of)

        assert customer.average_visit_gap_days == 0.0
        assert results[0].new_tags.activity_tag == ActivityTag.AT_RISK

    def test_default_gap_when_restaurant_has_none(self, make_customer, as_of):
        """Without any gap data the 30 day default applies"""
        customer = make_customer(days_ago=(25,))

        results = evaluate_tags([customer], restaurant_avg_visit_gap=0.0, as_of=as_of)

        assert results[0].new_tags.activity_tag == ActivityTag.ACTIVE


class TestBehaviorTags:
    """Tests for ordering pattern tags"""

    def test_eight_of_ten_combo_orders_is_combo_buyer(self, make_customer, as_of):
        flags = [True] * 8 + [False] * 2
        customer = make_customer(days_ago=range(10, 0, -1), combo=flags)

        results = evaluate_tags([customer], 5.0, as_of=as_of)

        assert BehaviorTag.COMBO_BUYER in results[0].new_tags.behavior_tags

    def test_two_combo_orders_are_not_enough(self, make_customer, as_of):
        customer = make_customer(days_ago=(3, 2), combo=True)

        results = evaluate_tags([customer], 5.0, as_of=as_of)

        assert BehaviorTag.COMBO_BUYER not in results[0].new_tags.behavior_tags

    def test_daypart_and_party_tags(self, make_customer, as_of):
        dinner = make_customer("dinner", hour=20, guests=4)
        lunch = make_customer("lunch", hour=12, guests=1)

        tags = tags_by_id(evaluate_tags([dinner, lunch], 10.0, as_of=as_of))

        assert BehaviorTag.DINNER_REGULAR in tags["dinner"].behavior_tags
        assert BehaviorTag.LARGE_PARTY in tags["dinner"].behavior_tags
        assert BehaviorTag.LUNCH_REGULAR in tags["lunch"].behavior_tags
        assert BehaviorTag.LARGE_PARTY not in tags["lunch"].behavior_tags

    def test_weekend_regular(self, make_customer, as_of):
        # as_of is a Monday; 2, 9 and 16 days earlier are Saturdays
        customer = make_customer(days_ago=(16, 9, 2))

        results = evaluate_tags([customer], 7.0, as_of=as_of)

        assert BehaviorTag.WEEKEND_REGULAR in results[0].new_tags.behavior_tags

    def test_daypart_read_in_restaurant_timezone(self, make_customer, as_of):
        # 07:00 UTC is 12:30 in Kolkata
        customer = make_customer(hour=7)
        kolkata = TaggingSettings(timezone="Asia/Kolkata")

        utc_tags = evaluate_tags([customer], 10.0, as_of=as_of)[0].new_tags
        local_tags = evaluate_tags([customer], 10.0, policy=kolkata, as_of=as_of)[0].new_tags

        assert BehaviorTag.LUNCH_REGULAR not in utc_tags.behavior_tags
        assert BehaviorTag.LUNCH_REGULAR in local_tags.behavior_tags

    def test_weekend_read_in_restaurant_timezone(self, make_customer, as_of):
        # Friday 20:00 UTC is already Saturday in Kolkata
        customer = make_customer(days_ago=(17, 10, 3), hour=20)
        kolkata = TaggingSettings(timezone="Asia/Kolkata")

        utc_tags = evaluate_tags([customer], 7.0, as_of=as_of)[0].new_tags
        local_tags = evaluate_tags([customer], 7.0, policy=kolkata, as_of=as_of)[0].new_tags

        assert BehaviorTag.WEEKEND_REGULAR not in utc_tags.behavior_tags
        assert BehaviorTag.WEEKEND_REGULAR in local_tags.behavior_tags

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValueError):
            TaggingSettings(timezone="Mars/Olympus_Mons")

    def test_category_loyalist(self, make_customer, as_of):
        customer = make_customer(category="desserts")

        results = evaluate_tags([customer], 10.0, as_of=as_of)

        assert BehaviorTag.CATEGORY_LOYALIST in results[0].new_tags.behavior_tags

    def test_price_tags_are_exclusive(self, make_customer, as_of):
        cheap = make_customer("cheap", amount=150.0)
        premium = make_customer("premium", amount=900.0)

        tags = tags_by_id(evaluate_tags([cheap, premium], 10.0, as_of=as_of))

        assert BehaviorTag.PRICE_SENSITIVE in tags["cheap"].behavior_tags
        assert BehaviorTag.PREMIUM_SEEKER not in tags["cheap"].behavior_tags
        assert BehaviorTag.PREMIUM_SEEKER in tags["premium"].behavior_tags

    def test_frequent_visitor_needs_minimum_visits(self, make_customer, as_of):
        regular = make_customer("regular", days_ago=range(24, 0, -2))
        occasional = make_customer("occasional", days_ago=(20, 10))

        tags = tags_by_id(evaluate_tags([regular, occasional], 5.0, as_of=as_of))

        assert BehaviorTag.FREQUENT_VISITOR in tags["regular"].behavior_tags
        assert BehaviorTag.FREQUENT_VISITOR not in tags["occasional"].behavior_tags


class TestEvaluator:
    """Tests for evaluation as a whole"""

    def test_empty_input(self, as_of):
        assert evaluate_tags([], 10.0, as_of=as_of) == []

    def test_customer_without_orders_gets_sentinel(self, make_customer, as_of):
        empty = Customer(customer_id="ghost", name="No Orders", restaurant_id="r-1")
        regular = make_customer()

        tags = tags_by_id(evaluate_tags([empty, regular], 10.0, as_of=as_of))

        assert tags["ghost"] == CustomerTags.insufficient_data()
        assert tags["ghost"].behavior_tags == frozenset()
        assert tags["cust-1"].spend_tag != SpendTag.INSUFFICIENT_DATA

    def test_zero_visits_with_orders_gets_sentinel(self, make_customer, as_of):
        customer = make_customer()
        customer.total_visits = 0

        results = evaluate_tags([customer], 10.0, as_of=as_of)

        assert results[0].new_tags == CustomerTags.insufficient_data()

    def test_results_follow_input_order(self, make_customer, as_of):
        customers = [make_customer(f"c-{n}") for n in (3, 1, 2)]

        results = evaluate_tags(customers, 10.0, as_of=as_of)

        assert [r.customer_id for r in results] == ["c-3", "c-1", "c-2"]

    def test_deterministic_regardless_of_order(self, make_customer, as_of):
        customers = [
            make_customer(f"c-{n}", amount=100.0 * (n + 1), days_ago=(40 - n, 20 - n, n + 1), hour=12 + n % 9)
            for n in range(12)
        ]
        shuffled = customers[:]
        random.Random(7).shuffle(shuffled)

        evaluator = TagRuleEvaluator(policy=TaggingSettings(spend_strategy="percentile"), as_of=as_of)

        assert tags_by_id(evaluator.evaluate(customers, 9.0)) == tags_by_id(evaluator.evaluate(shuffled, 9.0))
        assert evaluator.evaluate(customers, 9.0) == evaluator.evaluate(customers, 9.0)

    def test_does_not_mutate_input(self, make_customer, as_of):
        customer = make_customer(amount=1250.0)

        evaluate_tags([customer], 10.0, as_of=as_of)

        assert customer.spend_tag == SpendTag.INSUFFICIENT_DATA
        assert customer.tags_evaluated_at is None
