"""
Unit Tests - Recalculation Pass
"""
from datetime import timedelta

import pytest

from restaurant_crm.data.generators import DemoCustomerProvider
from restaurant_crm.tagging.models import ActivityTag, Customer, CustomerTags, TagResult, apply_tag_result
from restaurant_crm.tagging.pipeline import TaggingPipeline
from restaurant_crm.tagging.triggers import snapshot_tags


class TestTaggingPipeline:
    """Tests for a full recalculation pass"""

    def test_first_pass_tags_and_triggers(self, make_customer, as_of):
        customers = [make_customer("a"), make_customer("b", days_ago=(3,))]

        result = TaggingPipeline().run(customers, snapshot_tags(customers), restaurant_id="r-1", as_of=as_of)

        assert all(c.tags_evaluated_at == as_of for c in result.customers)
        assert result.summary.total_customers == 2
        assert result.changed_customer_ids == ["a", "b"]
        assert customers[0].tags_evaluated_at is None

    def test_second_pass_is_idempotent(self, make_customer, as_of):
        customers = [
            make_customer(f"c-{n}", amount=180.0 * (n + 1), days_ago=(60 - 3 * n, 30 - n, n + 1), hour=11 + n)
            for n in range(9)
        ]
        pipeline = TaggingPipeline()

        first = pipeline.run(customers, snapshot_tags(customers), restaurant_id="r-1", as_of=as_of)
        second = pipeline.run(first.customers, snapshot_tags(first.customers), restaurant_id="r-1", as_of=as_of)

        assert second.triggers == ()
        assert second.summary == first.summary
        assert [c.tags for c in second.customers] == [c.tags for c in first.customers]

    def test_time_passing_produces_churn_trigger(self, make_customer, as_of):
        customers = [make_customer("regular", days_ago=(30, 20, 10))]
        pipeline = TaggingPipeline()

        first = pipeline.run(customers, {}, as_of=as_of)
        later = pipeline.run(first.customers, snapshot_tags(first.customers), as_of=as_of + timedelta(days=15))

        assert first.customers[0].activity_tag == ActivityTag.ACTIVE
        assert later.customers[0].activity_tag == ActivityTag.AT_RISK
        assert [t.trigger_type.value for t in later.triggers] == ["churn_risk"]

    def test_empty_restaurant(self, as_of):
        result = TaggingPipeline().run([], {}, restaurant_id="r-1", as_of=as_of)

        assert result.customers == ()
        assert result.triggers == ()
        assert result.summary.total_customers == 0

    def test_demo_customers_run_cleanly(self, as_of):
        customers = DemoCustomerProvider(count=40, seed=3, as_of=as_of).customers("demo")

        first = TaggingPipeline().run(customers, {}, restaurant_id="demo", as_of=as_of)
        second = TaggingPipeline().run(first.customers, snapshot_tags(first.customers), restaurant_id="demo", as_of=as_of)

        assert first.summary.total_customers == 40
        assert len(first.triggers) >= 80
        assert second.triggers == ()


class TestApplyTagResult:
    """Tests for writing tags onto a customer"""

    def test_mismatched_customer_rejected(self, as_of):
        customer = Customer(customer_id="a", name="A")

        with pytest.raises(ValueError):
            apply_tag_result(customer, TagResult("b", CustomerTags.insufficient_data()), as_of)
