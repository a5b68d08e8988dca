"""
Unit Tests - Stats Enrichment and Demo Data
"""
import pytest

from restaurant_crm.data.generators import DemoCustomerProvider
from restaurant_crm.tagging.models import Customer
from restaurant_crm.transformation.enrichers import CustomerStatsEnricher


class TestCustomerStatsEnricher:
    """Tests for CustomerStatsEnricher"""

    def test_stats_from_orders(self, make_order, as_of):
        customer = Customer(
            customer_id="c-1",
            name="Meera",
            orders=[
                make_order("o-1", 20, amount=300.0, guests=2),
                make_order("o-2", 10, amount=500.0, guests=4),
                make_order("o-3", 0, amount=400.0, guests=3),
            ],
        )

        enriched = CustomerStatsEnricher().refresh(customer)

        assert enriched.total_visits == 3
        assert enriched.total_spend == 1200.0
        assert enriched.average_order_value == 400.0
        assert enriched.average_visit_gap_days == 10.0
        assert enriched.guest_estimate_avg == 3.0
        assert enriched.first_visit_date == customer.orders[0].timestamp
        assert enriched.last_visit_date == customer.orders[-1].timestamp

    def test_no_orders_gives_zero_stats(self):
        enriched = CustomerStatsEnricher().refresh(Customer(customer_id="c-1", name="Empty"))

        assert enriched.total_visits == 0
        assert enriched.first_visit_date is None

    def test_record_order_refreshes_stats(self, make_customer, make_order):
        customer = make_customer(days_ago=(30, 20))

        updated = CustomerStatsEnricher().record_order(customer, make_order("late", 5, amount=800.0))

        assert updated.total_visits == 3
        assert updated.orders[-1].order_id == "late"
        assert updated.average_visit_gap_days == 12.5
        assert customer.total_visits == 2

    def test_record_order_keeps_history_sorted(self, make_customer, make_order):
        customer = make_customer(days_ago=(30, 10))

        updated = CustomerStatsEnricher().record_order(customer, make_order("backfill", 20))

        assert [o.order_id for o in updated.orders] == ["cust-1-0", "backfill", "cust-1-1"]

    def test_duplicate_order_rejected(self, make_customer, make_order):
        customer = make_customer()

        with pytest.raises(ValueError):
            CustomerStatsEnricher().record_order(customer, make_order("cust-1-0", 1))

    def test_refresh_all_matches_refresh(self, make_customer):
        customers = [make_customer("a"), make_customer("b", days_ago=(9, 3))]
        enricher = CustomerStatsEnricher()

        assert enricher.refresh_all(customers) == [enricher.refresh(c) for c in customers]


class TestDemoCustomerProvider:
    """Tests for the demo data provider"""

    def test_seeded_output_is_reproducible(self, as_of):
        first = DemoCustomerProvider(count=15, seed=11, as_of=as_of).customers("demo")
        second = DemoCustomerProvider(count=15, seed=11, as_of=as_of).customers("demo")

        assert first == second

    def test_customers_have_consistent_stats(self, as_of):
        customers = DemoCustomerProvider(count=25, seed=5, as_of=as_of).customers("demo")

        assert len({c.customer_id for c in customers}) == 25
        for customer in customers:
            assert customer.restaurant_id == "demo"
            assert customer.total_visits == len(customer.orders) > 0
            assert customer.last_visit_date <= as_of
