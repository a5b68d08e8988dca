"""
Demo Customer Data

Generates restaurant customers with plausible order histories for local
demos and tests. Customers are drawn from a few diner personas so every
tag has a chance to appear:
- Weekday lunch regulars who buy combos
- Weekend dinner groups
- Premium diners
- Lapsed customers
- First-time visitors
"""

import random
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol, Tuple

from faker import Faker

from restaurant_crm.tagging.models import Customer, LineItem, Order, OrderSource, ensure_utc, utc_now
from restaurant_crm.transformation.enrichers import CustomerStatsEnricher


class CustomerProvider(Protocol):
    """Source of customers with order history for one restaurant"""

    def customers(self, restaurant_id: str) -> List[Customer]:
        ...


# =============================================================================
# CONFIGURATION
# =============================================================================

MENU: Dict[str, List[Tuple[str, float]]] = {
    "starters": [("Paneer Tikka", 240.0), ("Chicken Wings", 280.0), ("Garlic Bread", 150.0)],
    "mains": [("Butter Chicken", 380.0), ("Dal Makhani", 290.0), ("Lamb Rogan Josh", 460.0), ("Veg Biryani", 320.0)],
    "desserts": [("Gulab Jamun", 120.0), ("Kulfi", 140.0)],
    "beverages": [("Masala Chai", 60.0), ("Fresh Lime Soda", 90.0), ("Mango Lassi", 110.0)],
}

COMBOS: List[Tuple[str, float]] = [("Lunch Thali", 220.0), ("Family Feast", 1400.0)]

# persona: (weight, visits range, gap days range, hour choices, weekend bias, party range)
PERSONAS = {
    "lunch_regular": (0.30, (4, 14), (3, 9), [12, 13, 14], 0.1, (1, 2)),
    "weekend_group": (0.20, (3, 10), (6, 16), [19, 20, 21], 0.9, (3, 6)),
    "premium": (0.15, (2, 8), (10, 25), [20, 21], 0.5, (2, 4)),
    "lapsed": (0.20, (2, 6), (15, 30), [13, 20], 0.4, (1, 3)),
    "first_timer": (0.15, (1, 1), (0, 0), [12, 19, 20], 0.5, (1, 4)),
}


class DemoCustomerProvider:
    """
    Seeded Faker-backed customer provider.

    Example:
        provider = DemoCustomerProvider(count=50, seed=7)
        customers = provider.customers("r-1")
    """

    def __init__(self, count: int = 100, seed: int = 42, as_of: Optional[datetime] = None):
        self.count = count
        self.seed = seed
        self.as_of = ensure_utc(as_of) if as_of else utc_now()
        self.enricher = CustomerStatsEnricher()

    def customers(self, restaurant_id: str) -> List[Customer]:
        rng = random.Random(self.seed)
        fake = Faker()
        fake.seed_instance(self.seed)

        names = list(PERSONAS)
        weights = [PERSONAS[p][0] for p in names]

        customers = []
        for _ in range(self.count):
            persona = rng.choices(names, weights=weights)[0]
            customer_id = str(uuid.UUID(int=rng.getrandbits(128)))
            customer = Customer(
                customer_id=customer_id,
                name=fake.name(),
                phone=fake.phone_number(),
                email=fake.email() if rng.random() > 0.3 else None,
                restaurant_id=restaurant_id,
                orders=self._orders(rng, persona, customer_id),
            )
            customers.append(self.enricher.refresh(customer))

        customers.sort(key=lambda c: c.customer_id)
        return customers

    def _orders(self, rng: random.Random, persona: str, customer_id: str) -> List[Order]:
        _, visits_range, gap_range, hours, weekend_bias, party_range = PERSONAS[persona]
        visits = rng.randint(*visits_range)

        # Most recent visit first, walking back in time
        if persona == "lapsed":
            offset_days = rng.randint(60, 150)
        elif persona == "first_timer":
            offset_days = rng.randint(0, 5)
        else:
            offset_days = rng.randint(0, 10)

        moment = self.as_of - timedelta(days=offset_days)
        orders = []
        for n in range(visits):
            moment = self._align(rng, moment, hours, weekend_bias)
            if moment > self.as_of:
                moment -= timedelta(days=1)
            orders.append(self._order(rng, persona, f"{customer_id}-{n:03d}", moment, party_range))
            moment -= timedelta(days=rng.randint(*gap_range) or 1)

        orders.sort(key=lambda o: o.timestamp)
        return orders

    def _align(self, rng: random.Random, moment: datetime, hours: List[int], weekend_bias: float) -> datetime:
        wants_weekend = rng.random() < weekend_bias
        for _ in range(7):
            if (moment.weekday() >= 5) == wants_weekend:
                break
            moment -= timedelta(days=1)
        return moment.replace(hour=rng.choice(hours), minute=rng.randint(0, 59), second=0, microsecond=0)

    def _order(
        self,
        rng: random.Random,
        persona: str,
        order_id: str,
        moment: datetime,
        party_range: Tuple[int, int],
    ) -> Order:
        guests = rng.randint(*party_range)
        items: List[LineItem] = []

        if persona == "lunch_regular" and rng.random() < 0.8:
            name, price = COMBOS[0]
            items.append(LineItem(name=name, category="combos", price=price, is_combo=True))
        elif persona == "weekend_group" and rng.random() < 0.3:
            name, price = COMBOS[1]
            items.append(LineItem(name=name, category="combos", price=price, is_combo=True))
        else:
            for category in ("mains", "beverages"):
                name, price = rng.choice(MENU[category])
                items.append(LineItem(name=name, category=category, price=price, quantity=max(1, guests // 2)))
            if persona == "premium":
                for category in ("starters", "desserts"):
                    name, price = rng.choice(MENU[category])
                    items.append(LineItem(name=name, category=category, price=price, quantity=guests))

        return Order(
            order_id=order_id,
            timestamp=moment,
            items=tuple(items),
            total_amount=round(sum(item.line_total for item in items), 2),
            guest_count_estimate=guests,
            source=rng.choice([OrderSource.DINE_IN, OrderSource.DINE_IN, OrderSource.TAKEAWAY, OrderSource.DELIVERY]),
        )
