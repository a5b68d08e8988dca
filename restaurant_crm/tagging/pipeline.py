"""
Tag Recalculation Pass

Runs evaluation, summary and trigger detection in their required order:
every customer is tagged before the summary is built, and changes are
detected against the snapshot supplied for this pass. Re-running a pass
on its own output with the same as_of produces an equal summary and no
triggers.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Mapping, Optional, Sequence, Tuple

import structlog

from restaurant_crm.config import TaggingSettings, get_settings
from restaurant_crm.tagging.models import (
    AutomationTrigger,
    Customer,
    CustomerTags,
    RestaurantCustomerSummary,
    TagResult,
    apply_tag_result,
    ensure_utc,
    utc_now,
)
from restaurant_crm.tagging.rules import TagRuleEvaluator
from restaurant_crm.tagging.summary import restaurant_average_visit_gap, summarize
from restaurant_crm.tagging.triggers import process_tag_changes

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PassResult:
    """Outcome of one recalculation pass"""
    tag_results: Tuple[TagResult, ...]
    customers: Tuple[Customer, ...]
    summary: RestaurantCustomerSummary
    triggers: Tuple[AutomationTrigger, ...]
    restaurant_avg_visit_gap: float

    @property
    def changed_customer_ids(self) -> List[str]:
        return sorted({t.customer_id for t in self.triggers})


class TaggingPipeline:
    """
    Full recalculation pass over a restaurant's customers.

    Example:
        pipeline = TaggingPipeline()
        result = pipeline.run(customers, snapshot_tags(customers), restaurant_id="r-1")
    """

    def __init__(self, policy: Optional[TaggingSettings] = None):
        self.policy = policy or get_settings().tagging

    def run(
        self,
        customers: Sequence[Customer],
        previous_tags: Mapping[str, CustomerTags],
        restaurant_id: Optional[str] = None,
        as_of: Optional[datetime] = None,
    ) -> PassResult:
        """
        Recalculate tags, summary and triggers.

        Args:
            customers: Validated customers with stats and order history
            previous_tags: Tag snapshot taken immediately before this pass
            restaurant_id: Restaurant the customers belong to
            as_of: Reference time for recency rules and timestamps

        Returns:
            PassResult with tagged customer copies; the input is not mutated
        """
        as_of = ensure_utc(as_of) if as_of else utc_now()

        avg_gap = restaurant_average_visit_gap(customers)
        evaluator = TagRuleEvaluator(policy=self.policy, as_of=as_of)
        tag_results = evaluator.evaluate(customers, avg_gap)

        by_id = {r.customer_id: r for r in tag_results}
        tagged = tuple(
            apply_tag_result(customer, by_id[customer.customer_id], evaluated_at=as_of)
            for customer in customers
        )

        summary = summarize(tagged, restaurant_id=restaurant_id, policy=self.policy, as_of=as_of)
        triggers = process_tag_changes(tag_results, previous_tags, created_at=as_of)

        logger.info(
            "Tag recalculation pass complete",
            restaurant_id=restaurant_id,
            customers=len(tagged),
            triggers=len(triggers),
            restaurant_avg_visit_gap=avg_gap,
        )

        return PassResult(
            tag_results=tuple(tag_results),
            customers=tagged,
            summary=summary,
            triggers=tuple(triggers),
            restaurant_avg_visit_gap=avg_gap,
        )
