"""
Customers API Endpoints

Customer lookup by tag, order intake and deactivation.
"""

from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_crm.database.connection import get_db_dependency
from restaurant_crm.database.repository import CustomerStore
from restaurant_crm.tagging.models import (
    ActivityTag,
    BehaviorTag,
    Customer,
    LineItem,
    Order,
    OrderSource,
    SpendTag,
    sort_behavior_tags,
)

router = APIRouter()
logger = structlog.get_logger(__name__)


# =============================================================================
# SCHEMAS
# =============================================================================

class LineItemIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1, max_length=100)
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    is_combo: bool = False


class OrderIn(BaseModel):
    """Completed order as submitted by the point of sale"""
    order_id: str = Field(min_length=1, max_length=64)
    timestamp: datetime
    items: List[LineItemIn] = Field(min_length=1)
    total_amount: Optional[float] = Field(default=None, ge=0, description="Defaults to the sum of line totals")
    guest_count_estimate: int = Field(default=1, ge=1)
    source: OrderSource = OrderSource.DINE_IN


class RecordOrderRequest(BaseModel):
    """Order plus contact details; contact fields create the customer on first order"""
    customer_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=32)
    email: Optional[str] = Field(default=None, max_length=255)
    order: OrderIn


class CustomerSummary(BaseModel):
    """Customer row in tag listings"""
    customer_id: str
    name: str
    restaurant_id: Optional[str]
    spend_tag: SpendTag
    activity_tag: ActivityTag
    behavior_tags: List[BehaviorTag]
    total_visits: int
    total_spend: float
    average_order_value: float
    last_visit_date: Optional[datetime]
    is_active: bool


class CustomerDetail(CustomerSummary):
    phone: Optional[str]
    email: Optional[str]
    first_visit_date: Optional[datetime]
    average_visit_gap_days: float
    guest_estimate_avg: float
    tags_evaluated_at: Optional[datetime]
    order_count: int


class CustomerListResponse(BaseModel):
    items: List[CustomerSummary]
    total: int
    page: int
    page_size: int


def _summary_fields(customer: Customer) -> dict:
    return {
        "customer_id": customer.customer_id,
        "name": customer.name,
        "restaurant_id": customer.restaurant_id,
        "spend_tag": customer.spend_tag,
        "activity_tag": customer.activity_tag,
        "behavior_tags": list(sort_behavior_tags(customer.behavior_tags)),
        "total_visits": customer.total_visits,
        "total_spend": customer.total_spend,
        "average_order_value": customer.average_order_value,
        "last_visit_date": customer.last_visit_date,
        "is_active": customer.is_active,
    }


def to_detail(customer: Customer) -> CustomerDetail:
    return CustomerDetail(
        **_summary_fields(customer),
        phone=customer.phone,
        email=customer.email,
        first_visit_date=customer.first_visit_date,
        average_visit_gap_days=customer.average_visit_gap_days,
        guest_estimate_avg=customer.guest_estimate_avg,
        tags_evaluated_at=customer.tags_evaluated_at,
        order_count=len(customer.orders),
    )


# =============================================================================
# ROUTES
# =============================================================================

@router.get("/restaurants/{restaurant_id}/customers", response_model=CustomerListResponse)
async def list_customers(
    restaurant_id: str,
    spend_tag: Optional[SpendTag] = None,
    activity_tag: Optional[ActivityTag] = None,
    behavior_tag: Optional[BehaviorTag] = None,
    include_inactive: bool = False,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db_dependency),
) -> CustomerListResponse:
    """List a restaurant's customers, optionally filtered by tag."""
    customers = await CustomerStore(db).list_customers(
        restaurant_id,
        include_inactive=include_inactive,
        spend_tag=spend_tag,
        activity_tag=activity_tag,
        behavior_tag=behavior_tag,
    )
    offset = (page - 1) * page_size

    return CustomerListResponse(
        items=[CustomerSummary(**_summary_fields(c)) for c in customers[offset:offset + page_size]],
        total=len(customers),
        page=page,
        page_size=page_size,
    )


@router.get("/customers/{customer_id}", response_model=CustomerDetail)
async def get_customer(
    customer_id: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> CustomerDetail:
    customer = await CustomerStore(db).get(customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail=f"Customer {customer_id} not found")
    return to_detail(customer)


@router.post(
    "/restaurants/{restaurant_id}/customers/{customer_id}/orders",
    response_model=CustomerDetail,
    status_code=status.HTTP_201_CREATED,
)
async def record_order(
    restaurant_id: str,
    customer_id: str,
    request: RecordOrderRequest,
    db: AsyncSession = Depends(get_db_dependency),
) -> CustomerDetail:
    """
    Record a completed order, creating the customer on first visit.

    Stats are refreshed immediately; tags change on the next
    recalculation pass.
    """
    store = CustomerStore(db)
    customer = await store.get(customer_id)

    if customer is None:
        if not request.customer_name:
            raise HTTPException(status_code=422, detail="customer_name is required for a new customer")
        customer = Customer(
            customer_id=customer_id,
            name=request.customer_name,
            phone=request.phone,
            email=request.email,
            restaurant_id=restaurant_id,
        )
    elif customer.restaurant_id != restaurant_id:
        raise HTTPException(status_code=404, detail=f"Customer {customer_id} not found")
    elif not customer.is_active:
        raise HTTPException(status_code=409, detail=f"Customer {customer_id} is deactivated")

    items = tuple(LineItem(**item.model_dump()) for item in request.order.items)
    order = Order(
        order_id=request.order.order_id,
        timestamp=request.order.timestamp,
        items=items,
        total_amount=(
            request.order.total_amount
            if request.order.total_amount is not None
            else round(sum(item.line_total for item in items), 2)
        ),
        guest_count_estimate=request.order.guest_count_estimate,
        source=request.order.source,
    )

    try:
        updated = await store.record_order(customer, order)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return to_detail(updated)


@router.delete("/customers/{customer_id}")
async def deactivate_customer(
    customer_id: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> dict:
    """Deactivate a customer; history and triggers are kept."""
    if not await CustomerStore(db).deactivate(customer_id):
        raise HTTPException(status_code=404, detail=f"Customer {customer_id} not found")
    return {"customer_id": customer_id, "status": "deactivated"}
