"""
Tagging API Endpoints

Trigger a recalculation pass for a restaurant and read its latest
segment summary.
"""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_crm.automation.recalculation import recalculate_restaurant
from restaurant_crm.database.connection import get_db_dependency
from restaurant_crm.database.repository import SummaryStore
from restaurant_crm.serving.cache import summary_cache

router = APIRouter()
logger = structlog.get_logger(__name__)


class RecalculateRequest(BaseModel):
    as_of: Optional[datetime] = None


class RecalculateResponse(BaseModel):
    restaurant_id: str
    as_of: datetime
    customers_evaluated: int
    customers_changed: int
    triggers_created: int
    summary: dict


@router.post("/{restaurant_id}/recalculate", response_model=RecalculateResponse)
async def recalculate(
    restaurant_id: str,
    request: Optional[RecalculateRequest] = None,
    db: AsyncSession = Depends(get_db_dependency),
) -> RecalculateResponse:
    """Run a full tagging pass and store its tags, summary and triggers."""
    as_of = request.as_of if request else None

    try:
        report = await recalculate_restaurant(db, restaurant_id, as_of=as_of)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    await db.commit()
    await summary_cache.delete(restaurant_id)

    return RecalculateResponse(**report.to_dict())


@router.get("/{restaurant_id}/summary")
async def get_summary(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> dict:
    """Latest stored summary, served from cache when available."""
    async def load() -> Optional[dict]:
        return await SummaryStore(db).latest(restaurant_id)

    summary = await summary_cache.get_or_set(restaurant_id, load)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"No summary for restaurant {restaurant_id}")
    return summary
