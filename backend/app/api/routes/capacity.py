"""
Capacity configuration, status and reconciliation endpoints.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.capacity import (
    CapacityConfigure,
    CapacityResponse,
    CapacityStatusResponse,
    CapacityValidationResponse,
    ReconciliationResponse,
)
from app.services import capacity_service
from app.services.cache_service import invalidate_event_cache
from app.services.reconciliation_service import run_reconciliation
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/capacity", tags=["Capacity"])


@router.put("/events/{event_id}", response_model=CapacityResponse)
async def configure_capacity_endpoint(
    event_id: int,
    config: CapacityConfigure,
    db: AsyncSession = Depends(get_db),
):
    """
    Create or update an event's capacity configuration.
    409 when the new ceiling would fall below capacity already held.
    """
    capacity = await capacity_service.configure_capacity(db, event_id, config)
    await invalidate_event_cache()
    return capacity


@router.get("/events/{event_id}", response_model=CapacityStatusResponse)
async def get_capacity_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Real-time counters and hold breakdown. Never cached."""
    return await capacity_service.get_capacity_status(db, event_id)


@router.get("/events/{event_id}/validate", response_model=CapacityValidationResponse)
async def validate_capacity_endpoint(
    event_id: int,
    quantity: int = Query(..., gt=0),
    db: AsyncSession = Depends(get_db),
):
    return await capacity_service.validate_capacity(db, event_id, quantity)


@router.delete("/events/{event_id}", response_model=CapacityResponse)
async def deactivate_capacity_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    capacity = await capacity_service.deactivate_capacity(db, event_id)
    await invalidate_event_cache()
    return capacity


@router.post("/reconcile", response_model=ReconciliationResponse)
async def reconcile_endpoint(db: AsyncSession = Depends(get_db)):
    """Run one expired-hold sweep now instead of waiting for the worker."""
    summary = await run_reconciliation(db)
    if summary["released"]:
        await invalidate_event_cache()
    return summary
