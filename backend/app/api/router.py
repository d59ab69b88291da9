"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from app.api.routes import capacity, events, reservations, waitlist

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(capacity.router)
api_router.include_router(reservations.router)
api_router.include_router(waitlist.router)
