"""API Routes module"""
from fastapi import APIRouter

from .interventions import router as interventions_router
from .quotes import router as quotes_router
from .time_slots import router as time_slots_router
from .notifications import router as notifications_router
from .cron import router as cron_router

# Main API router
api_router = APIRouter()

api_router.include_router(interventions_router, prefix="/interventions", tags=["Interventions"])
api_router.include_router(quotes_router, prefix="/quotes", tags=["Quotes"])
api_router.include_router(time_slots_router, prefix="/time-slots", tags=["Time Slots"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(cron_router, prefix="/cron", tags=["Cron"])

__all__ = ["api_router"]
