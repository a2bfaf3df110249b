"""Cron Routes - Entry points for an external scheduler"""
from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from ..deps import verify_cron_secret_dep, get_correlation_id_dep
from ...services.reminder_service import ReminderService
from ...utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_secret_dep), Depends(get_correlation_id_dep)])


@router.post("/intervention-reminders")
async def intervention_reminders():
    """
    Run the 24h / 1h reminder sweep once.

    Safe to call repeatedly: reminders already sent are skipped.
    """
    logger.info("Reminder sweep triggered by cron")
    return await run_in_threadpool(ReminderService().run_sweep)
