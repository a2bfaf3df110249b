"""Time Slot Routes - Answers to proposed slots"""
from fastapi import APIRouter, Depends

from ..deps import get_current_user_dep, get_correlation_id_dep
from ...domain.models import ActorContext
from ...services.intervention_service import InterventionService
from .schemas import SlotResponseRequest

router = APIRouter(dependencies=[Depends(get_correlation_id_dep)])


@router.post("/{slot_id}/responses")
async def respond_to_slot(
    slot_id: str,
    request: SlotResponseRequest,
    actor: ActorContext = Depends(get_current_user_dep)
):
    """Accept or decline a slot; declining requires a reason"""
    service = InterventionService()
    result = service.engine.respond_to_slot(slot_id, actor, request.response, reason=request.reason)
    return service.respond(result, actor)
