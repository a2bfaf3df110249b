"""Quote Routes - Decisions on an existing quote"""
from typing import Optional
from fastapi import APIRouter, Depends

from ..deps import get_current_user_dep, get_correlation_id_dep
from ...domain.models import ActorContext
from ...services.intervention_service import InterventionService
from .schemas import SubmitQuoteRequest, QuoteDecisionRequest

router = APIRouter(dependencies=[Depends(get_correlation_id_dep)])


@router.post("/{quote_id}/cancel")
async def cancel_quote(
    quote_id: str,
    request: Optional[QuoteDecisionRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep)
):
    service = InterventionService()
    result = service.engine.cancel_quote(quote_id, actor, reason=request.reason if request else None)
    return service.respond(result, actor)


@router.post("/{quote_id}/submit")
async def submit_quote(
    quote_id: str,
    request: SubmitQuoteRequest,
    actor: ActorContext = Depends(get_current_user_dep)
):
    """Provider prices the quote addressed to them"""
    service = InterventionService()
    result = service.engine.submit_quote(quote_id, actor, request.amount, request.description)
    return service.respond(result, actor)


@router.post("/{quote_id}/accept")
async def accept_quote(
    quote_id: str,
    actor: ActorContext = Depends(get_current_user_dep)
):
    service = InterventionService()
    result = service.engine.accept_quote(quote_id, actor)
    return service.respond(result, actor)


@router.post("/{quote_id}/reject")
async def reject_quote(
    quote_id: str,
    request: Optional[QuoteDecisionRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep)
):
    service = InterventionService()
    result = service.engine.reject_quote(quote_id, actor, reason=request.reason if request else None)
    return service.respond(result, actor)
