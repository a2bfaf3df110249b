"""
Intervention Routes

Lifecycle endpoints:
- Create / read / list
- Manager decisions (approve, reject, planning, scheduling, finalize, cancel)
- Provider and tenant steps (start, complete, validate)
- Assignments, quote requests, slot proposals and availabilities scoped to an intervention

Mutating endpoints accept an optional ``expected_status`` query parameter: the
status the client last saw. When the intervention has moved on in the meantime
the request fails with 409 instead of a 403 for the new status.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from ..deps import get_current_user_dep, get_correlation_id_dep, get_expected_status_dep
from ...domain.models import ActorContext
from ...domain.enums import AssignmentRole, InterventionStatus
from ...services.intervention_service import InterventionService
from ...utils.logger import get_logger
from .schemas import (
    CreateInterventionRequest, CommentRequest, ReasonRequest, StartPlanningRequest,
    ConfirmScheduleRequest, CompleteWorkRequest, ValidateWorkRequest, FinalizeRequest,
    AssignRequest, RequestQuoteRequest, ProposeSlotRequest, SubmitAvailabilityRequest
)

logger = get_logger(__name__)
router = APIRouter(dependencies=[Depends(get_correlation_id_dep)])


# =============================================================================
# CRUD
# =============================================================================

@router.post("", status_code=201)
async def create_intervention(
    request: CreateInterventionRequest,
    actor: ActorContext = Depends(get_current_user_dep)
):
    """Open a new request (locataire, gestionnaire or admin)"""
    service = InterventionService()
    result = service.engine.create_intervention(
        actor,
        title=request.title,
        description=request.description,
        type=request.type,
        urgency=request.urgency,
        lot_id=request.lot_id,
        building_id=request.building_id,
        tenant_id=request.tenant_id
    )
    return service.respond(result, actor)


@router.get("")
async def list_interventions(
    status: Optional[List[InterventionStatus]] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_user_dep)
):
    """Interventions visible to the current user, newest first"""
    return InterventionService().list_interventions(actor, statuses=status, skip=skip, limit=limit)


@router.get("/{intervention_id}")
async def get_intervention(
    intervention_id: str,
    actor: ActorContext = Depends(get_current_user_dep)
):
    return InterventionService().get_intervention(intervention_id, actor)


@router.get("/{intervention_id}/available-actions")
async def get_available_actions(
    intervention_id: str,
    actor: ActorContext = Depends(get_current_user_dep)
):
    """Actions the current user may perform right now"""
    return InterventionService().get_available_actions(intervention_id, actor)


# =============================================================================
# Manager decisions
# =============================================================================

@router.post("/{intervention_id}/approve")
async def approve(
    intervention_id: str,
    request: Optional[CommentRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    service = InterventionService()
    result = service.engine.approve(
        intervention_id, actor, comment=request.comment if request else None, expected_status=expected_status
    )
    return service.respond(result, actor)


@router.post("/{intervention_id}/reject")
async def reject(
    intervention_id: str,
    request: ReasonRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    """Turn down a request; a reason is required"""
    service = InterventionService()
    result = service.engine.reject(intervention_id, actor, request.reason, expected_status=expected_status)
    return service.respond(result, actor)


@router.post("/{intervention_id}/start-planning")
async def start_planning(
    intervention_id: str,
    request: Optional[StartPlanningRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    service = InterventionService()
    result = service.engine.start_planning(
        intervention_id,
        actor,
        selected_quote_id=request.selected_quote_id if request else None,
        expected_status=expected_status
    )
    return service.respond(result, actor)


@router.post("/{intervention_id}/confirm-schedule")
async def confirm_schedule(
    intervention_id: str,
    request: ConfirmScheduleRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    """Confirm a proposed slot, or schedule directly with a date and times"""
    service = InterventionService()
    result = service.engine.confirm_schedule(
        intervention_id,
        actor,
        slot_id=request.slot_id,
        slot_date=request.slot_date,
        start_time=request.start_time,
        end_time=request.end_time,
        selected_quote_id=request.selected_quote_id,
        expected_status=expected_status
    )
    return service.respond(result, actor)


@router.post("/{intervention_id}/finalize")
async def finalize(
    intervention_id: str,
    request: Optional[FinalizeRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    service = InterventionService()
    request = request or FinalizeRequest()
    result = service.engine.finalize(
        intervention_id,
        actor,
        final_cost=request.final_cost,
        comment=request.comment,
        expected_status=expected_status
    )
    return service.respond(result, actor)


@router.post("/{intervention_id}/cancel")
async def cancel(
    intervention_id: str,
    request: ReasonRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    """Cancel an ongoing intervention; a reason is required"""
    service = InterventionService()
    result = service.engine.cancel(intervention_id, actor, request.reason, expected_status=expected_status)
    return service.respond(result, actor)


# =============================================================================
# Work execution
# =============================================================================

@router.post("/{intervention_id}/start-work")
async def start_work(
    intervention_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    service = InterventionService()
    result = service.engine.start_work(intervention_id, actor, expected_status=expected_status)
    return service.respond(result, actor)


@router.post("/{intervention_id}/complete-work")
async def complete_work(
    intervention_id: str,
    request: Optional[CompleteWorkRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    service = InterventionService()
    result = service.engine.complete_work(
        intervention_id, actor, report=request.report if request else None, expected_status=expected_status
    )
    return service.respond(result, actor)


@router.post("/{intervention_id}/validate-work")
async def validate_work(
    intervention_id: str,
    request: ValidateWorkRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    """Tenant approves or contests the completed work"""
    service = InterventionService()
    result = service.engine.validate_work(
        intervention_id,
        actor,
        request.decision,
        reason=request.reason,
        satisfaction_rating=request.satisfaction_rating,
        comment=request.comment,
        expected_status=expected_status
    )
    return service.respond(result, actor)


# =============================================================================
# Assignments
# =============================================================================

@router.post("/{intervention_id}/assignments")
async def assign_user(
    intervention_id: str,
    request: AssignRequest,
    actor: ActorContext = Depends(get_current_user_dep)
):
    service = InterventionService()
    result = service.engine.assign_user(
        intervention_id, actor, request.user_id, request.role, is_primary=request.is_primary
    )
    return service.respond(result, actor)


@router.delete("/{intervention_id}/assignments/{user_id}")
async def unassign_user(
    intervention_id: str,
    user_id: str,
    role: AssignmentRole = Query(...),
    actor: ActorContext = Depends(get_current_user_dep)
):
    service = InterventionService()
    result = service.engine.unassign_user(intervention_id, actor, user_id, role)
    return service.respond(result, actor)


# =============================================================================
# Quotes, time slots & availabilities
# =============================================================================

@router.post("/{intervention_id}/quotes", status_code=201)
async def request_quote(
    intervention_id: str,
    request: RequestQuoteRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    expected_status: Optional[InterventionStatus] = Depends(get_expected_status_dep)
):
    """Ask a provider for a quote"""
    service = InterventionService()
    result = service.engine.request_quote(
        intervention_id,
        actor,
        request.provider_id,
        deadline=request.deadline,
        notes=request.notes,
        description=request.description,
        expected_status=expected_status
    )
    return service.respond(result, actor)


@router.get("/{intervention_id}/quotes")
async def get_quotes(
    intervention_id: str,
    actor: ActorContext = Depends(get_current_user_dep)
):
    return InterventionService().get_quotes(intervention_id, actor)


@router.post("/{intervention_id}/time-slots", status_code=201)
async def propose_slot(
    intervention_id: str,
    request: ProposeSlotRequest,
    actor: ActorContext = Depends(get_current_user_dep)
):
    service = InterventionService()
    result = service.engine.propose_slot(
        intervention_id, actor, request.slot_date, request.start_time, request.end_time
    )
    return service.respond(result, actor)


@router.get("/{intervention_id}/time-slots")
async def get_time_slots(
    intervention_id: str,
    actor: ActorContext = Depends(get_current_user_dep)
):
    return InterventionService().get_time_slots(intervention_id, actor)


@router.post("/{intervention_id}/availabilities")
async def submit_availability(
    intervention_id: str,
    request: SubmitAvailabilityRequest,
    actor: ActorContext = Depends(get_current_user_dep)
):
    """Replace the current user's availability windows"""
    service = InterventionService()
    result = service.engine.submit_availability(intervention_id, actor, request.availabilities)
    return service.respond(result, actor)


@router.get("/{intervention_id}/availabilities")
async def get_availabilities(
    intervention_id: str,
    actor: ActorContext = Depends(get_current_user_dep)
):
    return InterventionService().get_availabilities(intervention_id, actor)


@router.get("/{intervention_id}/availability-matches")
async def match_availabilities(
    intervention_id: str,
    actor: ActorContext = Depends(get_current_user_dep)
):
    """Windows shared by the participants, best first"""
    return InterventionService().match_availabilities(intervention_id, actor)
