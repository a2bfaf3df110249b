"""
Intervention Schemas

Request models for the intervention API. Business rules (mandatory reasons,
rating bounds, time formats) are enforced by the engine so that every caller
gets the same errors; these models shape the payloads and refuse non-finite
amounts, which JSON parsing lets through.
"""

from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from ...domain.models import AvailabilityWindow
from ...domain.enums import AssignmentRole, SlotResponse, Urgency, ValidationDecision


# =============================================================================
# Intervention Schemas
# =============================================================================

class CreateInterventionRequest(BaseModel):
    """Request to open a new intervention"""
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=5000)
    type: str = Field("autre", max_length=100)
    urgency: Urgency = Urgency.NORMALE
    lot_id: Optional[str] = None
    building_id: Optional[str] = None
    tenant_id: Optional[str] = Field(None, description="Tenant the request is for (managers only)")


class CommentRequest(BaseModel):
    """Optional internal comment"""
    comment: Optional[str] = Field(None, max_length=2000)


class ReasonRequest(BaseModel):
    """Reject / cancel; the reason is mandatory"""
    reason: Optional[str] = Field(None, max_length=2000)


class StartPlanningRequest(BaseModel):
    selected_quote_id: Optional[str] = None


class ConfirmScheduleRequest(BaseModel):
    """Either a proposed slot or a direct date"""
    slot_id: Optional[str] = None
    slot_date: Optional[date] = None
    start_time: Optional[str] = Field(None, description="HH:MM, property local time")
    end_time: Optional[str] = Field(None, description="HH:MM, property local time")
    selected_quote_id: Optional[str] = None


class CompleteWorkRequest(BaseModel):
    report: Optional[str] = Field(None, max_length=5000)


class ValidateWorkRequest(BaseModel):
    """Tenant decision on completed work"""
    decision: ValidationDecision
    reason: Optional[str] = Field(None, max_length=2000)
    satisfaction_rating: Optional[int] = None
    comment: Optional[str] = Field(None, max_length=2000)


class FinalizeRequest(BaseModel):
    final_cost: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    comment: Optional[str] = Field(None, max_length=2000)


class AssignRequest(BaseModel):
    user_id: str
    role: AssignmentRole
    is_primary: bool = False


# =============================================================================
# Quote Schemas
# =============================================================================

class RequestQuoteRequest(BaseModel):
    provider_id: str
    deadline: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=2000)
    description: Optional[str] = Field(None, max_length=5000)


class SubmitQuoteRequest(BaseModel):
    amount: float = Field(..., ge=0, allow_inf_nan=False)
    description: Optional[str] = Field(None, max_length=5000)


class QuoteDecisionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


# =============================================================================
# Time Slot Schemas
# =============================================================================

class ProposeSlotRequest(BaseModel):
    slot_date: date
    start_time: str = Field(..., description="HH:MM, property local time")
    end_time: str = Field(..., description="HH:MM, property local time")


class SlotResponseRequest(BaseModel):
    response: SlotResponse
    reason: Optional[str] = Field(None, max_length=2000)


class SubmitAvailabilityRequest(BaseModel):
    """Replaces every window the caller entered on the intervention"""
    availabilities: List[AvailabilityWindow] = Field(default_factory=list, max_length=100)
