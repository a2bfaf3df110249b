"""Scheduling Negotiator - Planning, slot proposals and schedule confirmation"""
from datetime import date
from typing import Any, Dict, List, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from ..domain.models import (
    ActorContext, Availability, AvailabilityWindow, Intervention, Quote, TimeSlot, TimeSlotResponse,
    TransitionResult
)
from ..domain.enums import Action, InterventionStatus, QuoteStatus, SlotResponse, TimeSlotStatus
from ..domain.errors import DomainError, InvalidStateError, TimeSlotNotFoundError, ValidationError
from ..repositories.availability_repo import AvailabilityRepository
from ..repositories.time_slot_repo import TimeSlotRepository
from .quote_manager import QuoteNegotiationManager
from .transition_executor import TransitionExecutor, require_text
from ..config.settings import settings
from ..utils.idgen import generate_availability_id, generate_slot_id, generate_slot_response_id
from ..utils.logger import get_logger
from ..utils.time import utc_now, parse_hhmm, combine_local, local_today, normalize_hhmm

logger = get_logger(__name__)


def validate_time_range(start_time: str, end_time: str) -> None:
    """
    Both bounds must be ``HH:MM`` and the slot must not be empty.

    Raises:
        ValidationError: malformed time or end not after start
    """
    try:
        start = parse_hhmm(start_time)
        end = parse_hhmm(end_time)
    except ValueError as e:
        raise ValidationError(str(e), details={"start_time": start_time, "end_time": end_time})
    if end <= start:
        raise ValidationError(
            "End time must be after start time",
            details={"start_time": start_time, "end_time": end_time}
        )


def validate_slot_date(slot_date: date, today: Optional[date] = None) -> None:
    """
    Slots are never scheduled in the past; ``today`` is the property's local day.

    Raises:
        ValidationError: slot_date before today
    """
    today = today or local_today(settings.property_timezone)
    if slot_date < today:
        raise ValidationError(
            "Cannot schedule in the past",
            details={"slot_date": slot_date.isoformat(), "today": today.isoformat()}
        )


class SchedulingNegotiator:
    """
    Time-slot sub-protocol

    Any participant may propose slots while the intervention is in
    ``planification``; tenants and providers answer each other's proposals;
    a manager confirms one slot (or a direct date), which moves the
    intervention to ``planifiee`` and closes every other proposal.

    Participants may also enter their availability windows, which the
    manager matches to find a date that suits everyone.
    """

    # Availabilities can be entered this far ahead
    AVAILABILITY_HORIZON = relativedelta(months=6)

    def __init__(
        self,
        executor: TransitionExecutor,
        slot_repo: TimeSlotRepository,
        quotes: QuoteNegotiationManager,
        availability_repo: AvailabilityRepository
    ):
        self.executor = executor
        self.slot_repo = slot_repo
        self.quotes = quotes
        self.availability_repo = availability_repo

    def start_planning(
        self,
        intervention_id: str,
        actor: ActorContext,
        selected_quote_id: Optional[str] = None,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        """Open the planning phase, optionally naming the chosen quote"""
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.START_PLANNING, expected_status)

        updates: Dict[str, Any] = {}
        accepted = self._accept_selected_quote(intervention, actor, selected_quote_id)
        if selected_quote_id:
            updates["selected_quote_id"] = selected_quote_id

        try:
            return self.executor.commit(
                intervention,
                actor,
                Action.START_PLANNING,
                new_status=InterventionStatus.PLANIFICATION,
                updates=updates,
                payload={"selected_quote_id": selected_quote_id}
            )
        except DomainError:
            if accepted:
                self.quotes.restore(*accepted)
            raise

    def propose_slot(
        self,
        intervention_id: str,
        actor: ActorContext,
        slot_date: date,
        start_time: str,
        end_time: str
    ) -> TransitionResult:
        """Propose a candidate window in property local time"""
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.PROPOSE_SLOT)
        validate_time_range(start_time, end_time)
        validate_slot_date(slot_date)
        start_time, end_time = normalize_hhmm(start_time), normalize_hhmm(end_time)

        now = utc_now()
        slot = self.slot_repo.create_slot(TimeSlot(
            slot_id=generate_slot_id(),
            intervention_id=intervention_id,
            slot_date=slot_date,
            start_time=start_time,
            end_time=end_time,
            proposed_by=actor.user_id,
            proposer_role=actor.role,
            created_at=now,
            updated_at=now
        ))

        try:
            result = self.executor.commit(
                intervention,
                actor,
                Action.PROPOSE_SLOT,
                payload={
                    "slot_id": slot.slot_id,
                    "slot_date": slot_date.isoformat(),
                    "start_time": start_time,
                    "end_time": end_time
                }
            )
        except DomainError:
            self.slot_repo.delete_slot(slot.slot_id)
            raise

        return result.model_copy(update={"time_slot": slot})

    def respond_to_slot(
        self,
        slot_id: str,
        actor: ActorContext,
        response: Union[SlotResponse, str],
        reason: Optional[str] = None
    ) -> TransitionResult:
        """Accept or decline a slot proposed by someone else"""
        slot = self.slot_repo.get_slot_or_raise(slot_id)
        intervention = self.executor.load(slot.intervention_id)
        self.executor.authorize(intervention, actor, Action.RESPOND_SLOT)

        try:
            answer = SlotResponse(response)
        except ValueError:
            raise ValidationError(
                f"Invalid response '{response}', expected accept or decline",
                details={"response": str(response)}
            )
        if slot.proposed_by == actor.user_id:
            raise ValidationError("You cannot respond to your own proposal", details={"slot_id": slot_id})
        if slot.status != TimeSlotStatus.PENDING:
            raise InvalidStateError(
                f"Time slot {slot_id} is {slot.status.value}",
                details={"slot_id": slot_id, "status": slot.status.value}
            )
        if answer == SlotResponse.DECLINE:
            reason = require_text(reason, "reason")

        previous = self.slot_repo.get_response(slot_id, actor.user_id)
        self.slot_repo.upsert_response(TimeSlotResponse(
            response_id=generate_slot_response_id(),
            slot_id=slot_id,
            intervention_id=slot.intervention_id,
            user_id=actor.user_id,
            user_role=actor.role,
            response=answer,
            reason=reason,
            responded_at=utc_now()
        ))

        try:
            result = self.executor.commit(
                intervention,
                actor,
                Action.RESPOND_SLOT,
                payload={"slot_id": slot_id, "response": answer.value, "reason": reason}
            )
        except DomainError:
            if previous:
                self.slot_repo.upsert_response(previous)
            else:
                self.slot_repo.delete_response(slot_id, actor.user_id)
            raise

        return result.model_copy(update={"time_slot": slot})

    def confirm_schedule(
        self,
        intervention_id: str,
        actor: ActorContext,
        slot_id: Optional[str] = None,
        slot_date: Optional[date] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        selected_quote_id: Optional[str] = None,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        """
        Fix the execution date.

        Either ``slot_id`` names a pending proposal, or ``slot_date`` with
        ``start_time`` and ``end_time`` schedules directly. Either way the
        date must not be before today, property local time.
        """
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.CONFIRM_SCHEDULE, expected_status)

        direct = any(v is not None for v in (slot_date, start_time, end_time))
        if bool(slot_id) == direct:
            raise ValidationError(
                "Provide either slot_id or a direct slot_date, start_time and end_time",
                details={"slot_id": slot_id}
            )

        if direct:
            if slot_date is None or start_time is None or end_time is None:
                raise ValidationError(
                    "Direct scheduling requires slot_date, start_time and end_time",
                    details={"slot_date": str(slot_date), "start_time": start_time, "end_time": end_time}
                )
            validate_time_range(start_time, end_time)
            start_time, end_time = normalize_hhmm(start_time), normalize_hhmm(end_time)
            slot = None
        else:
            slot = self.slot_repo.get_slot_or_raise(slot_id)
            if slot.intervention_id != intervention_id:
                raise TimeSlotNotFoundError(f"Time slot {slot_id} not found on intervention {intervention_id}")
            if slot.status != TimeSlotStatus.PENDING:
                raise InvalidStateError(
                    f"Time slot {slot_id} is {slot.status.value}",
                    details={"slot_id": slot_id, "status": slot.status.value}
                )
            slot_date, start_time = slot.slot_date, slot.start_time

        validate_slot_date(slot_date)

        try:
            scheduled_date = combine_local(slot_date, start_time, settings.property_timezone)
        except ValueError as e:
            raise ValidationError(str(e))

        accepted = self._accept_selected_quote(intervention, actor, selected_quote_id)

        if slot is None:
            now = utc_now()
            selected = self.slot_repo.create_slot(TimeSlot(
                slot_id=generate_slot_id(),
                intervention_id=intervention_id,
                slot_date=slot_date,
                start_time=start_time,
                end_time=end_time,
                proposed_by=actor.user_id,
                proposer_role=actor.role,
                status=TimeSlotStatus.SELECTED,
                created_at=now,
                updated_at=now
            ))
        else:
            try:
                selected = self.slot_repo.update_slot_status(slot.slot_id, TimeSlotStatus.PENDING, TimeSlotStatus.SELECTED)
            except DomainError:
                if accepted:
                    self.quotes.restore(*accepted)
                raise

        updates: Dict[str, Any] = {
            "scheduled_date": scheduled_date,
            "selected_slot_id": selected.slot_id
        }
        if selected_quote_id:
            updates["selected_quote_id"] = selected_quote_id

        try:
            result = self.executor.commit(
                intervention,
                actor,
                Action.CONFIRM_SCHEDULE,
                new_status=InterventionStatus.PLANIFIEE,
                updates=updates,
                payload={
                    "slot_id": selected.slot_id,
                    "direct": slot is None,
                    "slot_date": slot_date.isoformat(),
                    "start_time": start_time,
                    "end_time": selected.end_time,
                    "selected_quote_id": selected_quote_id
                }
            )
        except DomainError:
            if slot is None:
                self.slot_repo.delete_slot(selected.slot_id)
            else:
                self.slot_repo.update_slot_status(selected.slot_id, TimeSlotStatus.SELECTED, TimeSlotStatus.PENDING)
            if accepted:
                self.quotes.restore(*accepted)
            raise

        withdrawn = self.slot_repo.close_pending_slots(
            intervention_id, TimeSlotStatus.REJECTED, exclude_slot_id=selected.slot_id
        )
        superseded = self.quotes.cancel_superseded(intervention_id)
        logger.info(
            f"Schedule confirmed: {withdrawn} slots withdrawn, {superseded} quotes superseded",
            extra={"intervention_id": intervention_id, "slot_id": selected.slot_id}
        )

        return result.model_copy(update={"time_slot": selected})

    def submit_availability(
        self,
        intervention_id: str,
        actor: ActorContext,
        windows: List[AvailabilityWindow]
    ) -> TransitionResult:
        """
        Replace the actor's availability windows on an intervention.

        Every window is checked before anything is written; an empty list
        clears the actor's windows.

        Raises:
            ValidationError: malformed or empty window, past date, beyond the horizon
        """
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.SUBMIT_AVAILABILITY)

        today = local_today(settings.property_timezone)
        horizon = today + self.AVAILABILITY_HORIZON
        now = utc_now()
        rows = []
        for window in windows:
            validate_time_range(window.start_time, window.end_time)
            validate_slot_date(window.slot_date, today)
            if window.slot_date > horizon:
                raise ValidationError(
                    "Availabilities cannot be entered more than 6 months ahead",
                    details={"slot_date": window.slot_date.isoformat(), "latest": horizon.isoformat()}
                )
            rows.append(Availability(
                availability_id=generate_availability_id(),
                intervention_id=intervention_id,
                user_id=actor.user_id,
                user_name=actor.name or None,
                user_role=actor.role,
                slot_date=window.slot_date,
                start_time=normalize_hhmm(window.start_time),
                end_time=normalize_hhmm(window.end_time),
                created_at=now
            ))

        previous = self.availability_repo.get_for_user(intervention_id, actor.user_id)
        self.availability_repo.replace_for_user(intervention_id, actor.user_id, rows)

        try:
            result = self.executor.commit(
                intervention,
                actor,
                Action.SUBMIT_AVAILABILITY,
                payload={"count": len(rows)}
            )
        except DomainError:
            self.availability_repo.replace_for_user(intervention_id, actor.user_id, previous)
            raise

        return result.model_copy(update={"availabilities": rows})

    def _accept_selected_quote(
        self,
        intervention: Intervention,
        actor: ActorContext,
        selected_quote_id: Optional[str]
    ) -> Optional[Tuple[Quote, Quote]]:
        """
        Accept the quote a planning operation names, unless already accepted.

        Returns:
            (original, accepted) when this call accepted it, for rollback
        """
        if not selected_quote_id:
            return None
        quote = self.quotes.resolve_selected_quote(intervention, selected_quote_id)
        if quote.status == QuoteStatus.ACCEPTED:
            return None
        return quote, self.quotes.mark_accepted(quote, actor)
