"""Tests for slot proposals, answers and schedule confirmation"""
from datetime import date, datetime, timezone

import pytest

from intervention_workflow.domain.enums import InterventionStatus, SlotResponse, TimeSlotStatus
from intervention_workflow.domain.errors import (
    AuthorizationError, ConcurrencyError, InvalidStateError, TimeSlotNotFoundError, ValidationError
)
from intervention_workflow.domain.models import TimeSlot
from intervention_workflow.engine.scheduling import validate_slot_date, validate_time_range
from .conftest import FUTURE_DATE


@pytest.mark.parametrize("start, end", [("9h", "10:00"), ("9:0", "10:00"), ("09:00", "24:00"), ("11:00", "10:00"), ("10:00", "10:00")])
def test_invalid_time_ranges(start, end):
    with pytest.raises(ValidationError):
        validate_time_range(start, end)


def test_proposals_only_during_planning(engine, driver, provider):
    intervention_id = driver.approved()
    with pytest.raises(AuthorizationError):
        engine.propose_slot(intervention_id, provider, FUTURE_DATE, "09:00", "10:00")


def test_any_participant_may_propose(engine, driver, manager, tenant, provider):
    intervention_id = driver.planning()

    for actor in (manager, tenant, provider):
        engine.propose_slot(intervention_id, actor, FUTURE_DATE, "09:00", "10:00")

    slots = engine.get_time_slots(intervention_id, manager)
    assert sorted(s.proposed_by for s in slots) == ["mgr-1", "prov-1", "ten-1"]


def test_cannot_answer_own_proposal(engine, driver, provider):
    intervention_id = driver.planning()
    slot = engine.propose_slot(intervention_id, provider, FUTURE_DATE, "09:00", "10:00").time_slot

    with pytest.raises(ValidationError):
        engine.respond_to_slot(slot.slot_id, provider, SlotResponse.ACCEPT)


def test_decline_requires_reason_and_answers_are_replaced(engine, driver, tenant, provider):
    intervention_id = driver.planning()
    slot = engine.propose_slot(intervention_id, provider, FUTURE_DATE, "09:00", "10:00").time_slot

    with pytest.raises(ValidationError):
        engine.respond_to_slot(slot.slot_id, tenant, SlotResponse.DECLINE)

    engine.respond_to_slot(slot.slot_id, tenant, SlotResponse.DECLINE, reason="Je travaille ce jour-là")
    engine.respond_to_slot(slot.slot_id, tenant, "accept")

    responses = engine.slot_repo.get_responses_for_slot(slot.slot_id)
    assert len(responses) == 1
    assert responses[0].response == SlotResponse.ACCEPT


def test_managers_do_not_answer_slots(engine, driver, manager, provider):
    intervention_id = driver.planning()
    slot = engine.propose_slot(intervention_id, provider, FUTURE_DATE, "09:00", "10:00").time_slot

    with pytest.raises(AuthorizationError):
        engine.respond_to_slot(slot.slot_id, manager, SlotResponse.ACCEPT)


def test_confirm_needs_exactly_one_source(engine, driver, manager, provider):
    intervention_id = driver.planning()
    slot = engine.propose_slot(intervention_id, provider, FUTURE_DATE, "09:00", "10:00").time_slot

    with pytest.raises(ValidationError):
        engine.confirm_schedule(intervention_id, manager)
    with pytest.raises(ValidationError):
        engine.confirm_schedule(
            intervention_id, manager, slot_id=slot.slot_id, slot_date=FUTURE_DATE,
            start_time="09:00", end_time="10:00"
        )
    with pytest.raises(ValidationError):
        engine.confirm_schedule(intervention_id, manager, slot_date=FUTURE_DATE, start_time="09:00")


def test_confirm_withdraws_other_proposals(engine, driver, manager, tenant, provider):
    intervention_id = driver.planning()
    chosen = engine.propose_slot(intervention_id, provider, FUTURE_DATE, "09:00", "10:00").time_slot
    other = engine.propose_slot(intervention_id, tenant, FUTURE_DATE, "14:00", "15:00").time_slot

    result = engine.confirm_schedule(intervention_id, manager, slot_id=chosen.slot_id)

    assert result.intervention.status == InterventionStatus.PLANIFIEE
    assert engine.slot_repo.get_slot(chosen.slot_id).status == TimeSlotStatus.SELECTED
    assert engine.slot_repo.get_slot(other.slot_id).status == TimeSlotStatus.REJECTED

    with pytest.raises(AuthorizationError):
        engine.confirm_schedule(intervention_id, manager, slot_id=other.slot_id)


def test_summer_time_is_applied(engine, driver, manager):
    intervention_id = driver.approved()

    result = engine.confirm_schedule(
        intervention_id, manager, slot_date=date(2030, 7, 1), start_time="09:00", end_time="10:00"
    )

    assert result.intervention.scheduled_date == datetime(2030, 7, 1, 7, 0, tzinfo=timezone.utc)


def test_past_dates_are_refused(engine, driver, manager):
    intervention_id = driver.approved()

    with pytest.raises(ValidationError) as exc_info:
        engine.confirm_schedule(
            intervention_id, manager, slot_date=date(2020, 3, 2), start_time="08:00", end_time="09:00"
        )

    assert exc_info.value.message == "Cannot schedule in the past"
    assert driver.status(intervention_id) == InterventionStatus.APPROUVEE
    assert engine.slot_repo.get_slots_for_intervention(intervention_id) == []


def test_past_proposal_is_refused(engine, driver, tenant):
    intervention_id = driver.planning()

    with pytest.raises(ValidationError):
        engine.propose_slot(intervention_id, tenant, date(2020, 3, 2), "08:00", "09:00")

    assert engine.slot_repo.get_slots_for_intervention(intervention_id) == []


def test_proposal_that_has_gone_by_cannot_be_confirmed(engine, driver, manager, provider):
    intervention_id = driver.planning()
    now = datetime.now(timezone.utc)
    # Proposed while still ahead; the date has passed since
    stale = engine.slot_repo.create_slot(TimeSlot(
        slot_id="SLOT-gone-by",
        intervention_id=intervention_id,
        slot_date=date(2021, 6, 1),
        start_time="10:00",
        end_time="12:00",
        proposed_by=provider.user_id,
        proposer_role=provider.role,
        created_at=now,
        updated_at=now
    ))

    with pytest.raises(ValidationError):
        engine.confirm_schedule(intervention_id, manager, slot_id=stale.slot_id)

    assert engine.slot_repo.get_slot(stale.slot_id).status == TimeSlotStatus.PENDING
    assert driver.status(intervention_id) == InterventionStatus.PLANIFICATION


def test_today_is_not_in_the_past():
    validate_slot_date(date(2030, 1, 15), today=date(2030, 1, 15))
    with pytest.raises(ValidationError):
        validate_slot_date(date(2030, 1, 14), today=date(2030, 1, 15))


def test_single_digit_hours_are_normalized(engine, driver, manager, tenant):
    intervention_id = driver.planning()

    slot = engine.propose_slot(intervention_id, tenant, FUTURE_DATE, "9:00", "10:30").time_slot
    assert (slot.start_time, slot.end_time) == ("09:00", "10:30")

    result = engine.confirm_schedule(intervention_id, manager, slot_id=slot.slot_id)
    assert result.intervention.scheduled_date == datetime(2030, 1, 15, 8, 0, tzinfo=timezone.utc)


def test_slot_of_another_intervention(engine, driver, manager, provider):
    first = driver.planning()
    second = driver.planning()
    slot = engine.propose_slot(first, provider, FUTURE_DATE, "09:00", "10:00").time_slot

    with pytest.raises(TimeSlotNotFoundError):
        engine.confirm_schedule(second, manager, slot_id=slot.slot_id)


def test_cancelled_slot_cannot_be_confirmed(engine, driver, manager, provider):
    intervention_id = driver.planning()
    slot = engine.propose_slot(intervention_id, provider, FUTURE_DATE, "09:00", "10:00").time_slot
    engine.slot_repo.update_slot_status(slot.slot_id, TimeSlotStatus.PENDING, TimeSlotStatus.CANCELLED)

    with pytest.raises(InvalidStateError):
        engine.confirm_schedule(intervention_id, manager, slot_id=slot.slot_id)


def test_failed_confirmation_releases_slot(engine, driver, manager, provider, monkeypatch):
    intervention_id = driver.planning()
    slot = engine.propose_slot(intervention_id, provider, FUTURE_DATE, "09:00", "10:00").time_slot

    def lost_race(*args, **kwargs):
        raise ConcurrencyError("modified")

    monkeypatch.setattr(engine.intervention_repo, "apply_transition", lost_race)

    with pytest.raises(ConcurrencyError):
        engine.confirm_schedule(intervention_id, manager, slot_id=slot.slot_id)

    assert engine.slot_repo.get_slot(slot.slot_id).status == TimeSlotStatus.PENDING
