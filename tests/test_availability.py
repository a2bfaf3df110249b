"""Tests for availability entry and matching"""
from datetime import date, datetime, timedelta, timezone

import pytest

from intervention_workflow.domain.enums import Action, InterventionStatus, Role
from intervention_workflow.domain.errors import (
    AuthorizationError, ConcurrencyError, PermissionDeniedError, ValidationError
)
from intervention_workflow.domain.models import Availability, AvailabilityWindow
from intervention_workflow.engine.availability import find_matches
from intervention_workflow.repositories.audit_repo import AuditRepository
from .conftest import make_actor

DAY = date(2030, 1, 15)
NEXT_DAY = date(2030, 1, 16)
NOW = datetime(2030, 1, 1, tzinfo=timezone.utc)


def window(user_id: str, start: str, end: str, day: date = DAY) -> Availability:
    actor = make_actor(user_id)
    return Availability(
        availability_id=f"AVL-{user_id}-{day.isoformat()}-{start}",
        intervention_id="INT-test",
        user_id=user_id,
        user_name=actor.name,
        user_role=actor.role,
        slot_date=day,
        start_time=start,
        end_time=end,
        created_at=NOW
    )


def soon(days: int = 7) -> date:
    return date.today() + timedelta(days=days)


# =============================================================================
# Matching
# =============================================================================

def test_nothing_entered():
    result = find_matches([])
    assert result.perfect_matches == []
    assert result.statistics.total_users == 0


def test_tenant_and_provider_overlap():
    result = find_matches([
        window("ten-1", "08:00", "12:00"),
        window("prov-1", "10:00", "17:00"),
    ])

    [match] = result.perfect_matches
    assert (match.start_time, match.end_time) == ("10:00", "12:00")
    assert match.overlap_minutes == 120
    assert match.match_score == 100
    assert [p.user_id for p in match.participants] == ["prov-1", "ten-1"]
    assert result.partial_matches == []


def test_third_participant_narrows_the_window():
    result = find_matches([
        window("ten-1", "08:00", "12:00"),
        window("prov-1", "10:00", "17:00"),
        window("mgr-1", "11:00", "13:00"),
    ])

    [match] = result.perfect_matches
    assert (match.start_time, match.end_time) == ("11:00", "12:00")
    assert len(match.participants) == 3
    assert result.statistics.best_match_score == 100


def test_participant_available_another_day_is_missing():
    result = find_matches([
        window("ten-1", "08:00", "12:00"),
        window("prov-1", "10:00", "17:00"),
        window("mgr-1", "14:00", "16:00", day=NEXT_DAY),
    ])

    assert result.perfect_matches == []
    [partial] = result.partial_matches
    assert partial.slot_date == DAY
    assert partial.match_score == 67
    assert [u.user_id for u in partial.available_users] == ["prov-1", "ten-1"]
    assert [u.user_id for u in partial.missing_users] == ["mgr-1"]
    assert result.statistics.total_windows == 3


@pytest.mark.parametrize("tenant_end, matched", [("10:20", False), ("10:30", True)])
def test_short_overlaps_are_ignored(tenant_end, matched):
    result = find_matches([
        window("ten-1", "08:00", tenant_end),
        window("prov-1", "10:00", "12:00"),
    ])
    assert bool(result.perfect_matches) is matched


def test_own_overlapping_windows_are_reported():
    result = find_matches([
        window("ten-1", "08:00", "10:00"),
        window("ten-1", "09:00", "11:00"),
        window("ten-1", "14:00", "15:00", day=NEXT_DAY),
        window("ten-1", "15:00", "16:00", day=NEXT_DAY),
        window("prov-1", "09:00", "12:00"),
    ])

    [conflict] = result.conflicts
    assert (conflict.user_id, conflict.slot_date) == ("ten-1", DAY)
    assert len(conflict.windows) == 2


# =============================================================================
# Entry
# =============================================================================

def test_entry_replaces_earlier_windows(engine, driver, tenant):
    intervention_id = driver.planning()
    engine.submit_availability(intervention_id, tenant, [
        AvailabilityWindow(slot_date=soon(), start_time="08:00", end_time="10:00"),
        AvailabilityWindow(slot_date=soon(8), start_time="14:00", end_time="18:00"),
    ])

    result = engine.submit_availability(intervention_id, tenant, [
        AvailabilityWindow(slot_date=soon(9), start_time="9:30", end_time="11:00"),
    ])

    assert result.intervention.status == InterventionStatus.PLANIFICATION
    stored = engine.get_availabilities(intervention_id, tenant)
    assert [(a.slot_date, a.start_time, a.end_time) for a in stored] == [(soon(9), "09:30", "11:00")]
    assert stored[0].user_role == Role.LOCATAIRE
    assert [a.availability_id for a in result.availabilities] == [a.availability_id for a in stored]
    submissions = AuditRepository().get_events_for_intervention(intervention_id, actions=[Action.SUBMIT_AVAILABILITY])
    assert len(submissions) == 2


def test_empty_entry_clears_windows(engine, driver, provider):
    intervention_id = driver.planning()
    engine.submit_availability(intervention_id, provider, [
        AvailabilityWindow(slot_date=soon(), start_time="08:00", end_time="10:00"),
    ])

    engine.submit_availability(intervention_id, provider, [])

    assert engine.get_availabilities(intervention_id, provider) == []


@pytest.mark.parametrize("slot_date, start, end", [
    (date(2020, 3, 2), "08:00", "10:00"),
    (None, "08:00", "10:00"),
    ("soon", "10:00", "09:00"),
    ("soon", "8h", "10:00"),
])
def test_invalid_windows_keep_earlier_entry(engine, driver, tenant, slot_date, start, end):
    intervention_id = driver.planning()
    engine.submit_availability(intervention_id, tenant, [
        AvailabilityWindow(slot_date=soon(), start_time="08:00", end_time="10:00"),
    ])
    if slot_date is None:
        slot_date = date.today() + timedelta(days=240)
    elif slot_date == "soon":
        slot_date = soon(3)

    with pytest.raises(ValidationError):
        engine.submit_availability(intervention_id, tenant, [
            AvailabilityWindow(slot_date=soon(2), start_time="08:00", end_time="10:00"),
            AvailabilityWindow(slot_date=slot_date, start_time=start, end_time=end),
        ])

    stored = engine.get_availabilities(intervention_id, tenant)
    assert [a.slot_date for a in stored] == [soon()]


def test_entry_only_while_planning(engine, driver, tenant):
    intervention_id = driver.approved()
    with pytest.raises(AuthorizationError):
        engine.submit_availability(intervention_id, tenant, [
            AvailabilityWindow(slot_date=soon(), start_time="08:00", end_time="10:00"),
        ])


@pytest.mark.parametrize("user_id", ["ten-2", "prov-2", "mgr-9"])
def test_outsiders_cannot_enter_windows(engine, driver, user_id):
    intervention_id = driver.planning()
    with pytest.raises(PermissionDeniedError):
        engine.submit_availability(intervention_id, make_actor(user_id), [
            AvailabilityWindow(slot_date=soon(), start_time="08:00", end_time="10:00"),
        ])


def test_lost_write_restores_previous_windows(engine, driver, tenant, monkeypatch):
    intervention_id = driver.planning()
    engine.submit_availability(intervention_id, tenant, [
        AvailabilityWindow(slot_date=soon(), start_time="08:00", end_time="10:00"),
    ])

    def lost_race(*args, **kwargs):
        raise ConcurrencyError("modified")

    monkeypatch.setattr(engine.intervention_repo, "apply_transition", lost_race)

    with pytest.raises(ConcurrencyError):
        engine.submit_availability(intervention_id, tenant, [
            AvailabilityWindow(slot_date=soon(5), start_time="14:00", end_time="16:00"),
        ])

    stored = engine.get_availabilities(intervention_id, tenant)
    assert [(a.slot_date, a.start_time) for a in stored] == [(soon(), "08:00")]


def test_matching_through_the_engine(engine, driver, manager, tenant, provider):
    intervention_id = driver.planning()
    engine.submit_availability(intervention_id, tenant, [
        AvailabilityWindow(slot_date=soon(), start_time="08:00", end_time="12:00"),
    ])
    engine.submit_availability(intervention_id, provider, [
        AvailabilityWindow(slot_date=soon(), start_time="11:00", end_time="15:00"),
    ])

    result = engine.match_availabilities(intervention_id, manager)

    [match] = result.perfect_matches
    assert (match.slot_date, match.start_time, match.end_time) == (soon(), "11:00", "12:00")

    with pytest.raises(PermissionDeniedError):
        engine.match_availabilities(intervention_id, make_actor("mgr-9"))
