"""Tests for compare-and-set writes and replay of undelivered events"""
import threading

import pytest

from intervention_workflow.domain.enums import Action, AssignmentRole, InterventionStatus
from intervention_workflow.domain.errors import AuthorizationError, ConcurrencyError, ConflictError, DomainError
from intervention_workflow.repositories.audit_repo import AuditRepository
from intervention_workflow.repositories.notification_repo import NotificationRepository


def test_stale_status_loses(engine, driver, manager, other_manager):
    intervention_id = driver.create()
    stale = engine.executor.load(intervention_id)

    engine.approve(intervention_id, manager)

    with pytest.raises(ConcurrencyError) as exc_info:
        engine.executor.commit(stale, other_manager, Action.REJECT, new_status=InterventionStatus.REJETEE)
    assert exc_info.value.details["current_status"] == "approuvee"
    assert driver.status(intervention_id) == InterventionStatus.APPROUVEE


def test_stale_version_loses(engine, driver, manager):
    intervention_id = driver.create()
    engine.approve(intervention_id, manager)
    stale = engine.executor.load(intervention_id)

    # Same status, newer version
    engine.assign_user(intervention_id, manager, "prov-1", AssignmentRole.PRESTATAIRE)

    with pytest.raises(ConcurrencyError) as exc_info:
        engine.executor.commit(stale, manager, Action.START_PLANNING, new_status=InterventionStatus.PLANIFICATION)
    assert exc_info.value.details["current_version"] == stale.version + 1


def test_losing_write_notifies_nobody(engine, driver, manager, other_manager):
    intervention_id = driver.create()
    stale = engine.executor.load(intervention_id)
    engine.approve(intervention_id, manager)
    notifications = NotificationRepository()
    before = len(notifications.get_notifications_for_entity(intervention_id))

    with pytest.raises(ConcurrencyError):
        engine.executor.commit(stale, other_manager, Action.REJECT, new_status=InterventionStatus.REJETEE)

    assert len(notifications.get_notifications_for_entity(intervention_id)) == before


def test_interrupted_fanout_is_replayed_once(engine, driver, manager):
    intervention_id = driver.create()

    def crash(*args, **kwargs):
        raise RuntimeError("process stopped")

    engine.fanout.dispatch = crash
    result = engine.approve(intervention_id, manager)
    del engine.fanout.dispatch

    assert result.intervention.status == InterventionStatus.APPROUVEE
    assert result.notifications.failed == 1
    pending = engine.intervention_repo.get_intervention(intervention_id).pending_events
    assert [e.event_id for e in pending] == [result.event_id]

    assert engine.replay_stale_events(0) == 1
    assert engine.replay_stale_events(0) == 0

    assert engine.intervention_repo.get_intervention(intervention_id).pending_events == []
    approvals = [
        n for n in NotificationRepository().get_notifications_for_entity(intervention_id)
        if n.dedup_key == result.event_id
    ]
    assert {n.user_id for n in approvals} == {"mgr-2", "ten-1"}
    assert len(AuditRepository().get_events_for_intervention(intervention_id, actions=[Action.APPROVE])) == 1


def test_replay_after_partial_dispatch_does_not_duplicate(engine, driver, manager):
    intervention_id = driver.create()

    # Fan-out and audit ran, but the event was never removed
    engine.intervention_repo.clear_pending_event = lambda *args: False
    result = engine.approve(intervention_id, manager)
    del engine.intervention_repo.clear_pending_event

    notifications = NotificationRepository()
    before = len(notifications.get_notifications_for_entity(intervention_id))
    replayed = engine.replay_stale_events(0)

    assert replayed == 1
    assert len(notifications.get_notifications_for_entity(intervention_id)) == before
    trail = AuditRepository().get_events_for_intervention(intervention_id, actions=[Action.APPROVE])
    assert [e.event_id for e in trail] == [result.event_id]


def test_fresh_events_are_left_alone(engine, driver, manager):
    intervention_id = driver.create()

    def down(*args, **kwargs):
        raise RuntimeError("down")

    engine.fanout.dispatch = down
    engine.approve(intervention_id, manager)
    del engine.fanout.dispatch

    assert engine.replay_stale_events(3600) == 0


# =============================================================================
# Decisions taken on a stale screen
# =============================================================================

def test_decision_on_stale_status_is_a_conflict(engine, driver, manager, other_manager):
    intervention_id = driver.create()
    engine.approve(intervention_id, manager, expected_status=InterventionStatus.DEMANDE)

    with pytest.raises(ConcurrencyError) as exc_info:
        engine.approve(intervention_id, other_manager, expected_status=InterventionStatus.DEMANDE)

    assert exc_info.value.details == {
        "expected_status": "demande",
        "current_status": "approuvee",
        "current_version": 2
    }


def test_without_expected_status_the_table_answers(engine, driver, manager, other_manager):
    intervention_id = driver.create()
    engine.approve(intervention_id, manager)

    with pytest.raises(AuthorizationError) as exc_info:
        engine.approve(intervention_id, other_manager)
    assert not isinstance(exc_info.value, ConflictError)


def test_concurrent_approvals_one_wins_the_other_conflicts(engine, driver, manager, other_manager):
    # Mongo applies a single-document update atomically; mongomock does not across threads
    lock = threading.Lock()
    apply_transition = engine.intervention_repo.apply_transition

    def atomic_apply(*args, **kwargs):
        with lock:
            return apply_transition(*args, **kwargs)

    engine.intervention_repo.apply_transition = atomic_apply

    for _ in range(10):
        intervention_id = driver.create()
        barrier = threading.Barrier(2)
        outcomes = []

        def decide(actor):
            barrier.wait()
            try:
                engine.approve(intervention_id, actor, expected_status=InterventionStatus.DEMANDE)
                outcomes.append(actor.user_id)
            except DomainError as e:
                outcomes.append(e)

        threads = [threading.Thread(target=decide, args=(actor,)) for actor in (manager, other_manager)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        winners = [o for o in outcomes if isinstance(o, str)]
        losers = [o for o in outcomes if not isinstance(o, str)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], ConcurrencyError)
        assert losers[0].http_status == 409

        intervention = engine.intervention_repo.get_intervention(intervention_id)
        assert intervention.status == InterventionStatus.APPROUVEE
        assert intervention.version == 2
        approvals = AuditRepository().get_events_for_intervention(intervention_id, actions=[Action.APPROVE])
        assert [e.actor_id for e in approvals] == winners
