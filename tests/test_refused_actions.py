"""
Every (status, role, action) the table does not allow is refused by the
engine itself, before anything is written or anyone is notified.
"""
from datetime import datetime, timezone

import pytest

from intervention_workflow.domain.enums import Action, AssignmentRole, InterventionStatus, Role
from intervention_workflow.domain.errors import AuthorizationError
from intervention_workflow.domain.models import AvailabilityWindow, Quote, TimeSlot
from intervention_workflow.engine.transition_table import is_allowed
from intervention_workflow.repositories.mongo_client import get_collection
from .conftest import FUTURE_DATE, make_actor

ACTOR_FOR_ROLE = {
    Role.GESTIONNAIRE: "mgr-1",
    Role.ADMIN: "adm-1",
    Role.LOCATAIRE: "ten-1",
    Role.PRESTATAIRE: "prov-1",
}

# How each action is invoked; ids come from the seeded intervention
CALLS = {
    Action.APPROVE: lambda e, ids, actor: e.approve(ids["intervention"], actor),
    Action.REJECT: lambda e, ids, actor: e.reject(ids["intervention"], actor, "Hors périmètre"),
    Action.REQUEST_QUOTE: lambda e, ids, actor: e.request_quote(ids["intervention"], actor, "prov-2"),
    Action.CANCEL_QUOTE: lambda e, ids, actor: e.cancel_quote(ids["quote"], actor, "Plus nécessaire"),
    Action.SUBMIT_QUOTE: lambda e, ids, actor: e.submit_quote(ids["quote"], actor, 150),
    Action.ACCEPT_QUOTE: lambda e, ids, actor: e.accept_quote(ids["quote"], actor),
    Action.REJECT_QUOTE: lambda e, ids, actor: e.reject_quote(ids["quote"], actor, "Trop cher"),
    Action.START_PLANNING: lambda e, ids, actor: e.start_planning(ids["intervention"], actor),
    Action.PROPOSE_SLOT: lambda e, ids, actor: e.propose_slot(ids["intervention"], actor, FUTURE_DATE, "14:00", "15:00"),
    Action.RESPOND_SLOT: lambda e, ids, actor: e.respond_to_slot(ids["slot"], actor, "accept"),
    Action.SUBMIT_AVAILABILITY: lambda e, ids, actor: e.submit_availability(
        ids["intervention"], actor, [AvailabilityWindow(slot_date=FUTURE_DATE, start_time="08:00", end_time="10:00")]
    ),
    Action.CONFIRM_SCHEDULE: lambda e, ids, actor: e.confirm_schedule(ids["intervention"], actor, slot_id=ids["slot"]),
    Action.START_WORK: lambda e, ids, actor: e.start_work(ids["intervention"], actor),
    Action.COMPLETE_WORK: lambda e, ids, actor: e.complete_work(ids["intervention"], actor, report="Fait"),
    Action.VALIDATE_WORK: lambda e, ids, actor: e.validate_work(ids["intervention"], actor, "approved"),
    Action.FINALIZE: lambda e, ids, actor: e.finalize(ids["intervention"], actor, final_cost=100),
    Action.CANCEL: lambda e, ids, actor: e.cancel(ids["intervention"], actor, "Doublon"),
    Action.ASSIGN: lambda e, ids, actor: e.assign_user(ids["intervention"], actor, "prov-2", AssignmentRole.PRESTATAIRE),
    Action.UNASSIGN: lambda e, ids, actor: e.unassign_user(ids["intervention"], actor, "prov-1", AssignmentRole.PRESTATAIRE),
}

REFUSED = [
    pytest.param(status, role, action, id=f"{status.value}-{role.value}-{action.value}")
    for status in InterventionStatus
    for role in Role
    for action in Action
    if action != Action.CREATE and not is_allowed(status, role, action)
]


def test_every_action_has_a_call():
    assert set(CALLS) == set(Action) - {Action.CREATE}


@pytest.fixture
def seeded(engine, driver, manager, provider):
    """Intervention with an assigned provider, an open quote and a pending slot"""
    intervention_id = driver.create()
    engine.assign_user(intervention_id, manager, provider.user_id, AssignmentRole.PRESTATAIRE)
    now = datetime.now(timezone.utc)
    engine.quote_repo.create_quote(Quote(
        quote_id="QTE-seeded",
        intervention_id=intervention_id,
        provider_id=provider.user_id,
        created_by=manager.user_id,
        created_at=now,
        updated_at=now
    ))
    engine.slot_repo.create_slot(TimeSlot(
        slot_id="SLOT-seeded",
        intervention_id=intervention_id,
        slot_date=FUTURE_DATE,
        start_time="09:00",
        end_time="11:00",
        proposed_by=manager.user_id,
        proposer_role=manager.role,
        created_at=now,
        updated_at=now
    ))
    return {"intervention": intervention_id, "quote": "QTE-seeded", "slot": "SLOT-seeded"}


def snapshot(db):
    """Every stored document, so that any write shows up"""
    return {name: list(db[name].find({}, {"_id": 0})) for name in sorted(db.list_collection_names())}


@pytest.mark.parametrize("status, role, action", REFUSED)
def test_refused_action_changes_nothing(db, engine, seeded, status, role, action):
    get_collection("interventions").update_one(
        {"intervention_id": seeded["intervention"]}, {"$set": {"status": status.value}}
    )
    before = engine.intervention_repo.get_intervention(seeded["intervention"])
    stored = snapshot(db)

    with pytest.raises(AuthorizationError):
        CALLS[action](engine, seeded, make_actor(ACTOR_FOR_ROLE[role]))

    after = engine.intervention_repo.get_intervention(seeded["intervention"])
    assert after.status == status
    assert after.metadata == before.metadata
    assert after.updated_at == before.updated_at
    assert after.version == before.version
    assert snapshot(db) == stored
