"""
Shared fixtures: an in-memory Mongo per test, a seeded team directory, actors
for every role and a driver that walks interventions through the lifecycle.
"""
import os
import tempfile
from datetime import date

# Configuration is read once at import time
os.environ["LOGS_PATH"] = tempfile.mkdtemp(prefix="intervention-logs-")
os.environ["MONGO_DB"] = "interventions_test"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret-long-enough-for-hs256-signing"
os.environ["JWT_AUDIENCE"] = ""
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["EMAIL_API_URL"] = ""
os.environ["PUSH_GATEWAY_URL"] = ""
os.environ["PROPERTY_TIMEZONE"] = "Europe/Paris"
os.environ["MAX_CONTEST_COUNT"] = "3"

import mongomock
import pytest

from intervention_workflow.domain.enums import AssignmentRole, Role
from intervention_workflow.domain.models import ActorContext, TeamMember, User
from intervention_workflow.engine.engine import InterventionEngine
from intervention_workflow.repositories import mongo_client
from intervention_workflow.repositories.user_repo import UserRepository


TEAM_ID = "team-lyon"
OTHER_TEAM_ID = "team-paris"
FUTURE_DATE = date(2030, 1, 15)

# (user_id, name, role, team_id)
DIRECTORY = [
    ("mgr-1", "Marie Lambert", Role.GESTIONNAIRE, TEAM_ID),
    ("mgr-2", "Paul Girard", Role.GESTIONNAIRE, TEAM_ID),
    ("adm-1", "Claire Admin", Role.ADMIN, TEAM_ID),
    ("ten-1", "Sophie Martin", Role.LOCATAIRE, TEAM_ID),
    ("ten-2", "Luc Bernard", Role.LOCATAIRE, TEAM_ID),
    ("prov-1", "Plomberie Durand", Role.PRESTATAIRE, TEAM_ID),
    ("prov-2", "Elec Services", Role.PRESTATAIRE, TEAM_ID),
    ("mgr-9", "Jean Autre", Role.GESTIONNAIRE, OTHER_TEAM_ID),
    ("prov-9", "Serrurerie Nord", Role.PRESTATAIRE, OTHER_TEAM_ID),
]


def make_actor(user_id: str) -> ActorContext:
    for uid, name, role, team_id in DIRECTORY:
        if uid == user_id:
            return ActorContext(user_id=uid, role=role, team_id=team_id, name=name)
    raise KeyError(user_id)


@pytest.fixture(autouse=True)
def db(monkeypatch):
    """Fresh in-memory database wired into the repositories"""
    client = mongomock.MongoClient(tz_aware=True)
    database = client["interventions_test"]
    monkeypatch.setattr(mongo_client, "_client", client)
    monkeypatch.setattr(mongo_client, "_database", database)
    mongo_client.create_indexes()
    yield database


@pytest.fixture(autouse=True)
def directory(db):
    """Seed users and team membership"""
    repo = UserRepository()
    for user_id, name, role, team_id in DIRECTORY:
        repo.upsert_user(User(
            user_id=user_id,
            name=name,
            email=f"{user_id}@residence-les-tilleuls.fr",
            role=role,
            team_id=team_id
        ))
        repo.add_team_member(TeamMember(team_id=team_id, user_id=user_id, role=role))
    return repo


@pytest.fixture
def manager():
    return make_actor("mgr-1")


@pytest.fixture
def other_manager():
    return make_actor("mgr-2")


@pytest.fixture
def admin():
    return make_actor("adm-1")


@pytest.fixture
def tenant():
    return make_actor("ten-1")


@pytest.fixture
def provider():
    return make_actor("prov-1")


@pytest.fixture
def engine(db):
    return InterventionEngine()


class WorkflowDriver:
    """Moves a fresh intervention to a given status through the engine API"""

    def __init__(self, engine: InterventionEngine, manager: ActorContext, tenant: ActorContext, provider: ActorContext):
        self.engine = engine
        self.manager = manager
        self.tenant = tenant
        self.provider = provider

    def create(self, by: ActorContext = None, **fields) -> str:
        actor = by or self.tenant
        data = {"title": "Fuite sous l'évier", "description": "L'eau coule en continu"}
        data.update(fields)
        if actor.is_manager and "tenant_id" not in data:
            data["tenant_id"] = self.tenant.user_id
        return self.engine.create_intervention(actor, **data).intervention.intervention_id

    def approved(self, **fields) -> str:
        intervention_id = self.create(**fields)
        self.engine.approve(intervention_id, self.manager)
        self.engine.assign_user(
            intervention_id, self.manager, self.provider.user_id, AssignmentRole.PRESTATAIRE
        )
        return intervention_id

    def planning(self, **fields) -> str:
        intervention_id = self.approved(**fields)
        self.engine.start_planning(intervention_id, self.manager)
        return intervention_id

    def scheduled(self, slot_date: date = FUTURE_DATE, start_time: str = "09:00", end_time: str = "11:00", **fields) -> str:
        intervention_id = self.approved(**fields)
        self.engine.confirm_schedule(
            intervention_id,
            self.manager,
            slot_date=slot_date,
            start_time=start_time,
            end_time=end_time
        )
        return intervention_id

    def completed(self, **fields) -> str:
        intervention_id = self.scheduled(**fields)
        self.engine.start_work(intervention_id, self.provider)
        self.engine.complete_work(intervention_id, self.provider, report="Joint remplacé")
        return intervention_id

    def status(self, intervention_id: str):
        return self.engine.intervention_repo.get_intervention_or_raise(intervention_id).status


@pytest.fixture
def driver(engine, manager, tenant, provider):
    return WorkflowDriver(engine, manager, tenant, provider)
