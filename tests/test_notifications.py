"""Tests for audience groups, fan-out isolation and outbox delivery"""
import asyncio

import pytest

from intervention_workflow.domain.enums import (
    AssignmentRole, NotificationChannel, NotificationStatus, NotificationTemplateKey
)
from intervention_workflow.domain.errors import EmailSendError
from intervention_workflow.domain.models import NotificationOutbox
from intervention_workflow.engine.engine import InterventionEngine
from intervention_workflow.repositories.notification_repo import NotificationRepository
from intervention_workflow.repositories.outbox_repo import OutboxRepository
from intervention_workflow.services.delivery_service import NotificationDelivery
from intervention_workflow.services.notification_dispatcher import OutboxDispatcher
from intervention_workflow.services.notification_service import NotificationFanout
from intervention_workflow.utils.idgen import generate_outbox_id
from intervention_workflow.utils.time import utc_now


class FlakyDelivery(NotificationDelivery):
    """In-app writes fail for selected users"""

    def __init__(self, failing_users):
        super().__init__()
        self.failing_users = set(failing_users)

    def create_in_app(self, user_id, **kwargs):
        if user_id in self.failing_users:
            raise RuntimeError("notification store unavailable")
        return super().create_in_app(user_id=user_id, **kwargs)


class RecordingDelivery(NotificationDelivery):
    """Both channels enabled; email fails for one address"""

    push_enabled = True
    email_enabled = True

    def __init__(self, failing_email=None):
        super().__init__()
        self.failing_email = failing_email
        self.pushed = []
        self.emailed = []

    async def send_push(self, user_ids, payload):
        self.pushed.extend(user_ids)

    async def send_email(self, to, template, data):
        if to == self.failing_email:
            raise EmailSendError("mailbox unavailable")
        self.emailed.append(to)


def rows_for_event(intervention_id, event_id):
    return [
        row for row in OutboxRepository().get_rows_for_intervention(intervention_id)
        if row.dedup_key == event_id
    ]


def test_tenant_request_reaches_team_managers(engine, tenant):
    result = engine.create_intervention(tenant, title="Porte d'entrée bloquée")

    assert result.notifications.in_app == 2
    assert result.notifications.push_queued == 0
    assert result.notifications.email_queued == 0
    recipients = {n.user_id for n in NotificationRepository().get_notifications_for_entity(
        result.intervention.intervention_id
    )}
    assert recipients == {"mgr-1", "mgr-2"}


def test_audience_groups(engine, driver, manager, other_manager):
    intervention_id = driver.approved(by=manager)
    engine.assign_user(intervention_id, manager, other_manager.user_id, AssignmentRole.GESTIONNAIRE)
    intervention = engine.intervention_repo.get_intervention(intervention_id)

    audience = engine.fanout.compute_audience(intervention)

    assert audience.managers == {"mgr-1", "mgr-2"}
    assert audience.assigned_managers == {"mgr-1", "mgr-2"}
    assert audience.participants == {"ten-1", "prov-1"}


def test_actor_is_not_notified(engine, driver, manager):
    intervention_id = driver.create(by=manager)
    engine.assign_user(intervention_id, manager, "prov-1", AssignmentRole.PRESTATAIRE)

    result = engine.approve(intervention_id, manager)

    # A: mgr-2 / B: nobody once the actor is removed / C: ten-1, prov-1
    assert result.notifications.in_app == 3
    assert result.notifications.push_queued == 2
    assert result.notifications.email_queued == 2
    rows = rows_for_event(intervention_id, result.event_id)
    assert {row.recipient_user_id for row in rows} == {"ten-1", "prov-1"}
    assert all(row.template_key == NotificationTemplateKey.INTERVENTION_APPROVED for row in rows)
    personal = {
        n.user_id: n.is_personal
        for n in NotificationRepository().get_notifications_for_entity(intervention_id)
        if n.dedup_key == result.event_id
    }
    assert personal == {"mgr-2": False, "ten-1": True, "prov-1": True}


def test_one_failing_recipient_does_not_block_others(driver, manager):
    engine = InterventionEngine(fanout=NotificationFanout(delivery=FlakyDelivery({"mgr-2"})))
    driver.engine = engine
    intervention_id = driver.create(by=manager)

    result = engine.approve(intervention_id, manager)

    assert result.intervention.status.value == "approuvee"
    assert result.notifications.failed == 1
    assert result.notifications.in_app == 1
    assert result.notifications.email_queued == 1


def test_outbox_rows_are_delivered_independently():
    outbox = OutboxRepository()
    for user_id, channel in (("ten-1", NotificationChannel.EMAIL), ("prov-1", NotificationChannel.EMAIL),
                             ("ten-1", NotificationChannel.PUSH)):
        outbox.enqueue(NotificationOutbox(
            outbox_id=generate_outbox_id(),
            intervention_id="INT-test",
            channel=channel,
            template_key=NotificationTemplateKey.INTERVENTION_SCHEDULED,
            recipient_user_id=user_id,
            recipient_email=f"{user_id}@residence-les-tilleuls.fr",
            payload={"title": "Intervention planifiée", "message": "Demain 9h"},
            dedup_key="EVT-test",
            created_at=utc_now()
        ))
    delivery = RecordingDelivery(failing_email="prov-1@residence-les-tilleuls.fr")

    counts = asyncio.run(OutboxDispatcher(outbox_repo=outbox, delivery=delivery).drain())

    assert counts["sent"] == 2
    assert counts["failed"] == 1
    assert delivery.emailed == ["ten-1@residence-les-tilleuls.fr"]
    assert delivery.pushed == ["ten-1"]

    rows = {(r.recipient_user_id, r.channel): r for r in outbox.get_rows_for_intervention("INT-test")}
    failed = rows[("prov-1", NotificationChannel.EMAIL)]
    assert failed.status == NotificationStatus.PENDING
    assert failed.retry_count == 1
    assert failed.next_retry_at is not None
    assert failed.locked_by is None
    assert rows[("ten-1", NotificationChannel.EMAIL)].status == NotificationStatus.SENT


def test_unconfigured_channels_are_skipped():
    outbox = OutboxRepository()
    outbox.enqueue(NotificationOutbox(
        outbox_id=generate_outbox_id(),
        intervention_id="INT-test",
        channel=NotificationChannel.PUSH,
        template_key=NotificationTemplateKey.WORK_STARTED,
        recipient_user_id="ten-1",
        dedup_key="EVT-skip",
        created_at=utc_now()
    ))

    counts = asyncio.run(OutboxDispatcher(outbox_repo=outbox).drain())

    assert counts["skipped"] == 1
    assert outbox.get_rows_for_intervention("INT-test")[0].status == NotificationStatus.SKIPPED


def test_duplicate_outbox_row_is_ignored():
    outbox = OutboxRepository()
    row = dict(
        intervention_id="INT-test",
        channel=NotificationChannel.EMAIL,
        template_key=NotificationTemplateKey.WORK_STARTED,
        recipient_user_id="ten-1",
        dedup_key="EVT-dup",
        created_at=utc_now()
    )
    assert outbox.enqueue(NotificationOutbox(outbox_id=generate_outbox_id(), **row)) is not None
    assert outbox.enqueue(NotificationOutbox(outbox_id=generate_outbox_id(), **row)) is None


@pytest.mark.parametrize("decision, template", [
    ("approved", NotificationTemplateKey.WORK_VALIDATED),
    ("contested", NotificationTemplateKey.WORK_CONTESTED),
])
def test_validation_templates(engine, driver, tenant, decision, template):
    intervention_id = driver.completed()

    result = engine.validate_work(intervention_id, tenant, decision, reason="Toujours une fuite")

    rows = rows_for_event(intervention_id, result.event_id)
    assert rows
    assert {row.template_key for row in rows} == {template}


def test_dedup_indexes_are_declared_once(db):
    NotificationRepository()
    OutboxRepository()

    notification_indexes = db["notifications"].index_information()
    outbox_indexes = db["notification_outbox"].index_information()

    def named(indexes, key):
        return [name for name, info in indexes.items() if [tuple(k) for k in info["key"]] == key]

    assert named(notification_indexes, [("user_id", 1), ("related_entity_id", 1), ("dedup_key", 1)]) == ["notification_dedup"]
    assert named(outbox_indexes, [("dedup_key", 1), ("channel", 1), ("recipient_user_id", 1)]) == ["outbox_dedup"]
    assert notification_indexes["notification_dedup"]["unique"] is True
