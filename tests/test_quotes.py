"""Tests for the quote sub-protocol"""
import pytest

from intervention_workflow.domain.enums import AssignmentRole, InterventionStatus, QuoteStatus
from intervention_workflow.domain.errors import (
    AlreadyExistsError, AuthorizationError, ConcurrencyError, ConflictError, InvalidStateError,
    PermissionDeniedError, ValidationError
)
from .conftest import FUTURE_DATE, make_actor


@pytest.fixture
def quoting(engine, driver, manager):
    """Intervention in demande_de_devis with one quote per provider"""
    intervention_id = driver.approved()
    first = engine.request_quote(intervention_id, manager, "prov-1").quote
    second = engine.request_quote(intervention_id, manager, "prov-2").quote
    return intervention_id, first, second


def test_second_request_refreshes_quote_phase(engine, driver, manager):
    intervention_id = driver.approved()
    engine.request_quote(intervention_id, manager, "prov-1")

    result = engine.request_quote(intervention_id, manager, "prov-2", notes="Deuxième avis")

    assert result.intervention.status == InterventionStatus.DEMANDE_DE_DEVIS
    assert result.intervention.quote_notes == "Deuxième avis"
    assert engine.intervention_repo.is_assigned(intervention_id, "prov-2", AssignmentRole.PRESTATAIRE)


def test_request_needs_a_team_provider(engine, driver, manager):
    intervention_id = driver.approved()
    with pytest.raises(ValidationError):
        engine.request_quote(intervention_id, manager, "ten-2")
    with pytest.raises(ValidationError):
        engine.request_quote(intervention_id, manager, "prov-9")


def test_one_open_quote_per_provider(engine, quoting, manager):
    intervention_id, _, _ = quoting
    with pytest.raises(AlreadyExistsError):
        engine.request_quote(intervention_id, manager, "prov-1")


def test_provider_submits_only_own_quote(engine, quoting):
    _, first, _ = quoting
    with pytest.raises(PermissionDeniedError):
        engine.submit_quote(first.quote_id, make_actor("prov-2"), 300)


@pytest.mark.parametrize("amount", [-1, float("nan"), float("inf")])
def test_amount_must_be_finite_and_positive(engine, quoting, provider, amount):
    _, first, _ = quoting
    with pytest.raises(ValidationError):
        engine.submit_quote(first.quote_id, provider, amount)
    assert engine.quote_repo.get_quote(first.quote_id).amount is None


def test_tenant_cannot_submit(engine, quoting, tenant):
    _, first, _ = quoting
    with pytest.raises(AuthorizationError):
        engine.submit_quote(first.quote_id, tenant, 100)


def test_accept_requires_submission(engine, quoting, manager):
    _, first, _ = quoting
    with pytest.raises(ValidationError):
        engine.accept_quote(first.quote_id, manager)


def test_only_one_quote_accepted(engine, quoting, manager, provider):
    intervention_id, first, second = quoting
    engine.submit_quote(first.quote_id, provider, 320)
    engine.submit_quote(second.quote_id, make_actor("prov-2"), 280)

    accepted = engine.accept_quote(first.quote_id, manager)
    assert accepted.quote.status == QuoteStatus.ACCEPTED
    assert accepted.intervention.selected_quote_id == first.quote_id

    with pytest.raises(ConflictError):
        engine.accept_quote(second.quote_id, manager)
    assert engine.quote_repo.get_quote(second.quote_id).status == QuoteStatus.PENDING


def test_reject_then_reject_again(engine, quoting, manager):
    _, first, _ = quoting

    result = engine.reject_quote(first.quote_id, manager, reason="Trop cher")
    assert result.quote.status == QuoteStatus.REJECTED
    assert result.quote.cancel_reason == "Trop cher"

    with pytest.raises(InvalidStateError):
        engine.reject_quote(first.quote_id, manager)


def test_cancel_quote(engine, quoting, manager):
    _, _, second = quoting
    result = engine.cancel_quote(second.quote_id, manager, reason="Prestataire indisponible")
    assert result.quote.status == QuoteStatus.CANCELLED
    assert result.intervention.status == InterventionStatus.DEMANDE_DE_DEVIS


def test_confirmation_supersedes_pending_quotes(engine, quoting, manager, provider):
    intervention_id, first, second = quoting
    engine.submit_quote(first.quote_id, provider, 320)

    engine.confirm_schedule(
        intervention_id,
        manager,
        slot_date=FUTURE_DATE,
        start_time="10:00",
        end_time="12:00",
        selected_quote_id=first.quote_id
    )

    assert engine.quote_repo.get_quote(first.quote_id).status == QuoteStatus.ACCEPTED
    superseded = engine.quote_repo.get_quote(second.quote_id)
    assert superseded.status == QuoteStatus.CANCELLED
    assert superseded.cancel_reason == "superseded"


def test_provider_sees_only_own_quotes(engine, quoting, provider, manager):
    intervention_id, first, _ = quoting
    assert [q.quote_id for q in engine.get_quotes(intervention_id, provider)] == [first.quote_id]
    assert len(engine.get_quotes(intervention_id, manager)) == 2


def test_failed_write_leaves_no_quote_behind(engine, driver, manager, monkeypatch):
    intervention_id = driver.approved()

    def lost_race(*args, **kwargs):
        raise ConcurrencyError("modified")

    monkeypatch.setattr(engine.intervention_repo, "apply_transition", lost_race)

    with pytest.raises(ConcurrencyError):
        engine.request_quote(intervention_id, manager, "prov-2")

    assert engine.quote_repo.get_quotes_for_intervention(intervention_id) == []
    assert not engine.intervention_repo.is_assigned(intervention_id, "prov-2", AssignmentRole.PRESTATAIRE)


def test_failed_write_restores_quote(engine, quoting, provider, monkeypatch):
    _, first, _ = quoting

    def lost_race(*args, **kwargs):
        raise ConcurrencyError("modified")

    monkeypatch.setattr(engine.intervention_repo, "apply_transition", lost_race)

    with pytest.raises(ConcurrencyError):
        engine.submit_quote(first.quote_id, provider, 500)

    restored = engine.quote_repo.get_quote(first.quote_id)
    assert restored.status == QuoteStatus.PENDING
    assert restored.amount is None
