"""Tests for the static transition table"""
import pytest

from intervention_workflow.domain.enums import Action, InterventionStatus as S, Role
from intervention_workflow.domain.errors import AuthorizationError, ConflictError, TerminalStateError
from intervention_workflow.engine.transition_table import (
    TERMINAL_STATUSES, allowed_targets, check_action, get_available_actions, is_terminal
)


@pytest.mark.parametrize("status, role, action, target", [
    (S.DEMANDE, Role.GESTIONNAIRE, Action.APPROVE, S.APPROUVEE),
    (S.DEMANDE, Role.GESTIONNAIRE, Action.REJECT, S.REJETEE),
    (S.APPROUVEE, Role.GESTIONNAIRE, Action.REQUEST_QUOTE, S.DEMANDE_DE_DEVIS),
    (S.APPROUVEE, Role.GESTIONNAIRE, Action.START_PLANNING, S.PLANIFICATION),
    (S.APPROUVEE, Role.GESTIONNAIRE, Action.CONFIRM_SCHEDULE, S.PLANIFIEE),
    (S.DEMANDE_DE_DEVIS, Role.GESTIONNAIRE, Action.START_PLANNING, S.PLANIFICATION),
    (S.PLANIFICATION, Role.GESTIONNAIRE, Action.CONFIRM_SCHEDULE, S.PLANIFIEE),
    (S.PLANIFIEE, Role.PRESTATAIRE, Action.START_WORK, S.EN_COURS),
    (S.PLANIFIEE, Role.PRESTATAIRE, Action.COMPLETE_WORK, S.CLOTUREE_PAR_PRESTATAIRE),
    (S.EN_COURS, Role.PRESTATAIRE, Action.COMPLETE_WORK, S.CLOTUREE_PAR_PRESTATAIRE),
    (S.CLOTUREE_PAR_PRESTATAIRE, Role.LOCATAIRE, Action.VALIDATE_WORK, S.CLOTUREE_PAR_LOCATAIRE),
    (S.CLOTUREE_PAR_PRESTATAIRE, Role.LOCATAIRE, Action.VALIDATE_WORK, S.PLANIFIEE),
    (S.CLOTUREE_PAR_LOCATAIRE, Role.GESTIONNAIRE, Action.FINALIZE, S.CLOTUREE_PAR_GESTIONNAIRE),
    (S.EN_COURS, Role.GESTIONNAIRE, Action.CANCEL, S.ANNULEE),
])
def test_declared_transitions(status, role, action, target):
    assert target in allowed_targets(status, role, action)


@pytest.mark.parametrize("status", list(S))
def test_admin_mirrors_gestionnaire(status):
    assert get_available_actions(status, Role.ADMIN) == get_available_actions(status, Role.GESTIONNAIRE)


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_terminal_statuses_offer_nothing(status):
    assert is_terminal(status)
    for role in Role:
        assert get_available_actions(status, role) == []


def test_terminal_check_comes_first():
    with pytest.raises(TerminalStateError) as exc_info:
        check_action(S.ANNULEE, Role.GESTIONNAIRE, Action.CANCEL)
    # Callers may treat it as either a conflict or a refusal
    assert isinstance(exc_info.value, ConflictError)
    assert isinstance(exc_info.value, AuthorizationError)


def test_role_outside_table_is_refused():
    with pytest.raises(AuthorizationError):
        check_action(S.DEMANDE, Role.LOCATAIRE, Action.APPROVE)
    with pytest.raises(AuthorizationError):
        check_action(S.PLANIFIEE, Role.GESTIONNAIRE, Action.START_WORK)


def test_cancel_not_offered_before_approval_or_after_tenant_closure():
    assert Action.CANCEL not in get_available_actions(S.DEMANDE, Role.GESTIONNAIRE)
    assert Action.CANCEL not in get_available_actions(S.CLOTUREE_PAR_LOCATAIRE, Role.GESTIONNAIRE)


def test_sub_protocol_actions_by_phase():
    planning_tenant = get_available_actions(S.PLANIFICATION, Role.LOCATAIRE)
    assert Action.PROPOSE_SLOT in planning_tenant
    assert Action.RESPOND_SLOT in planning_tenant

    quote_provider = get_available_actions(S.DEMANDE_DE_DEVIS, Role.PRESTATAIRE)
    assert quote_provider == [Action.SUBMIT_QUOTE]

    assert Action.RESPOND_SLOT not in get_available_actions(S.PLANIFICATION, Role.GESTIONNAIRE)


def test_tenant_has_nothing_to_do_on_a_new_request():
    assert get_available_actions(S.DEMANDE, Role.LOCATAIRE) == []
