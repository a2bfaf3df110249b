"""Transition Table - Which role may do what in which status

Two static tables drive every authorization decision:

- ``TRANSITIONS``: (status, role) -> {action: allowed target statuses}. These
  actions move the intervention to another status (or back, for a contest).
- ``AUXILIARY_ACTIONS``: sub-protocol actions (quotes, slots, assignments) that
  leave the status unchanged, with the statuses and roles that may use them.

Admin mirrors gestionnaire everywhere.
"""
from typing import Dict, FrozenSet, List, Tuple

from ..domain.enums import InterventionStatus, Role, Action
from ..domain.errors import AuthorizationError, TerminalStateError

S = InterventionStatus

TERMINAL_STATUSES: FrozenSet[InterventionStatus] = frozenset({
    S.REJETEE,
    S.ANNULEE,
    S.CLOTUREE_PAR_GESTIONNAIRE,
})

MANAGER_ROLES: FrozenSet[Role] = frozenset({Role.GESTIONNAIRE, Role.ADMIN})

# Manager-side transitions, per status
_MANAGER_TRANSITIONS: Dict[InterventionStatus, Dict[Action, Tuple[InterventionStatus, ...]]] = {
    S.DEMANDE: {
        Action.APPROVE: (S.APPROUVEE,),
        Action.REJECT: (S.REJETEE,),
    },
    S.APPROUVEE: {
        Action.REQUEST_QUOTE: (S.DEMANDE_DE_DEVIS,),
        Action.START_PLANNING: (S.PLANIFICATION,),
        Action.CONFIRM_SCHEDULE: (S.PLANIFIEE,),
        Action.CANCEL: (S.ANNULEE,),
    },
    S.DEMANDE_DE_DEVIS: {
        Action.REQUEST_QUOTE: (S.DEMANDE_DE_DEVIS,),
        Action.START_PLANNING: (S.PLANIFICATION,),
        Action.CONFIRM_SCHEDULE: (S.PLANIFIEE,),
        Action.CANCEL: (S.ANNULEE,),
    },
    S.PLANIFICATION: {
        Action.CONFIRM_SCHEDULE: (S.PLANIFIEE,),
        Action.CANCEL: (S.ANNULEE,),
    },
    S.PLANIFIEE: {
        Action.CANCEL: (S.ANNULEE,),
    },
    S.EN_COURS: {
        Action.CANCEL: (S.ANNULEE,),
    },
    S.CLOTUREE_PAR_PRESTATAIRE: {
        Action.CANCEL: (S.ANNULEE,),
    },
    S.CLOTUREE_PAR_LOCATAIRE: {
        Action.FINALIZE: (S.CLOTUREE_PAR_GESTIONNAIRE,),
    },
}

_PROVIDER_TRANSITIONS: Dict[InterventionStatus, Dict[Action, Tuple[InterventionStatus, ...]]] = {
    S.PLANIFIEE: {
        Action.START_WORK: (S.EN_COURS,),
        Action.COMPLETE_WORK: (S.CLOTUREE_PAR_PRESTATAIRE,),
    },
    S.EN_COURS: {
        Action.COMPLETE_WORK: (S.CLOTUREE_PAR_PRESTATAIRE,),
    },
}

_TENANT_TRANSITIONS: Dict[InterventionStatus, Dict[Action, Tuple[InterventionStatus, ...]]] = {
    S.CLOTUREE_PAR_PRESTATAIRE: {
        # Approve closes, contest sends the work back
        Action.VALIDATE_WORK: (S.CLOTUREE_PAR_LOCATAIRE, S.PLANIFIEE),
    },
}


def _build_transitions() -> Dict[InterventionStatus, Dict[Role, Dict[Action, Tuple[InterventionStatus, ...]]]]:
    table: Dict[InterventionStatus, Dict[Role, Dict[Action, Tuple[InterventionStatus, ...]]]] = {
        status: {} for status in InterventionStatus
    }
    for status, actions in _MANAGER_TRANSITIONS.items():
        for role in MANAGER_ROLES:
            table[status][role] = dict(actions)
    for status, actions in _PROVIDER_TRANSITIONS.items():
        table[status][Role.PRESTATAIRE] = dict(actions)
    for status, actions in _TENANT_TRANSITIONS.items():
        table[status][Role.LOCATAIRE] = dict(actions)
    return table


TRANSITIONS = _build_transitions()

_NON_TERMINAL = frozenset(s for s in InterventionStatus if s not in TERMINAL_STATUSES)
_QUOTE_PHASE = frozenset({S.APPROUVEE, S.DEMANDE_DE_DEVIS, S.PLANIFICATION})
_QUOTE_DECISION_PHASE = frozenset({S.DEMANDE_DE_DEVIS, S.PLANIFICATION})

AUXILIARY_ACTIONS: Dict[Action, Tuple[FrozenSet[InterventionStatus], FrozenSet[Role]]] = {
    Action.CANCEL_QUOTE: (_QUOTE_PHASE, MANAGER_ROLES),
    Action.ACCEPT_QUOTE: (_QUOTE_DECISION_PHASE, MANAGER_ROLES),
    Action.REJECT_QUOTE: (_QUOTE_DECISION_PHASE, MANAGER_ROLES),
    Action.SUBMIT_QUOTE: (_QUOTE_DECISION_PHASE, frozenset({Role.PRESTATAIRE})),
    Action.PROPOSE_SLOT: (
        frozenset({S.PLANIFICATION}),
        MANAGER_ROLES | {Role.LOCATAIRE, Role.PRESTATAIRE},
    ),
    Action.RESPOND_SLOT: (frozenset({S.PLANIFICATION}), frozenset({Role.LOCATAIRE, Role.PRESTATAIRE})),
    Action.SUBMIT_AVAILABILITY: (
        frozenset({S.PLANIFICATION}),
        MANAGER_ROLES | {Role.LOCATAIRE, Role.PRESTATAIRE},
    ),
    Action.ASSIGN: (_NON_TERMINAL, MANAGER_ROLES),
    Action.UNASSIGN: (_NON_TERMINAL, MANAGER_ROLES),
}


def is_terminal(status: InterventionStatus) -> bool:
    """Terminal statuses accept no action at all"""
    return status in TERMINAL_STATUSES


def allowed_targets(
    status: InterventionStatus,
    role: Role,
    action: Action
) -> Tuple[InterventionStatus, ...]:
    """Target statuses for a status-changing action, empty if not allowed"""
    return TRANSITIONS.get(status, {}).get(role, {}).get(action, ())


def is_auxiliary_allowed(status: InterventionStatus, role: Role, action: Action) -> bool:
    """Check a status-preserving sub-protocol action"""
    rule = AUXILIARY_ACTIONS.get(action)
    if rule is None:
        return False
    statuses, roles = rule
    return status in statuses and role in roles


def is_allowed(status: InterventionStatus, role: Role, action: Action) -> bool:
    """Any kind of action permitted for (status, role)"""
    return bool(allowed_targets(status, role, action)) or is_auxiliary_allowed(status, role, action)


def get_available_actions(status: InterventionStatus, role: Role) -> List[Action]:
    """
    Legal actions for a role in a status, for the UI to render.

    Returns:
        Actions sorted by name; empty for terminal statuses
    """
    if is_terminal(status):
        return []
    actions = set(TRANSITIONS.get(status, {}).get(role, {}).keys())
    for action, (statuses, roles) in AUXILIARY_ACTIONS.items():
        if status in statuses and role in roles:
            actions.add(action)
    return sorted(actions, key=lambda a: a.value)


def check_action(status: InterventionStatus, role: Role, action: Action) -> None:
    """
    Raise unless the action is legal for (status, role).

    Raises:
        TerminalStateError: the intervention is terminal
        AuthorizationError: the action is not in the table for this role and status
    """
    if is_terminal(status):
        raise TerminalStateError(
            f"Intervention is {status.value}; no further action is possible",
            details={"status": status.value, "action": action.value}
        )
    if not is_allowed(status, role, action):
        raise AuthorizationError(
            f"Action '{action.value}' is not allowed for role '{role.value}' in status '{status.value}'",
            details={"status": status.value, "role": role.value, "action": action.value}
        )
