"""Routing decisions for dashboard pages.

:func:`evaluate` is a pure function of the session state and the requested
route, so it can be called on every render or state change.
"""

import enum
from dataclasses import dataclass

from .models import AppRole
from .session_store import SessionState


LOGIN_PATH = "/login"
PENDING_PATH = "/dashboard/pending"

_DASHBOARD_PATHS = {
    AppRole.LEARNER: "/dashboard/learner",
    AppRole.TEACHER: "/dashboard/teacher",
    AppRole.GRADE_HEAD: "/dashboard/grade-head",
    AppRole.HOD: "/dashboard/hod",
    AppRole.LLC: "/dashboard/llc",
    AppRole.PRINCIPAL: "/dashboard/principal",
    AppRole.ADMIN: "/dashboard/admin",
    AppRole.FINANCE: "/dashboard/finance",
    AppRole.LIBRARIAN: "/dashboard/librarian",
}


class GateState(str, enum.Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"


@dataclass(frozen=True)
class Route:
    path: str
    allowed_roles: frozenset[AppRole] | None = None
    requires_approval: bool = True


@dataclass(frozen=True)
class GateDecision:
    state: GateState
    role: AppRole | None = None
    redirect_to: str | None = None


def dashboard_path(role: AppRole | str | None) -> str:
    if role is None:
        return PENDING_PATH
    try:
        return _DASHBOARD_PATHS[AppRole(role)]
    except ValueError:
        # Unknown role names.
        return PENDING_PATH


DASHBOARD_ROUTES: dict[str, Route] = {
    path: Route(path=path, allowed_roles=frozenset({role})) for role, path in _DASHBOARD_PATHS.items()
}
DASHBOARD_ROUTES[PENDING_PATH] = Route(path=PENDING_PATH, requires_approval=False)


def evaluate(state: SessionState, route: Route) -> GateDecision:
    if state.session is None:
        return GateDecision(GateState.UNAUTHENTICATED, redirect_to=LOGIN_PATH)

    snapshot = state.snapshot
    if not snapshot.data_loaded:
        return GateDecision(GateState.LOADING)

    role = snapshot.role
    gate_state = GateState.APPROVED if snapshot.is_approved else GateState.PENDING_APPROVAL

    if route.path == PENDING_PATH and snapshot.is_approved:
        return GateDecision(gate_state, role, dashboard_path(role))

    if route.requires_approval and not snapshot.is_approved:
        redirect = None if route.path == PENDING_PATH else PENDING_PATH
        return GateDecision(GateState.PENDING_APPROVAL, role, redirect)

    if route.allowed_roles is not None:
        if role is None:
            return GateDecision(GateState.PENDING_APPROVAL, None, PENDING_PATH)
        if role not in route.allowed_roles:
            return GateDecision(gate_state, role, dashboard_path(role))

    return GateDecision(gate_state, role)


def landing_path(state: SessionState) -> str | None:
    """Where to send a user after sign-in; None while still loading."""
    if state.session is None:
        return LOGIN_PATH
    if not state.snapshot.data_loaded:
        return None
    if state.snapshot.is_approved:
        return dashboard_path(state.snapshot.role)
    return PENDING_PATH
