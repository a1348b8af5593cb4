"""
Identity and session store: validation, sign-in, sign-out and stale results.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from portal_client.access_gate import DASHBOARD_ROUTES, GateState, evaluate
from portal_client.errors import ApiError, AuthError, InvalidCredentials, NetworkUnavailable, ValidationError
from portal_client.models import AppRole, Profile, Registration, Session, User
from portal_client.session_store import SessionContext, validate_sign_up


pytestmark = pytest.mark.anyio("asyncio")


def _session(user_id="u1", token="tok") -> Session:
    return Session(
        access_token=token,
        refresh_token=f"refresh-{token}",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        user=User(id=user_id, email=f"{user_id}@example.com"),
    )


class AuthApi:
    """In-memory stand-in for PortalApi."""

    def __init__(self):
        self.calls = []
        self.sign_in_result = _session()
        self.sign_up_error = None
        self.refresh_error = None
        self.sign_out_error = None
        self.role = AppRole.TEACHER
        self.registration = Registration(id="r1", status="approved", role=AppRole.TEACHER)
        self.gate = None

    async def sign_up(self, email, password, metadata):
        self.calls.append(("sign_up", email))
        if self.sign_up_error:
            raise self.sign_up_error
        return User(id="new", email=email)

    async def sign_in(self, email, password):
        self.calls.append(("sign_in", email))
        if isinstance(self.sign_in_result, Exception):
            raise self.sign_in_result
        return self.sign_in_result

    async def refresh(self, refresh_token):
        self.calls.append(("refresh", refresh_token))
        if self.refresh_error:
            raise self.refresh_error
        return _session(token="rotated")

    async def sign_out(self, refresh_token):
        self.calls.append(("sign_out", refresh_token))
        if self.sign_out_error:
            raise self.sign_out_error

    async def fetch_profile(self, token):
        if self.gate is not None:
            await self.gate.wait()
        return Profile(id="p1", user_id="u1", first_name="Lerato", last_name="Khumalo", email="u1@example.com")

    async def fetch_role(self, token):
        return self.role

    async def fetch_registration(self, token):
        return self.registration


def test_validate_sign_up_rules():
    metadata = {"first_name": "A", "last_name": "B", "role": "learner"}
    with pytest.raises(ValidationError) as excinfo:
        validate_sign_up("not-an-email", "Password123", metadata)
    assert excinfo.value.field == "email"

    with pytest.raises(ValidationError) as excinfo:
        validate_sign_up("a@example.com", "short", metadata)
    assert excinfo.value.field == "password"

    with pytest.raises(ValidationError) as excinfo:
        validate_sign_up("a@example.com", "Password123", {"first_name": "A", "last_name": "B", "role": "janitor"})
    assert excinfo.value.field == "role"

    with pytest.raises(ValidationError) as excinfo:
        validate_sign_up("a@example.com", "Password123", {"last_name": "B", "role": "learner"})
    assert excinfo.value.field == "first_name"

    assert validate_sign_up("a@example.com", "Password123", metadata).role == AppRole.LEARNER


@pytest.mark.anyio
async def test_sign_up_validates_before_network():
    api = AuthApi()
    context = SessionContext(api)
    with pytest.raises(ValidationError):
        await context.sign_up("a@example.com", "short", {"first_name": "A", "last_name": "B", "role": "learner"})
    assert api.calls == []


@pytest.mark.anyio
async def test_sign_up_maps_backend_rejection_to_auth_error():
    api = AuthApi()
    api.sign_up_error = ApiError(409, "User already registered")
    context = SessionContext(api)
    with pytest.raises(AuthError) as excinfo:
        await context.sign_up("A@Example.com", "Password123", {"first_name": "A", "last_name": "B", "role": "teacher"})
    assert excinfo.value.reason == "User already registered"
    assert api.calls == [("sign_up", "a@example.com")]
    assert context.user is None


@pytest.mark.anyio
async def test_sign_in_populates_session_and_snapshot():
    api = AuthApi()
    context = SessionContext(api)
    states = []
    context.subscribe(states.append)

    state = await context.sign_in("u1@example.com", "Password123")
    assert context.user.id == "u1"
    assert context.data_loaded is True
    assert context.role == AppRole.TEACHER
    assert context.is_approved is True
    assert evaluate(state, DASHBOARD_ROUTES["/dashboard/teacher"]).redirect_to is None
    # One transition for the new session, one for the resolved data.
    assert [s.snapshot.data_loaded for s in states] == [False, True]


@pytest.mark.anyio
async def test_sign_in_errors_propagate():
    api = AuthApi()
    api.sign_in_result = InvalidCredentials()
    context = SessionContext(api)
    with pytest.raises(InvalidCredentials):
        await context.sign_in("u1@example.com", "bad")

    api.sign_in_result = NetworkUnavailable()
    with pytest.raises(NetworkUnavailable):
        await context.sign_in("u1@example.com", "Password123")
    assert context.session is None


@pytest.mark.anyio
async def test_sign_out_resets_everything_at_once():
    api = AuthApi()
    context = SessionContext(api)
    await context.sign_in("u1@example.com", "Password123")

    states = []
    context.subscribe(states.append)
    await context.sign_out()

    assert len(states) == 1
    cleared = states[0]
    assert cleared.session is None
    assert cleared.snapshot.profile is None
    assert cleared.snapshot.role is None
    assert cleared.snapshot.registration is None
    assert cleared.snapshot.data_loaded is False
    assert evaluate(context.state, DASHBOARD_ROUTES["/dashboard/teacher"]).state == GateState.UNAUTHENTICATED
    assert ("sign_out", "refresh-tok") in api.calls


@pytest.mark.anyio
async def test_sign_out_revocation_failure_is_logged(caplog):
    api = AuthApi()
    api.sign_out_error = NetworkUnavailable()
    context = SessionContext(api)
    await context.sign_in("u1@example.com", "Password123")
    await context.sign_out()
    assert context.session is None
    assert "Sign-out revocation failed" in caplog.text


@pytest.mark.anyio
async def test_resolver_result_after_sign_out_is_dropped():
    api = AuthApi()
    api.gate = asyncio.Event()
    context = SessionContext(api)

    sign_in = asyncio.create_task(context.sign_in("u1@example.com", "Password123"))
    await asyncio.sleep(0)
    assert context.session is not None
    assert context.data_loaded is False

    await context.sign_out()
    api.gate.set()
    await sign_in

    assert context.session is None
    assert context.profile is None
    assert context.data_loaded is False


@pytest.mark.anyio
async def test_resolver_result_for_previous_user_is_dropped():
    api = AuthApi()
    api.gate = asyncio.Event()
    context = SessionContext(api)

    first = asyncio.create_task(context.sign_in("u1@example.com", "Password123"))
    await asyncio.sleep(0)
    api.sign_in_result = _session(user_id="u2", token="second")
    second = asyncio.create_task(context.sign_in("u2@example.com", "Password123"))
    await asyncio.sleep(0)

    api.gate.set()
    await asyncio.gather(first, second)
    assert context.user.id == "u2"
    assert context.state.snapshot.user_id == "u2"
    assert context.data_loaded is True


@pytest.mark.anyio
async def test_refresh_rotates_and_reloads():
    api = AuthApi()
    context = SessionContext(api)
    await context.sign_in("u1@example.com", "Password123")
    api.role = AppRole.HOD

    await context.refresh()
    assert context.session.access_token == "rotated"
    assert ("refresh", "refresh-tok") in api.calls
    assert context.role == AppRole.HOD


@pytest.mark.anyio
async def test_rejected_refresh_signs_out():
    api = AuthApi()
    api.refresh_error = InvalidCredentials("Invalid refresh token")
    context = SessionContext(api)
    await context.sign_in("u1@example.com", "Password123")

    with pytest.raises(InvalidCredentials):
        await context.refresh()
    assert context.session is None
    assert context.data_loaded is False


@pytest.mark.anyio
async def test_refresh_without_session():
    context = SessionContext(AuthApi())
    with pytest.raises(AuthError):
        await context.refresh()


@pytest.mark.anyio
async def test_restore_and_unsubscribe():
    api = AuthApi()
    context = SessionContext(api)
    states = []
    unsubscribe = context.subscribe(states.append)
    await context.restore(_session())
    assert context.is_approved is True
    unsubscribe()
    await context.sign_out()
    assert len(states) == 2
