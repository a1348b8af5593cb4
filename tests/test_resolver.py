"""
Profile/registration resolver: concurrent reads and per-field failures.
"""

from __future__ import annotations

import itertools

import pytest

from portal_client.errors import ApiError, NetworkUnavailable
from portal_client.models import AppRole, Profile, Registration
from portal_client.resolver import EMPTY_SNAPSHOT, UserSnapshot, fetch_user_data, is_approved


pytestmark = pytest.mark.anyio("asyncio")

PROFILE = Profile(id="p1", user_id="u1", first_name="Ayanda", last_name="Zulu", email="a@example.com")
REGISTRATION = Registration(id="r1", status="approved", role=AppRole.LEARNER)


class StubApi:
    def __init__(self, *, profile=PROFILE, role=AppRole.LEARNER, registration=REGISTRATION):
        self.results = {"profile": profile, "role": role, "registration": registration}
        self.tokens = []

    async def _answer(self, name, token):
        self.tokens.append(token)
        result = self.results[name]
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_profile(self, token):
        return await self._answer("profile", token)

    async def fetch_role(self, token):
        return await self._answer("role", token)

    async def fetch_registration(self, token):
        return await self._answer("registration", token)


def test_is_approved_over_all_combinations():
    statuses = [None, "pending", "approved", "rejected"]
    for status, role in itertools.product(statuses, [None, *AppRole]):
        registration = None if status is None else Registration(id="r", status=status, role=AppRole.TEACHER)
        snapshot = UserSnapshot(user_id="u", role=role, registration=registration, data_loaded=True)
        expected = status == "approved" and role is not None
        assert is_approved(registration, role) is expected
        assert snapshot.is_approved is expected


def test_empty_snapshot_is_not_loaded():
    assert EMPTY_SNAPSHOT.data_loaded is False
    assert EMPTY_SNAPSHOT.is_approved is False
    assert EMPTY_SNAPSHOT.requested_role is None


def test_requested_role_is_separate_from_assigned_role():
    snapshot = UserSnapshot(
        user_id="u",
        role=AppRole.HOD,
        registration=Registration(id="r", status="approved", role=AppRole.LEARNER),
        data_loaded=True,
    )
    assert snapshot.role == AppRole.HOD
    assert snapshot.requested_role == AppRole.LEARNER


@pytest.mark.anyio
async def test_fetch_user_data_loads_all_fields():
    api = StubApi()
    snapshot = await fetch_user_data(api, "u1", "token-1")
    assert snapshot.user_id == "u1"
    assert snapshot.profile == PROFILE
    assert snapshot.role == AppRole.LEARNER
    assert snapshot.registration == REGISTRATION
    assert snapshot.data_loaded is True
    assert snapshot.is_approved is True
    assert api.tokens == ["token-1"] * 3


@pytest.mark.anyio
async def test_failed_read_leaves_field_empty(caplog):
    api = StubApi(role=ApiError(500, "boom"))
    snapshot = await fetch_user_data(api, "u1", "token")
    assert snapshot.role is None
    assert snapshot.profile == PROFILE
    assert snapshot.data_loaded is True
    assert snapshot.is_approved is False
    assert "Could not load role" in caplog.text


@pytest.mark.anyio
async def test_all_reads_failing_still_completes():
    error = NetworkUnavailable()
    api = StubApi(profile=error, role=error, registration=error)
    snapshot = await fetch_user_data(api, "u1", "token")
    assert (snapshot.profile, snapshot.role, snapshot.registration) == (None, None, None)
    assert snapshot.data_loaded is True


@pytest.mark.anyio
async def test_absent_relations_are_none_not_errors():
    api = StubApi(profile=None, role=None, registration=None)
    snapshot = await fetch_user_data(api, "u1", "token")
    assert snapshot.data_loaded is True
    assert snapshot.is_approved is False
