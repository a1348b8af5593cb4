"""
Client core against the real FastAPI app: sign-up, approval gate and feed.
"""

from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from backend.portal_module.models import AppRole, RegistrationStatus
from portal_client import (
    DASHBOARD_ROUTES,
    GateState,
    InvalidCredentials,
    NotificationFeed,
    PortalApi,
    SessionContext,
    evaluate,
    landing_path,
)
from portal_client.errors import ApiError, StorageError
from portal_client.models import SignUpMetadata


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
async def api(app):
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield PortalApi(client=http)


async def _approve(client, admin_headers, email: str, role: str | None = None) -> None:
    listed = await client.get("/api/v1/portal/admin/registrations", params={"status": "pending"}, headers=admin_headers)
    registration = next(r for r in listed.json() if r["email"] == email)
    body = {"role": role} if role else {}
    r = await client.post(
        f"/api/v1/portal/admin/registrations/{registration['id']}/approve", json=body, headers=admin_headers
    )
    assert r.status_code == 200


@pytest.mark.anyio
async def test_unapproved_learner_is_gated_then_approved_as_teacher(api, client, make_user, auth_headers):
    admin_headers = auth_headers(make_user("admin@example.com", role=AppRole.ADMIN))
    context = SessionContext(api)

    await context.sign_up(
        "zanele@example.com",
        "Password123",
        {"first_name": "Zanele", "last_name": "Ndlovu", "role": "learner"},
    )
    state = await context.sign_in("zanele@example.com", "Password123")
    assert context.registration.status == "pending"
    assert context.role is None

    decision = evaluate(state, DASHBOARD_ROUTES["/dashboard/learner"])
    assert decision.state == GateState.PENDING_APPROVAL
    assert decision.redirect_to == "/dashboard/pending"

    await _approve(client, admin_headers, "zanele@example.com", role="teacher")
    state = await context.refresh()
    assert context.is_approved is True
    assert context.state.snapshot.requested_role == AppRole.LEARNER
    assert landing_path(state) == "/dashboard/teacher"
    assert evaluate(state, DASHBOARD_ROUTES["/dashboard/learner"]).redirect_to == "/dashboard/teacher"


@pytest.mark.anyio
async def test_requested_learner_assigned_hod_lands_on_hod(api, client, make_user, auth_headers):
    admin_headers = auth_headers(make_user("admin@example.com", role=AppRole.ADMIN))
    context = SessionContext(api)
    await context.sign_up(
        "musa@example.com", "Password123", {"first_name": "Musa", "last_name": "Sithole", "role": "learner"}
    )
    await _approve(client, admin_headers, "musa@example.com", role="hod")

    state = await context.sign_in("musa@example.com", "Password123")
    assert landing_path(state) == "/dashboard/hod"

    await context.sign_out()
    assert context.profile is None and context.role is None and context.registration is None
    assert evaluate(context.state, DASHBOARD_ROUTES["/dashboard/hod"]).state == GateState.UNAUTHENTICATED


@pytest.mark.anyio
async def test_sign_in_with_wrong_password(api, make_user):
    make_user("teacher@example.com", role=AppRole.TEACHER)
    context = SessionContext(api)
    with pytest.raises(InvalidCredentials):
        await context.sign_in("teacher@example.com", "WrongPass1")
    assert context.session is None


@pytest.mark.anyio
async def test_feed_merges_and_marks_read(api, client, make_user, auth_headers):
    principal = make_user("principal@example.com", role=AppRole.PRINCIPAL)
    make_user("learner@example.com", role=AppRole.LEARNER, grade="8")
    await client.post(
        "/api/v1/portal/announcements",
        json={"title": "Assembly", "content": "Hall at 8", "target_audience": ["learners"]},
        headers=auth_headers(principal),
    )

    context = SessionContext(api)
    await context.sign_in("learner@example.com", "Password123")
    await client.post(
        "/api/v1/portal/notifications",
        json={"user_id": context.user.id, "title": "Marks", "message": "Maths released"},
        headers=auth_headers(principal),
    )

    feed = NotificationFeed(context)
    items = await feed.refresh()
    assert sorted(item.title for item in items) == ["Assembly", "Marks"]
    assert feed.unread_count == 1

    notification = next(item for item in items if item.title == "Marks")
    assert await feed.mark_as_read(notification.id) is True
    assert await feed.mark_as_read(notification.id) is False

    await feed.refresh()
    assert feed.unread_count == 0
    assert feed.mutations == {}
    feed.close()


@pytest.mark.anyio
async def test_document_upload_through_client(api, make_user):
    make_user("applicant@example.com", role=None, status=RegistrationStatus.PENDING)
    context = SessionContext(api)
    await context.sign_in("applicant@example.com", "Password123")

    url = await api.upload_document(context.session.access_token, "id-document", "id.pdf", b"%PDF")
    assert url.startswith("/storage/registration-docs/")

    with pytest.raises(StorageError):
        await api.upload_document(context.session.access_token, "id-document", "empty.pdf", b"")


@pytest.mark.anyio
async def test_api_error_carries_status(api, make_user):
    make_user("dup@example.com")
    with pytest.raises(ApiError) as excinfo:
        await api.sign_up(
            "dup@example.com",
            "Password123",
            SignUpMetadata(first_name="D", last_name="U", role="learner"),
        )
    assert excinfo.value.status_code == 409
