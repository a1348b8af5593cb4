"""
Pytest configuration for the portal tests.

Every test gets its own SQLite file and storage directory; the FastAPI app is
wired to them through dependency overrides. AnyIO runs async tests on asyncio.
"""
import os
import tempfile

# Settings are read at import time, so pin them before the app is imported.
os.environ["PORTAL_DATABASE_URL"] = "sqlite://"
os.environ["PORTAL_STORAGE_DIR"] = tempfile.mkdtemp(prefix="portal-storage-")
os.environ["PORTAL_AUTO_APPROVE_ADMINS"] = "false"
os.environ["SMTP_EMAIL"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["GROQ_API_KEY"] = ""

import httpx  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from backend.portal_module.database import Base, get_db_session  # noqa: E402
from backend.portal_module.models import (  # noqa: E402
    AppRole,
    Profile,
    Registration,
    RegistrationStatus,
    User,
    UserRoleAssignment,
)
from backend.portal_module.security import create_access_token, hash_password  # noqa: E402
from backend.portal_module.storage import LocalObjectStorage, get_storage  # noqa: E402

DEFAULT_PASSWORD = "Password123"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'portal.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(str(tmp_path / "storage"), "/storage")


@pytest.fixture
def app(session_factory, storage):
    from backend.backend import app as portal_app

    def _db_override():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    portal_app.dependency_overrides[get_db_session] = _db_override
    portal_app.dependency_overrides[get_storage] = lambda: storage
    yield portal_app
    portal_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.fixture
def make_user(db):
    """Create a user with profile, registration and (optionally) a role assignment."""

    def _make_user(
        email: str,
        *,
        role: AppRole | None = AppRole.LEARNER,
        requested_role: AppRole | None = None,
        status: RegistrationStatus | None = RegistrationStatus.APPROVED,
        grade: str | None = None,
        password: str = DEFAULT_PASSWORD,
    ) -> User:
        user = User(email=email, password_hash=hash_password(password), is_active=True)
        user.profile = Profile(first_name="Test", last_name="User", email=email, grade=grade)
        if status is not None:
            user.registration = Registration(
                role=requested_role or role or AppRole.LEARNER,
                status=status,
                first_name="Test",
                last_name="User",
                email=email,
                grade=grade,
            )
        if role is not None:
            user.role_assignment = UserRoleAssignment(role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(subject=user.id, email=user.email)}"}

    return _auth_headers
