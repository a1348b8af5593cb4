import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, replace

from pydantic import ValidationError as PydanticValidationError

from .api import PortalApi
from .errors import ApiError, AuthError, InvalidCredentials, PortalError, ValidationError
from .models import AppRole, Profile, Registration, Session, SignUpMetadata, User
from .resolver import EMPTY_SNAPSHOT, UserSnapshot, fetch_user_data


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class SessionState:
    session: Session | None = None
    snapshot: UserSnapshot = EMPTY_SNAPSHOT
    generation: int = 0

    @property
    def user(self) -> User | None:
        return self.session.user if self.session else None


Listener = Callable[[SessionState], None]


def validate_sign_up(email: str, password: str, metadata: SignUpMetadata | dict) -> SignUpMetadata:
    if not email or not EMAIL_PATTERN.match(email.strip()):
        raise ValidationError("email", "Enter a valid email address")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if isinstance(metadata, SignUpMetadata):
        return metadata
    try:
        return SignUpMetadata.model_validate(metadata or {})
    except PydanticValidationError as exc:
        error = exc.errors()[0]
        name = ".".join(str(part) for part in error["loc"]) or "metadata"
        raise ValidationError(name, error["msg"]) from exc


class SessionContext:
    """Signed-in user, session tokens and the resolved role/approval data.

    Every change goes through :meth:`_transition`, which bumps the generation
    counter and notifies listeners. Resolver results that finish after a
    newer transition are dropped.
    """

    def __init__(self, api: PortalApi):
        self.api = api
        self._state = SessionState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> User | None:
        return self._state.user

    @property
    def session(self) -> Session | None:
        return self._state.session

    @property
    def profile(self) -> Profile | None:
        return self._state.snapshot.profile

    @property
    def role(self) -> AppRole | None:
        return self._state.snapshot.role

    @property
    def registration(self) -> Registration | None:
        return self._state.snapshot.registration

    @property
    def data_loaded(self) -> bool:
        return self._state.snapshot.data_loaded

    @property
    def is_approved(self) -> bool:
        return self._state.snapshot.is_approved

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, session: Session | None, snapshot: UserSnapshot) -> int:
        self._state = SessionState(session=session, snapshot=snapshot, generation=self._state.generation + 1)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state.generation

    def _start(self, session: Session) -> int:
        return self._transition(session, replace(EMPTY_SNAPSHOT, user_id=session.user.id))

    async def _resolve(self, generation: int) -> bool:
        session = self._state.session
        if session is None:
            return False
        snapshot = await fetch_user_data(self.api, session.user.id, session.access_token)
        current = self._state
        if current.generation != generation or current.user is None or current.user.id != snapshot.user_id:
            logger.debug("Dropping stale user data for %s", snapshot.user_id)
            return False
        self._transition(current.session, snapshot)
        return True

    async def sign_up(self, email: str, password: str, metadata: SignUpMetadata | dict) -> User:
        checked = validate_sign_up(email, password, metadata)
        try:
            return await self.api.sign_up(email.strip().lower(), password, checked)
        except ApiError as exc:
            raise AuthError(exc.detail) from exc

    async def sign_in(self, email: str, password: str) -> SessionState:
        try:
            session = await self.api.sign_in(email.strip().lower(), password)
        except ApiError as exc:
            raise AuthError(exc.detail) from exc
        await self._resolve(self._start(session))
        return self._state

    async def restore(self, session: Session) -> SessionState:
        await self._resolve(self._start(session))
        return self._state

    async def refresh(self) -> SessionState:
        current = self._state.session
        if current is None:
            raise AuthError("Not signed in")
        try:
            session = await self.api.refresh(current.refresh_token)
        except InvalidCredentials:
            logger.info("Refresh token rejected; signing out %s", current.user.email)
            self._transition(None, EMPTY_SNAPSHOT)
            raise
        except ApiError as exc:
            raise AuthError(exc.detail) from exc
        await self._resolve(self._start(session))
        return self._state

    async def sign_out(self) -> None:
        current = self._state.session
        self._transition(None, EMPTY_SNAPSHOT)
        if current is None:
            return
        try:
            await self.api.sign_out(current.refresh_token)
        except PortalError as exc:
            logger.warning("Sign-out revocation failed for %s: %s", current.user.email, exc)
