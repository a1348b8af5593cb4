import asyncio
import logging
from dataclasses import dataclass

from .api import PortalApi
from .models import AppRole, Profile, Registration


logger = logging.getLogger(__name__)


def is_approved(registration: Registration | None, role: AppRole | None) -> bool:
    return registration is not None and registration.status == "approved" and role is not None


@dataclass(frozen=True)
class UserSnapshot:
    """Profile, role and registration of one user, as last resolved.

    ``role`` is the assigned role and the only one used for access decisions.
    ``requested_role`` is what the user asked for at sign-up and is shown on
    the pending page.
    """

    user_id: str | None = None
    profile: Profile | None = None
    role: AppRole | None = None
    registration: Registration | None = None
    data_loaded: bool = False

    @property
    def is_approved(self) -> bool:
        return is_approved(self.registration, self.role)

    @property
    def requested_role(self) -> AppRole | None:
        return self.registration.role if self.registration else None


EMPTY_SNAPSHOT = UserSnapshot()


async def fetch_user_data(api: PortalApi, user_id: str, token: str) -> UserSnapshot:
    """Read profile, role and registration concurrently.

    A failed read is logged and leaves its field ``None``; the snapshot is
    marked loaded once all three reads have finished either way.
    """
    results = await asyncio.gather(
        api.fetch_profile(token),
        api.fetch_role(token),
        api.fetch_registration(token),
        return_exceptions=True,
    )

    values = []
    for name, result in zip(("profile", "role", "registration"), results):
        if isinstance(result, Exception):
            logger.warning("Could not load %s for user %s: %s", name, user_id, result)
            values.append(None)
        elif isinstance(result, BaseException):
            raise result
        else:
            values.append(result)

    profile, role, registration = values
    return UserSnapshot(
        user_id=user_id,
        profile=profile,
        role=role,
        registration=registration,
        data_loaded=True,
    )
