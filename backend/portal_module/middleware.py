from collections.abc import Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .models import AppRole, User
from .security import AuthError, decode_access_token
from .services import approved_role


# Roles that also satisfy checks written for other roles.
ROLE_ACCESS = {
    AppRole.PRINCIPAL: {AppRole.PRINCIPAL, AppRole.HOD, AppRole.GRADE_HEAD},
    AppRole.HOD: {AppRole.HOD, AppRole.GRADE_HEAD},
}

STAFF_ROLES = tuple(role for role in AppRole if role != AppRole.LEARNER)
ANNOUNCER_ROLES = (AppRole.ADMIN, AppRole.PRINCIPAL, AppRole.HOD, AppRole.GRADE_HEAD, AppRole.LLC)


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid auth scheme")
    return parts[1].strip()


def get_current_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> User:
    token = _parse_token(authorization)
    try:
        payload = decode_access_token(token)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    user = db.query(User).filter(User.id == payload["sub"]).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    return user


def require_roles(*allowed_roles: AppRole) -> Callable:
    def dependency(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db_session),
    ) -> User:
        role = approved_role(db, current_user.id)
        if role is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account pending approval")
        reachable = ROLE_ACCESS.get(role, {role})
        if not set(allowed_roles).intersection(reachable):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role privileges")
        return current_user

    return dependency
