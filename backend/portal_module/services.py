import logging
import re
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from .config import settings
from .email_service import dispatch_email, render_registration_email, role_label
from .models import (
    AppRole,
    AuthSession,
    Notification,
    Profile,
    Registration,
    RegistrationStatus,
    User,
    UserRoleAssignment,
)
from .schemas import ProfileUpdateRequest, RegistrationDetailsRequest, SignUpMetadata
from .security import (
    create_access_token,
    generate_refresh_token,
    hash_password,
    hash_refresh_token,
    refresh_expiration,
    verify_password,
)
from .storage import LocalObjectStorage, build_object_key, upload_then_record


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
PHONE_PATTERN = re.compile(r"^(\+27|0)\d{9}$")
ID_NUMBER_PATTERN = re.compile(r"^\d{13}$")

# document kind -> (bucket, registration column)
DOCUMENT_KINDS = {
    "id-document": ("registration-docs", "id_document_url"),
    "proof-of-address": ("registration-docs", "proof_of_address_url"),
    "payment-proof": ("payment-proofs", "payment_proof_url"),
    "last-report": ("registration-docs", "report_url"),
}

# Registration fields copied onto the profile when an application is approved.
_PROFILE_SYNC_FIELDS = (
    "phone",
    "id_number",
    "grade",
    "class_name",
    "address",
    "parent_name",
    "parent_phone",
    "parent_email",
)


def _normalize_email(value: str) -> str:
    normalized = value.lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise HTTPException(status_code=400, detail="Invalid email format")
    return normalized


def _normalize_phone(value: str | None) -> str | None:
    if value is None:
        return None
    compact = re.sub(r"\s", "", value)
    if not compact:
        return None
    if not PHONE_PATTERN.match(compact):
        raise HTTPException(status_code=400, detail="Invalid South African phone number")
    return compact


def _normalize_id_number(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    value = value.strip()
    if not ID_NUMBER_PATTERN.match(value):
        raise HTTPException(status_code=400, detail="ID number must be 13 digits")
    return value


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_approved(registration: Registration | None, role: AppRole | None) -> bool:
    return registration is not None and registration.status == RegistrationStatus.APPROVED and role is not None


def get_role(db: Session, user_id: str) -> AppRole | None:
    assignment = db.query(UserRoleAssignment).filter(UserRoleAssignment.user_id == user_id).first()
    return assignment.role if assignment else None


def get_profile(db: Session, user_id: str) -> Profile | None:
    return db.query(Profile).filter(Profile.user_id == user_id).first()


def get_registration(db: Session, user_id: str) -> Registration | None:
    return db.query(Registration).filter(Registration.user_id == user_id).first()


def approved_role(db: Session, user_id: str) -> AppRole | None:
    """Role used for server-side access checks; None until the user is approved."""
    role = get_role(db, user_id)
    return role if is_approved(get_registration(db, user_id), role) else None


def _set_role(db: Session, *, user_id: str, role: AppRole, actor_user_id: str | None) -> UserRoleAssignment:
    assignment = db.query(UserRoleAssignment).filter(UserRoleAssignment.user_id == user_id).first()
    if assignment:
        assignment.role = role
        assignment.assigned_by_user_id = actor_user_id
    else:
        assignment = UserRoleAssignment(user_id=user_id, role=role, assigned_by_user_id=actor_user_id)
        db.add(assignment)
    return assignment


def _notify(db: Session, *, user_id: str, title: str, message: str, type_: str = "info") -> None:
    db.add(Notification(user_id=user_id, title=title, message=message, type=type_))


# --- identity -------------------------------------------------------------


def sign_up_user(db: Session, *, email: str, password: str, metadata: SignUpMetadata) -> tuple[User, Registration]:
    email = _normalize_email(email)
    if len(password) < settings.min_password_length:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {settings.min_password_length} characters",
        )
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="User already registered")

    phone = _normalize_phone(metadata.phone)
    first_name = metadata.first_name.strip()
    last_name = metadata.last_name.strip()

    user = User(email=email, password_hash=hash_password(password), is_active=True)
    user.profile = Profile(first_name=first_name, last_name=last_name, email=email, phone=phone)
    registration = Registration(
        role=metadata.role,
        status=RegistrationStatus.PENDING,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
    )
    user.registration = registration
    if metadata.role == AppRole.ADMIN and settings.auto_approve_admins:
        registration.status = RegistrationStatus.APPROVED
        user.role_assignment = UserRoleAssignment(role=AppRole.ADMIN)

    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("New %s registration for %s (%s)", metadata.role.value, email, registration.status.value)
    return user, registration


def send_registration_confirmation(db: Session, *, registration: Registration) -> None:
    subject, body = render_registration_email(
        first_name=registration.first_name,
        last_name=registration.last_name,
        email=registration.email,
        role=registration.role.value,
        auto_approved=registration.status == RegistrationStatus.APPROVED,
    )
    dispatch_email(db, recipients=[registration.email], subject=subject, body_html=body, sender_id=registration.user_id)


def authenticate_user(db: Session, *, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email.lower().strip()).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return user


def issue_tokens(db: Session, user: User) -> dict:
    refresh_token = generate_refresh_token()
    db.add(
        AuthSession(
            user_id=user.id,
            token_hash=hash_refresh_token(refresh_token),
            expires_at=refresh_expiration(),
        )
    )
    db.commit()
    return {
        "access_token": create_access_token(subject=user.id, email=user.email),
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": settings.jwt_exp_minutes * 60,
        "user": user,
    }


def refresh_session(db: Session, *, refresh_token: str) -> dict:
    record = db.query(AuthSession).filter(AuthSession.token_hash == hash_refresh_token(refresh_token)).first()
    now = datetime.now(timezone.utc)
    if not record or record.revoked_at is not None or now > _as_utc(record.expires_at):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")
    user = db.query(User).filter(User.id == record.user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")

    # Rotation: each refresh token is single use.
    record.revoked_at = now
    return issue_tokens(db, user)


def revoke_session(db: Session, *, refresh_token: str | None) -> None:
    if not refresh_token:
        return
    record = db.query(AuthSession).filter(AuthSession.token_hash == hash_refresh_token(refresh_token)).first()
    if record and record.revoked_at is None:
        record.revoked_at = datetime.now(timezone.utc)
        db.commit()


# --- self-service ---------------------------------------------------------


def update_profile(db: Session, *, user: User, payload: ProfileUpdateRequest) -> Profile:
    profile = get_profile(db, user.id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")

    changes = payload.model_dump(exclude_unset=True)
    if "phone" in changes:
        changes["phone"] = _normalize_phone(changes["phone"])
    if "parent_phone" in changes:
        changes["parent_phone"] = _normalize_phone(changes["parent_phone"])
    if changes.get("parent_email"):
        changes["parent_email"] = _normalize_email(changes["parent_email"])
    for field, value in changes.items():
        setattr(profile, field, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(profile)
    return profile


def _pending_registration_for(db: Session, user: User) -> Registration:
    registration = get_registration(db, user.id)
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")
    if registration.status != RegistrationStatus.PENDING:
        raise HTTPException(status_code=409, detail=f"Registration already {registration.status.value}")
    return registration


def update_registration_details(db: Session, *, user: User, payload: RegistrationDetailsRequest) -> Registration:
    registration = _pending_registration_for(db, user)

    changes = payload.model_dump(exclude_unset=True)
    if "phone" in changes:
        changes["phone"] = _normalize_phone(changes["phone"])
    if "parent_phone" in changes:
        changes["parent_phone"] = _normalize_phone(changes["parent_phone"])
    if "id_number" in changes:
        changes["id_number"] = _normalize_id_number(changes["id_number"])
    if changes.get("parent_email"):
        changes["parent_email"] = _normalize_email(changes["parent_email"])
    if registration.role not in (AppRole.LEARNER, AppRole.GRADE_HEAD):
        changes.pop("grade", None)
    for field, value in changes.items():
        setattr(registration, field, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(registration)
    return registration


def attach_registration_document(
    db: Session,
    storage: LocalObjectStorage,
    *,
    user: User,
    kind: str,
    filename: str | None,
    data: bytes,
) -> str:
    if kind not in DOCUMENT_KINDS:
        raise HTTPException(status_code=404, detail="Unknown document type")
    if not data:
        raise HTTPException(status_code=400, detail="Empty upload")
    registration = _pending_registration_for(db, user)
    bucket, column = DOCUMENT_KINDS[kind]

    def record(url: str) -> str:
        setattr(registration, column, url)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        return url

    return upload_then_record(
        storage,
        bucket=bucket,
        key=build_object_key(user.id, kind, filename),
        data=data,
        record=record,
    )


# --- admin ----------------------------------------------------------------


def list_registrations(db: Session, *, status_filter: RegistrationStatus | None = None) -> list[Registration]:
    query = db.query(Registration)
    if status_filter is not None:
        query = query.filter(Registration.status == status_filter)
    return query.order_by(Registration.created_at.desc()).all()


def _get_registration_or_404(db: Session, registration_id: str) -> Registration:
    registration = db.query(Registration).filter(Registration.id == registration_id).first()
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")
    return registration


def _ensure_pending(registration: Registration) -> None:
    if registration.status != RegistrationStatus.PENDING:
        raise HTTPException(status_code=409, detail=f"Registration already {registration.status.value}")


def approve_registration(
    db: Session,
    *,
    registration_id: str,
    actor: User,
    role: AppRole | None = None,
    admin_notes: str | None = None,
) -> Registration:
    registration = _get_registration_or_404(db, registration_id)
    _ensure_pending(registration)
    if registration.user_id is None:
        raise HTTPException(status_code=409, detail="Registration has no linked account")

    assigned = role or registration.role
    registration.status = RegistrationStatus.APPROVED
    if admin_notes is not None:
        registration.admin_notes = admin_notes
    _set_role(db, user_id=registration.user_id, role=assigned, actor_user_id=actor.id)

    profile = get_profile(db, registration.user_id)
    if profile:
        for field in _PROFILE_SYNC_FIELDS:
            value = getattr(registration, field)
            if value is not None:
                setattr(profile, field, value)

    _notify(
        db,
        user_id=registration.user_id,
        title="Registration Approved",
        message=f"Your registration has been approved. You now have access to the {role_label(assigned.value)} dashboard.",
        type_="registration",
    )
    db.commit()
    db.refresh(registration)
    logger.info("Registration %s approved by %s as %s", registration.id, actor.email, assigned.value)
    return registration


def reject_registration(
    db: Session,
    *,
    registration_id: str,
    actor: User,
    admin_notes: str | None = None,
) -> Registration:
    registration = _get_registration_or_404(db, registration_id)
    _ensure_pending(registration)

    registration.status = RegistrationStatus.REJECTED
    if admin_notes is not None:
        registration.admin_notes = admin_notes
    if registration.user_id is not None:
        db.query(UserRoleAssignment).filter(UserRoleAssignment.user_id == registration.user_id).delete()
        message = "Your registration was not approved."
        if admin_notes:
            message = f"{message} Note from the administration: {admin_notes}"
        _notify(db, user_id=registration.user_id, title="Registration Rejected", message=message, type_="registration")
    db.commit()
    db.refresh(registration)
    logger.info("Registration %s rejected by %s", registration.id, actor.email)
    return registration


def update_admin_notes(db: Session, *, registration_id: str, admin_notes: str) -> Registration:
    registration = _get_registration_or_404(db, registration_id)
    registration.admin_notes = admin_notes
    db.commit()
    db.refresh(registration)
    return registration


def assign_role(db: Session, *, user_id: str, role: AppRole, actor: User) -> UserRoleAssignment:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    assignment = _set_role(db, user_id=user_id, role=role, actor_user_id=actor.id)
    db.commit()
    db.refresh(assignment)
    return assignment


def seed_default_users(db: Session) -> None:
    email = settings.root_admin_email.lower().strip()
    if not email or db.query(User).filter(User.email == email).first():
        return

    user = User(email=email, password_hash=hash_password(settings.root_admin_password), is_active=True)
    user.profile = Profile(first_name="School", last_name="Administrator", email=email)
    user.registration = Registration(
        role=AppRole.ADMIN,
        status=RegistrationStatus.APPROVED,
        first_name="School",
        last_name="Administrator",
        email=email,
        admin_notes="Provisioned at startup",
    )
    user.role_assignment = UserRoleAssignment(role=AppRole.ADMIN)
    db.add(user)
    db.commit()
    logger.info("Seeded administrator account %s", email)
