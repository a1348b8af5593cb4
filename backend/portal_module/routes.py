import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from .database import get_db_session
from .messaging import (
    create_announcement,
    create_notification,
    list_notifications,
    list_visible_announcements,
    mark_notification_read,
)
from .middleware import ANNOUNCER_ROLES, STAFF_ROLES, get_current_user, require_roles
from .models import AppRole, RegistrationStatus, User
from .schemas import (
    AdminNotesRequest,
    AnnouncementCreateRequest,
    AnnouncementOut,
    ApproveRequest,
    DocumentUploadOut,
    LoginRequest,
    LogoutRequest,
    NotificationCreateRequest,
    NotificationOut,
    ProfileOut,
    ProfileUpdateRequest,
    RefreshRequest,
    RegistrationDetailsRequest,
    RegistrationOut,
    RegistrationSummary,
    RejectRequest,
    RoleAssignRequest,
    RoleOut,
    SignUpRequest,
    SignUpResponse,
    TokenResponse,
    UserOut,
)
from .services import (
    approve_registration,
    assign_role,
    attach_registration_document,
    authenticate_user,
    get_profile,
    get_registration,
    get_role,
    issue_tokens,
    list_registrations,
    refresh_session,
    reject_registration,
    revoke_session,
    send_registration_confirmation,
    sign_up_user,
    update_admin_notes,
    update_profile,
    update_registration_details,
)
from .storage import LocalObjectStorage, StorageError, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/portal", tags=["School Portal"])


# --- auth -----------------------------------------------------------------


@router.post("/auth/signup", response_model=SignUpResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignUpRequest, db: Session = Depends(get_db_session)):
    user, registration = sign_up_user(db, email=payload.email, password=payload.password, metadata=payload.metadata)
    send_registration_confirmation(db, registration=registration)
    return SignUpResponse(user=UserOut.model_validate(user), registration_status=registration.status)


@router.post("/auth/token", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db_session)):
    user = authenticate_user(db, email=payload.email, password=payload.password)
    return issue_tokens(db, user)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(payload: RefreshRequest, db: Session = Depends(get_db_session)):
    return refresh_session(db, refresh_token=payload.refresh_token)


@router.post("/auth/logout")
def logout(payload: LogoutRequest, db: Session = Depends(get_db_session)):
    revoke_session(db, refresh_token=payload.refresh_token)
    return {"success": True}


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return UserOut.model_validate(current_user)


# --- own data -------------------------------------------------------------


@router.get("/me/profile", response_model=ProfileOut | None)
def my_profile(current_user: User = Depends(get_current_user), db: Session = Depends(get_db_session)):
    return get_profile(db, current_user.id)


@router.patch("/me/profile", response_model=ProfileOut)
def edit_my_profile(
    payload: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
):
    return update_profile(db, user=current_user, payload=payload)


@router.get("/me/role", response_model=RoleOut)
def my_role(current_user: User = Depends(get_current_user), db: Session = Depends(get_db_session)):
    return RoleOut(role=get_role(db, current_user.id))


@router.get("/me/registration", response_model=RegistrationSummary | None)
def my_registration(current_user: User = Depends(get_current_user), db: Session = Depends(get_db_session)):
    return get_registration(db, current_user.id)


@router.patch("/me/registration", response_model=RegistrationOut)
def complete_my_registration(
    payload: RegistrationDetailsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
):
    return update_registration_details(db, user=current_user, payload=payload)


@router.post("/me/registration/documents/{kind}", response_model=DocumentUploadOut, status_code=status.HTTP_201_CREATED)
def upload_registration_document(
    kind: str,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
    storage: LocalObjectStorage = Depends(get_storage),
):
    data = file.file.read()
    try:
        url = attach_registration_document(
            db,
            storage,
            user=current_user,
            kind=kind,
            filename=file.filename,
            data=data,
        )
    except StorageError as exc:
        logger.error("Document upload failed for %s: %s", current_user.email, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return DocumentUploadOut(kind=kind, url=url)


# --- feed -----------------------------------------------------------------


@router.get("/announcements", response_model=list[AnnouncementOut])
def announcements(current_user: User = Depends(get_current_user), db: Session = Depends(get_db_session)):
    return list_visible_announcements(db, user=current_user)


@router.post("/announcements", response_model=AnnouncementOut, status_code=status.HTTP_201_CREATED)
def post_announcement(
    payload: AnnouncementCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(*ANNOUNCER_ROLES)),
):
    return create_announcement(db, actor=current_user, payload=payload)


@router.get("/notifications", response_model=list[NotificationOut])
def notifications(current_user: User = Depends(get_current_user), db: Session = Depends(get_db_session)):
    return list_notifications(db, user_id=current_user.id)


@router.post("/notifications", response_model=NotificationOut, status_code=status.HTTP_201_CREATED)
def post_notification(
    payload: NotificationCreateRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(*STAFF_ROLES)),
):
    return create_notification(db, payload=payload)


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def read_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
):
    return mark_notification_read(db, notification_id=notification_id, user_id=current_user.id)


# --- admin ----------------------------------------------------------------


@router.get("/admin/registrations", response_model=list[RegistrationOut])
def admin_registrations(
    status_filter: RegistrationStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(AppRole.ADMIN)),
):
    return list_registrations(db, status_filter=status_filter)


@router.post("/admin/registrations/{registration_id}/approve", response_model=RegistrationOut)
def admin_approve(
    registration_id: str,
    payload: ApproveRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(AppRole.ADMIN)),
):
    return approve_registration(
        db,
        registration_id=registration_id,
        actor=current_user,
        role=payload.role,
        admin_notes=payload.admin_notes,
    )


@router.post("/admin/registrations/{registration_id}/reject", response_model=RegistrationOut)
def admin_reject(
    registration_id: str,
    payload: RejectRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(AppRole.ADMIN)),
):
    return reject_registration(db, registration_id=registration_id, actor=current_user, admin_notes=payload.admin_notes)


@router.patch("/admin/registrations/{registration_id}/notes", response_model=RegistrationOut)
def admin_notes(
    registration_id: str,
    payload: AdminNotesRequest,
    db: Session = Depends(get_db_session),
    _: User = Depends(require_roles(AppRole.ADMIN)),
):
    return update_admin_notes(db, registration_id=registration_id, admin_notes=payload.admin_notes)


@router.put("/admin/users/{user_id}/role", response_model=RoleOut)
def admin_assign_role(
    user_id: str,
    payload: RoleAssignRequest,
    db: Session = Depends(get_db_session),
    current_user: User = Depends(require_roles(AppRole.ADMIN)),
):
    assignment = assign_role(db, user_id=user_id, role=payload.role, actor=current_user)
    return RoleOut(role=assignment.role)
