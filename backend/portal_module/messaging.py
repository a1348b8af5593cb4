from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy.orm import Session

from .models import Announcement, AppRole, Notification, User
from .schemas import AnnouncementCreateRequest, NotificationCreateRequest
from .services import approved_role, get_profile


ANNOUNCEMENT_LIMIT = 50
NOTIFICATION_LIMIT = 100


def audience_tags_for(role: AppRole | None) -> set[str]:
    """Audience tags a user with ``role`` matches.

    ``all`` matches everyone; a role matches its own name and plural
    (``teacher``/``teachers``); every non-learner role also matches ``staff``.
    """
    tags = {"all"}
    if role is not None:
        tags.update({role.value, f"{role.value}s"})
        if role != AppRole.LEARNER:
            tags.add("staff")
    return tags


def announcement_visible(
    announcement: Announcement,
    *,
    role: AppRole | None,
    grade: str | None,
    now: datetime,
) -> bool:
    if announcement.expires_at is not None:
        expires_at = announcement.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= now:
            return False
    audience = {tag.strip().lower() for tag in (announcement.target_audience or ["all"])}
    if not audience & audience_tags_for(role):
        return False
    if announcement.target_grades and role == AppRole.LEARNER:
        return grade in announcement.target_grades
    return True


def list_visible_announcements(db: Session, *, user: User, limit: int = ANNOUNCEMENT_LIMIT) -> list[Announcement]:
    role = approved_role(db, user.id)
    profile = get_profile(db, user.id)
    grade = profile.grade if profile else None
    now = datetime.now(timezone.utc)

    rows = db.query(Announcement).order_by(Announcement.created_at.desc()).all()
    visible = [a for a in rows if announcement_visible(a, role=role, grade=grade, now=now)]
    return visible[:limit]


def create_announcement(db: Session, *, actor: User, payload: AnnouncementCreateRequest) -> Announcement:
    audience = [tag.strip().lower() for tag in payload.target_audience if tag.strip()]
    if not audience:
        raise HTTPException(status_code=400, detail="Announcement needs at least one audience tag")
    announcement = Announcement(
        title=payload.title.strip(),
        content=payload.content,
        type=payload.type,
        created_by=actor.id,
        target_audience=audience,
        target_grades=payload.target_grades or None,
        expires_at=payload.expires_at,
    )
    db.add(announcement)
    db.commit()
    db.refresh(announcement)
    return announcement


def list_notifications(db: Session, *, user_id: str, limit: int = NOTIFICATION_LIMIT) -> list[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .all()
    )


def create_notification(db: Session, *, payload: NotificationCreateRequest) -> Notification:
    if not db.query(User).filter(User.id == payload.user_id).first():
        raise HTTPException(status_code=404, detail="User not found")
    notification = Notification(
        user_id=payload.user_id,
        title=payload.title.strip(),
        message=payload.message,
        type=payload.type,
        link_url=payload.link_url,
        link_label=payload.link_label,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def mark_notification_read(db: Session, *, notification_id: str, user_id: str) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    if not notification.is_read:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
    return notification
