import enum
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict, Field


class AppRole(str, enum.Enum):
    LEARNER = "learner"
    TEACHER = "teacher"
    GRADE_HEAD = "grade_head"
    HOD = "hod"
    LLC = "llc"
    PRINCIPAL = "principal"
    ADMIN = "admin"
    FINANCE = "finance"
    LIBRARIAN = "librarian"


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class User(_Record):
    id: str
    email: str


class Session(_Record):
    access_token: str
    refresh_token: str
    expires_at: datetime
    user: User

    @classmethod
    def from_token_response(cls, data: dict, *, now: datetime | None = None) -> "Session":
        now = now or datetime.now(timezone.utc)
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=now + timedelta(seconds=int(data.get("expires_in", 0))),
            user=User.model_validate(data["user"]),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at


class Profile(_Record):
    id: str
    user_id: str
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    grade: str | None = None
    class_name: str | None = None
    avatar_url: str | None = None


class Registration(_Record):
    id: str
    status: str
    role: AppRole


class Announcement(_Record):
    id: str
    title: str
    content: str
    type: str = "announcement"
    created_at: datetime
    target_audience: list[str] | None = None
    target_grades: list[str] | None = None
    expires_at: datetime | None = None


class Notification(_Record):
    id: str
    title: str
    message: str
    type: str = "info"
    is_read: bool = False
    link_url: str | None = None
    link_label: str | None = None
    created_at: datetime


class SignUpMetadata(_Record):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    role: AppRole
    phone: str | None = None
