from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import settings
from .models import AppRole, RegistrationStatus


class SignUpMetadata(BaseModel):
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    role: AppRole
    phone: str | None = Field(default=None, max_length=20)


class SignUpRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=settings.min_password_length)
    metadata: SignUpMetadata


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str


class SignUpResponse(BaseModel):
    user: UserOut
    registration_status: RegistrationStatus


class LoginRequest(BaseModel):
    email: str = Field(min_length=5, max_length=255)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: str | None = None


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    id_number: str | None = None
    grade: str | None = None
    class_name: str | None = None
    department_id: str | None = None
    avatar_url: str | None = None
    address: str | None = None
    parent_name: str | None = None
    parent_phone: str | None = None
    parent_email: str | None = None


class ProfileUpdateRequest(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=120)
    last_name: str | None = Field(default=None, min_length=1, max_length=120)
    phone: str | None = None
    address: str | None = Field(default=None, max_length=500)
    avatar_url: str | None = Field(default=None, max_length=500)
    parent_name: str | None = Field(default=None, max_length=255)
    parent_phone: str | None = None
    parent_email: str | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def names_not_blank(cls, value: str | None) -> str:
        # Omit the field to leave it unchanged; the columns are NOT NULL.
        if value is None or not value.strip():
            raise ValueError("must not be empty")
        return value


class RoleOut(BaseModel):
    role: AppRole | None = None


class RegistrationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: RegistrationStatus
    role: AppRole


class RegistrationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str | None
    role: AppRole
    status: RegistrationStatus
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    id_number: str | None = None
    grade: str | None = None
    class_name: str | None = None
    address: str | None = None
    parent_name: str | None = None
    parent_phone: str | None = None
    parent_email: str | None = None
    id_document_url: str | None = None
    proof_of_address_url: str | None = None
    payment_proof_url: str | None = None
    report_url: str | None = None
    admin_notes: str | None = None
    created_at: datetime
    updated_at: datetime


class RegistrationDetailsRequest(BaseModel):
    phone: str | None = None
    id_number: str | None = None
    address: str | None = Field(default=None, max_length=500)
    grade: str | None = Field(default=None, max_length=20)
    class_name: str | None = Field(default=None, max_length=20)
    parent_name: str | None = Field(default=None, max_length=255)
    parent_phone: str | None = None
    parent_email: str | None = None


class ApproveRequest(BaseModel):
    role: AppRole | None = None
    admin_notes: str | None = None


class RejectRequest(BaseModel):
    admin_notes: str | None = None


class AdminNotesRequest(BaseModel):
    admin_notes: str


class RoleAssignRequest(BaseModel):
    role: AppRole


class DocumentUploadOut(BaseModel):
    kind: str
    url: str


class AnnouncementCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    type: str = Field(default="announcement", max_length=40)
    target_audience: list[str] = Field(default_factory=lambda: ["all"])
    target_grades: list[str] | None = None
    expires_at: datetime | None = None


class AnnouncementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    content: str
    type: str
    created_by: str | None = None
    target_audience: list[str] | None = None
    target_grades: list[str] | None = None
    expires_at: datetime | None = None
    created_at: datetime


class NotificationCreateRequest(BaseModel):
    user_id: str
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    type: str = Field(default="info", max_length=40)
    link_url: str | None = Field(default=None, max_length=500)
    link_label: str | None = Field(default=None, max_length=120)


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    message: str
    type: str
    is_read: bool
    link_url: str | None = None
    link_label: str | None = None
    created_at: datetime


class ChatMessage(BaseModel):
    role: str = Field(pattern="^(user|assistant)$")
    content: str = Field(min_length=1)


class AssistRequest(BaseModel):
    messages: list[ChatMessage]


class BulkEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipients: list[str] = Field(min_length=1)
    subject: str = Field(min_length=1, max_length=255)
    body: str
    sender_name: str | None = Field(default=None, alias="senderName")


class RegistrationEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=1)
    first_name: str = Field(min_length=1, alias="firstName")
    last_name: str = Field(min_length=1, alias="lastName")
    role: str = "learner"
