from datetime import datetime
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, EmailStr, Field, PlainSerializer, StrictBool, StrictInt
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from utils import as_utc_naive, is_valid_user_id, is_valid_uuid, to_iso


# ---------------------------
# Field types
# ---------------------------
def _require_text(value: str) -> str:
    value = value.strip()
    if not value:
        raise PydanticCustomError("empty", "value is required and cannot be empty")
    return value


def _strip_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _parse_timestamp(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise PydanticCustomError("timestamp_format", "value must be an ISO-8601 timestamp")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # Extended format only; digit runs such as epoch seconds are rejected
    if "-" not in text:
        raise PydanticCustomError("timestamp_format", "value must be an ISO-8601 timestamp")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise PydanticCustomError("timestamp_format", "value must be an ISO-8601 timestamp")


def _check_uuid(value: str) -> str:
    value = value.strip()
    if not is_valid_uuid(value):
        raise PydanticCustomError("uuid_format", "value must be a valid UUID")
    return value


def _check_user_id(value: str) -> str:
    value = value.strip()
    if not is_valid_user_id(value):
        raise PydanticCustomError("uuid_format", "value must be a valid user id")
    return value


def _lower_email(value: str) -> str:
    return value.lower()


RequiredText = Annotated[str, AfterValidator(_require_text)]
OptionalText = Annotated[Optional[str], AfterValidator(_strip_or_none)]
UtcDatetime = Annotated[datetime, BeforeValidator(_parse_timestamp), AfterValidator(as_utc_naive)]
IsoDatetime = Annotated[datetime, PlainSerializer(to_iso, return_type=str)]
Uuid = Annotated[str, AfterValidator(_check_uuid)]
UserId = Annotated[str, AfterValidator(_check_user_id)]
Email = Annotated[EmailStr, AfterValidator(_lower_email)]
PositiveInt = Annotated[StrictInt, Field(gt=0)]

Role = Literal["user", "family", "doctor", "admin"]
CapsuleStatus = Literal["draft", "sealed", "unlocked"]
Permission = Literal["view", "edit", "admin"]
ActivityType = Literal["created", "updated", "file_added", "file_removed", "sealed", "unlocked", "shared"]
NotificationType = Literal["unlock_reminder", "capsule_unlocked", "collaborator_added", "emergency_access"]


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# ---------------------------
# User
# ---------------------------
class UserBase(CamelModel):
    email: Email
    full_name: RequiredText
    role: Role = "user"
    avatar_url: OptionalText = None
    phone: OptionalText = None

class UserCreate(UserBase):
    password: Optional[str] = Field(None, min_length=8)

class UserUpdate(CamelModel):
    email: Email = None
    full_name: RequiredText = None
    role: Role = None
    avatar_url: OptionalText = None
    phone: OptionalText = None
    password: Optional[str] = Field(None, min_length=8)

class UserOut(CamelModel):
    id: str
    email: str
    full_name: str
    role: str
    avatar_url: Optional[str] = None
    phone: Optional[str] = None
    created_at: IsoDatetime
    updated_at: IsoDatetime

class UserDeleted(BaseModel):
    message: str
    user: UserOut


# ---------------------------
# Token
# ---------------------------
class Token(CamelModel):
    access_token: str
    token_type: str


# ---------------------------
# Capsule
# ---------------------------
class CapsuleCreate(CamelModel):
    title: RequiredText
    description: OptionalText = None
    unlock_date: UtcDatetime
    is_emergency_accessible: StrictBool = False
    emergency_qr_code: OptionalText = None
    theme: OptionalText = None

class CapsuleUpdate(CamelModel):
    title: RequiredText = None
    description: OptionalText = None
    unlock_date: UtcDatetime = None
    is_locked: StrictBool = None
    is_emergency_accessible: StrictBool = None
    emergency_qr_code: OptionalText = None
    theme: OptionalText = None
    status: CapsuleStatus = None

class CapsuleOut(CamelModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    unlock_date: IsoDatetime
    is_locked: bool
    is_emergency_accessible: bool
    emergency_qr_code: Optional[str] = None
    theme: str
    status: str
    created_at: IsoDatetime
    updated_at: IsoDatetime
    is_unlocked: bool

class CapsuleDeleted(BaseModel):
    message: str
    capsule: CapsuleOut

class UnlockStatusOut(CamelModel):
    capsule_id: str
    unlock_date: IsoDatetime
    is_unlocked: bool
    seconds_until_unlock: int
    countdown: Optional[str] = None
    poll_interval: int

class EmergencyQrOut(CamelModel):
    capsule_id: str
    link: str
    qr_image: str


# ---------------------------
# Capsule file
# ---------------------------
class CapsuleFileCreate(CamelModel):
    capsule_id: Uuid
    file_name: RequiredText
    file_type: RequiredText
    file_size: PositiveInt
    file_url: OptionalText = None
    thumbnail_url: OptionalText = None
    uploaded_by: Optional[UserId] = None

class CapsuleFileUpdate(CamelModel):
    file_name: RequiredText = None
    thumbnail_url: OptionalText = None

class CapsuleFileOut(CamelModel):
    id: str
    capsule_id: str
    file_name: str
    file_type: str
    file_size: int
    file_url: str
    thumbnail_url: Optional[str] = None
    uploaded_by: str
    created_at: IsoDatetime

class CapsuleFileDeleted(BaseModel):
    message: str
    file: CapsuleFileOut


# ---------------------------
# Collaborator
# ---------------------------
class CollaboratorCreate(CamelModel):
    capsule_id: Uuid
    user_id: UserId
    permission: Permission = "view"
    invited_by: Optional[UserId] = None

class CollaboratorUpdate(CamelModel):
    permission: Permission = None
    accepted_at: Optional[UtcDatetime] = None

class CollaboratorOut(CamelModel):
    id: str
    capsule_id: str
    user_id: str
    permission: str
    invited_by: str
    accepted_at: Optional[IsoDatetime] = None
    created_at: IsoDatetime

class CollaboratorDeleted(BaseModel):
    message: str
    collaborator: CollaboratorOut


# ---------------------------
# Activity
# ---------------------------
class ActivityCreate(CamelModel):
    capsule_id: Uuid
    activity_type: ActivityType
    description: RequiredText
    user_id: Optional[UserId] = None

class ActivityOut(CamelModel):
    id: str
    capsule_id: str
    user_id: str
    activity_type: str
    description: str
    created_at: IsoDatetime

class ActivityDeleted(BaseModel):
    message: str
    activity: ActivityOut


# ---------------------------
# Notification
# ---------------------------
class NotificationCreate(CamelModel):
    id: Any = None  # rejected when present
    user_id: UserId
    type: NotificationType
    title: RequiredText
    message: RequiredText
    capsule_id: Optional[Uuid] = None
    scheduled_for: Optional[UtcDatetime] = None

class NotificationUpdate(CamelModel):
    is_read: StrictBool = None
    user_id: Any = None  # rejected when present

class NotificationOut(CamelModel):
    id: int
    user_id: str
    capsule_id: Optional[str] = None
    type: str
    title: str
    message: str
    is_read: bool
    scheduled_for: Optional[IsoDatetime] = None
    created_at: IsoDatetime

class NotificationDeleted(BaseModel):
    message: str
    notification: NotificationOut

class ReadAllOut(CamelModel):
    message: str
    updated_count: int

class UnreadCountOut(CamelModel):
    user_id: str
    unread_count: int


# ---------------------------
# Chat
# ---------------------------
class ChatIn(CamelModel):
    message: RequiredText

class ChatOut(CamelModel):
    reply: str
    topic: str
