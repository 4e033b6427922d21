"""
Pydantic models for users, todos, extracted tasks and auth payloads.

Field names are snake_case in Python and camelCase on the wire.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# PostgreSQL INTEGER / SERIAL range
MAX_INT4 = 2**31 - 1
MIN_INT4 = -2**31


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    # Offset-less timestamps are UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============ USERS ============
class User(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: EmailStr
    name: str = ""
    image: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")


class UserPublic(BaseModel):
    id: str
    email: str
    name: str
    image: Optional[str] = None


class GoogleAuthRequest(BaseModel):
    code: str
    redirect_uri: Optional[str] = None


class AuthResponse(BaseModel):
    token: str
    user: UserPublic


# ============ TODOS ============
class Todo(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    user_id: str = Field(alias="userId")
    title: str
    estimated_time: int = Field(alias="estimatedTime")  # minutes
    completed: bool = False
    order: int = 0  # manual sort position, not unique
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


def _clean_title(value):
    if value is None:
        return value
    if not isinstance(value, str):
        raise ValueError("title must be a string")
    value = value.strip()
    if not value:
        raise ValueError("title must not be empty")
    return value


class TodoCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    estimated_time: int = Field(alias="estimatedTime", gt=0, le=MAX_INT4)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, value):
        return _clean_title(value)

    @field_validator("created_at")
    @classmethod
    def check_created_at(cls, value):
        return as_utc(value)


class TodoUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = None
    estimated_time: Optional[int] = Field(default=None, alias="estimatedTime", gt=0, le=MAX_INT4)
    completed: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=MIN_INT4, le=MAX_INT4)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, value):
        return _clean_title(value)

    @field_validator("created_at")
    @classmethod
    def check_created_at(cls, value):
        return as_utc(value)


# ============ VOICE PIPELINE ============
class TranscribeRequest(BaseModel):
    audio: Optional[str] = None  # data:audio/...;base64,...


class ExtractedTask(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    estimated_time: int = Field(alias="estimatedTime")
