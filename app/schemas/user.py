"""
Pydantic schemas for User entities.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator, model_validator

from app.schemas.base import CamelModel, StrictCamelModel

DELETED_USER_NAME = "Deleted user"


class NotificationPreferences(CamelModel):
    email: bool = True
    push: bool = False
    task_reminders: bool = True


class Preferences(CamelModel):
    theme: Literal["light", "dark", "system"] = "system"
    notifications: NotificationPreferences = NotificationPreferences()
    timezone: str = "UTC"


class NotificationPreferencesUpdate(StrictCamelModel):
    email: Optional[bool] = None
    push: Optional[bool] = None
    task_reminders: Optional[bool] = None


class PreferencesUpdate(StrictCamelModel):
    """Only the enumerated preference keys are accepted"""
    theme: Optional[Literal["light", "dark", "system"]] = None
    notifications: Optional[NotificationPreferencesUpdate] = None
    timezone: Optional[str] = Field(None, min_length=1, max_length=50)

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value):
        if value is None:
            return value
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError("Unknown timezone")
        return value


class UserCreate(CamelModel):
    """Registration payload"""
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class ProfileUpdate(StrictCamelModel):
    """Profile changes; email and password changes need the current password"""
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = Field(None, min_length=6, max_length=128)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class UserSummary(CamelModel):
    """Compact user reference embedded in teams, tasks and history"""
    id: int
    name: str
    email: Optional[str] = None
    is_deleted: bool = False

    @model_validator(mode="before")
    @classmethod
    def tombstone(cls, data):
        # Deleted accounts stay resolvable but expose nothing personal
        if getattr(data, "is_deleted", False):
            return {"id": data.id, "name": DELETED_USER_NAME, "email": None, "is_deleted": True}
        return data


class UserOut(CamelModel):
    """Full profile of the caller"""
    id: int
    name: str
    email: str
    role: str = "user"
    preferences: Preferences = Preferences()
    current_team: Optional[int] = None
    last_active_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def from_user_record(cls, data):
        if isinstance(data, dict):
            return data
        return {
            "id": data.id,
            "name": data.name,
            "email": data.email,
            "role": data.role or "user",
            "preferences": {
                "theme": data.theme or "system",
                "notifications": {
                    "email": bool(data.notify_email),
                    "push": bool(data.notify_push),
                    "task_reminders": bool(data.notify_task_reminders),
                },
                "timezone": data.timezone or "UTC",
            },
            "current_team": data.current_team_id,
            "last_active_at": data.last_active_at,
            "created_at": data.created_at,
            "updated_at": data.updated_at,
        }
