"""
Pydantic schemas for authentication flows.
"""

import re
from typing import List, Optional

from pydantic import EmailStr, Field, field_validator

from app.schemas.base import CamelModel
from app.schemas.user import UserOut


class Login(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class ForgotPasswordIn(CamelModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class ResetPasswordIn(CamelModel):
    """New password: at least 6 chars with upper case, lower case and a digit"""
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase letter, and one number"
            )
        return value


class TeamBrief(CamelModel):
    id: int
    name: str
    role: str


class AuthResponse(CamelModel):
    """User profile plus a fresh session token"""
    user: UserOut
    token: str


class MeResponse(CamelModel):
    user: UserOut
    teams: List[TeamBrief] = []


class ProfileResponse(CamelModel):
    message: str
    user: UserOut
    token: Optional[str] = None
