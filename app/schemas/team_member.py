"""
Pydantic schemas for team members and invitations.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import EmailStr, field_validator

from app.schemas.base import CamelModel
from app.schemas.user import UserSummary


class TeamMemberOut(CamelModel):
    """Member slot with the user profile populated"""
    user: UserSummary
    role: Literal["owner", "admin", "collaborator"]
    invited_by: Optional[UserSummary] = None
    joined_at: Optional[datetime] = None


class InviteIn(CamelModel):
    """Invite by email; the role is recorded but members always join as collaborator"""
    email: EmailStr
    role: Literal["admin", "collaborator"] = "collaborator"

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class RoleUpdate(CamelModel):
    role: Literal["admin", "collaborator"]


class InvitationTeam(CamelModel):
    id: int
    name: str
    description: Optional[str] = None


class InvitationOut(CamelModel):
    id: int
    team: InvitationTeam
    invited_by: Optional[UserSummary] = None
    invited_at: datetime
    status: Literal["pending", "accepted", "declined"]


class InviteResponse(CamelModel):
    message: str
    invitation: InvitationOut
