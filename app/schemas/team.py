"""
Pydantic schemas for Team entities.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from app.schemas.base import CamelModel
from app.schemas.team_member import TeamMemberOut
from app.schemas.user import UserSummary


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class TeamCreate(CamelModel):
    """Schema for creating a new team"""
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=200)

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class TeamUpdate(CamelModel):
    """Schema for updating a team"""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=200)

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class TeamOut(CamelModel):
    """Team with members and creator populated"""
    id: int
    name: str
    description: Optional[str] = None
    created_by: Optional[UserSummary] = None
    is_active: bool
    created_at: datetime
    members: List[TeamMemberOut] = []
    member_count: int = 0
    my_role: Optional[str] = None


class TeamSummary(CamelModel):
    id: int
    name: str
    description: Optional[str] = None


class TeamActionOut(CamelModel):
    message: str
    team: Optional[TeamOut] = None
