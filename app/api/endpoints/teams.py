"""
Teams API Endpoints

Team CRUD, invitations, membership changes and ownership transfer.
Capability checks on team-scoped routes go through ``require_permission``.
"""

from typing import Dict, List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user, get_db, require_permission
from app.core.permissions import Action, Resource, member_role
from app.models.team import Team
from app.models.user import User
from app.schemas.team import TeamActionOut, TeamCreate, TeamOut, TeamUpdate
from app.schemas.team_member import InvitationOut, InviteIn, InviteResponse, RoleUpdate
from app.services import teams as team_service

router = APIRouter()


def present_team(team: Team, user_id: int) -> TeamOut:
    """Team payload with the caller's own role filled in."""
    role = member_role(team, user_id)
    return TeamOut.model_validate(team).model_copy(
        update={"my_role": role.value if role else None}
    )


# ==================== Team CRUD ====================

@router.get("", response_model=List[TeamOut])
async def list_teams(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the active teams the caller belongs to."""
    teams = await team_service.list_teams(db, current_user)
    return [present_team(team, current_user.id) for team in teams]


@router.post("", response_model=TeamOut, status_code=status.HTTP_201_CREATED)
async def create_team(
    data: TeamCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a team.

    The caller becomes its owner and it becomes their current team.
    """
    team = await team_service.create_team(db, current_user, data)
    return present_team(team, current_user.id)


# ==================== Invitations (caller) ====================

@router.get("/invitations", response_model=List[InvitationOut])
async def list_invitations(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Pending invitations addressed to the caller."""
    return await team_service.list_invitations(db, current_user)


@router.post("/invitations/{invitation_id}/accept", response_model=TeamActionOut)
async def accept_invitation(
    invitation_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Join the invitation's team as a collaborator.

    Answers 404 when the invitation is not the caller's or is no longer pending.
    """
    team = await team_service.accept_invitation(db, current_user, invitation_id)
    return {"message": "Invitation accepted", "team": present_team(team, current_user.id)}


@router.post("/invitations/{invitation_id}/decline", response_model=TeamActionOut)
async def decline_invitation(
    invitation_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await team_service.decline_invitation(db, current_user, invitation_id)
    return {"message": "Invitation declined"}


# ==================== Single team ====================

@router.get("/{team_id}", response_model=TeamOut)
async def get_team(
    team_id: int,
    context: Dict = Depends(require_permission(Resource.TEAM, Action.READ)),
):
    """Team with member and creator profiles. Members only."""
    return present_team(context["team"], context["user"].id)


@router.put("/{team_id}", response_model=TeamOut)
async def update_team(
    team_id: int,
    data: TeamUpdate,
    context: Dict = Depends(require_permission(Resource.TEAM, Action.UPDATE)),
    db: AsyncSession = Depends(get_db)
):
    """Rename or re-describe the team. Admins and owner only."""
    team = await team_service.update_team(db, context["team"], context["user"], data)
    return present_team(team, context["user"].id)


@router.post("/{team_id}/invite", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def invite_member(
    team_id: int,
    data: InviteIn,
    context: Dict = Depends(require_permission(Resource.TEAM, Action.INVITE)),
    db: AsyncSession = Depends(get_db)
):
    """
    Invite a registered user by email.

    Fails with 404 for unknown emails and 409 for existing members or a
    pending invitation.
    """
    invitation = await team_service.invite_member(db, context["team"], context["user"], data)
    return {"message": "Invitation sent successfully", "invitation": invitation}


@router.post("/{team_id}/leave", response_model=TeamActionOut)
async def leave_team(
    team_id: int,
    context: Dict = Depends(require_permission(Resource.TEAM, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    """
    Leave the team.

    The owner must transfer ownership first unless they are the last member,
    in which case the team is deactivated.
    """
    team = await team_service.leave_team(db, context["team"], context["user"])
    if team is None:
        return {"message": "Left team; the team has been deactivated"}
    return {"message": "Left team successfully"}


@router.delete("/{team_id}/members/{member_id}", response_model=TeamOut)
async def remove_member(
    team_id: int,
    member_id: int,
    context: Dict = Depends(require_permission(Resource.TEAM, Action.REMOVE)),
    db: AsyncSession = Depends(get_db)
):
    team = await team_service.remove_member(db, context["team"], context["user"], member_id)
    return present_team(team, context["user"].id)


@router.put("/{team_id}/members/{member_id}/role", response_model=TeamOut)
async def change_member_role(
    team_id: int,
    member_id: int,
    data: RoleUpdate,
    context: Dict = Depends(require_permission(Resource.TEAM, Action.MANAGE)),
    db: AsyncSession = Depends(get_db)
):
    """Set a non-owner member's role to admin or collaborator."""
    team = await team_service.change_member_role(db, context["team"], context["user"], member_id, data.role)
    return present_team(team, context["user"].id)


@router.put("/{team_id}/transfer-ownership/{member_id}", response_model=TeamOut)
async def transfer_ownership(
    team_id: int,
    member_id: int,
    context: Dict = Depends(require_permission(Resource.TEAM, Action.TRANSFER)),
    db: AsyncSession = Depends(get_db)
):
    """
    Make another member the owner. Owner only.

    The previous owner becomes an admin.
    """
    team = await team_service.transfer_ownership(db, context["team"], context["user"], member_id)
    return present_team(team, context["user"].id)
