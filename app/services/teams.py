"""
Team membership service.

Team-scoped operations assume the caller's capability has been checked by
``require_permission``; rules that depend on the target member (owner slot,
self-removal, transfer target) are enforced here. Every multi-record change
is committed in a single transaction.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Conflict, Forbidden, NotFound, ValidationError
from app.core.permissions import Action, Resource, TeamRole, has_permission, member_role
from app.logging import get_logger
from app.models.team import Team
from app.models.team_invitation import TeamInvitation
from app.models.team_member import TeamMember
from app.models.user import User
from app.schemas.team import TeamCreate, TeamUpdate
from app.schemas.team_member import InviteIn

logger = get_logger(__name__)


async def get_active_team(db: AsyncSession, team_id: int, for_update: bool = False) -> Team:
    """
    Load an active team with members, refreshing any cached copy.

    Args:
        for_update: lock the team row until the transaction ends, so member
            changes are serialized per team

    Raises:
        NotFound: missing or inactive
    """
    query = select(Team).where(Team.id == team_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    team = result.scalar_one_or_none()
    if not team or not team.is_active:
        raise NotFound("Team not found")
    return team


async def list_teams(db: AsyncSession, user: User) -> List[Team]:
    result = await db.execute(
        select(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user.id, Team.is_active.is_(True))
        .order_by(Team.created_at, Team.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().unique().all())


async def _name_taken(db: AsyncSession, user: User, name: str, exclude_team_id: Optional[int] = None) -> bool:
    """True when one of the user's active teams already uses ``name``."""
    query = (
        select(func.count(Team.id))
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(
            TeamMember.user_id == user.id,
            Team.is_active.is_(True),
            Team.name == name,
        )
    )
    if exclude_team_id is not None:
        query = query.where(Team.id != exclude_team_id)
    return (await db.execute(query)).scalar() > 0


async def create_team(db: AsyncSession, user: User, data: TeamCreate) -> Team:
    """
    Create a team owned by the caller and make it their current team.

    Raises:
        ValidationError: blank name
        Conflict: the caller already has a team with this name
    """
    if not data.name:
        raise ValidationError("Team name is required")
    if await _name_taken(db, user, data.name):
        raise Conflict("You already have a team with this name")

    team = Team(name=data.name, description=data.description, created_by_id=user.id)
    team.members.append(TeamMember(user_id=user.id, role=TeamRole.OWNER.value))
    db.add(team)
    await db.flush()

    user.current_team_id = team.id
    await db.commit()

    logger.great("Team created", team_id=team.id, user_id=user.id)
    return await get_active_team(db, team.id)


async def update_team(db: AsyncSession, team: Team, user: User, data: TeamUpdate) -> Team:
    if data.name is not None:
        if not data.name:
            raise ValidationError("Team name is required")
        if data.name != team.name and await _name_taken(db, user, data.name, exclude_team_id=team.id):
            raise Conflict("You already have a team with this name")
        team.name = data.name
    if data.description is not None:
        team.description = data.description

    await db.commit()
    return await get_active_team(db, team.id)


# ==================== Invitations ====================

async def invite_member(db: AsyncSession, team: Team, inviter: User, data: InviteIn) -> TeamInvitation:
    """
    Record a pending invitation on the invitee.

    Raises:
        NotFound: no active user with that email
        Conflict: already a member, or an invitation is already pending
    """
    result = await db.execute(
        select(User).where(
            func.lower(User.email) == data.email,
            User.is_deleted.is_(False),
        )
    )
    invitee = result.scalars().first()
    if not invitee:
        raise NotFound("User not found with this email")

    if team.get_member(invitee.id):
        raise Conflict("User is already a member of this team")

    pending = await db.execute(
        select(TeamInvitation.id).where(
            TeamInvitation.user_id == invitee.id,
            TeamInvitation.team_id == team.id,
            TeamInvitation.status == "pending",
        )
    )
    if pending.first():
        raise Conflict("User already has a pending invitation for this team")

    invitation = TeamInvitation(
        user_id=invitee.id,
        team_id=team.id,
        invited_by_id=inviter.id,
        role=data.role,
    )
    db.add(invitation)
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent invite won the race on the pending-invitation index
        await db.rollback()
        raise Conflict("User already has a pending invitation for this team")

    logger.info("Invitation sent", team_id=team.id, invitee_id=invitee.id, inviter_id=inviter.id)
    return await _reload_invitation(db, invitation.id)


async def _reload_invitation(db: AsyncSession, invitation_id: int) -> TeamInvitation:
    result = await db.execute(
        select(TeamInvitation)
        .where(TeamInvitation.id == invitation_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def list_invitations(db: AsyncSession, user: User) -> List[TeamInvitation]:
    """Pending invitations of the caller for teams that are still active."""
    result = await db.execute(
        select(TeamInvitation)
        .join(Team, Team.id == TeamInvitation.team_id)
        .where(
            TeamInvitation.user_id == user.id,
            TeamInvitation.status == "pending",
            Team.is_active.is_(True),
        )
        .order_by(TeamInvitation.invited_at.desc(), TeamInvitation.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _pending_invitation(db: AsyncSession, user: User, invitation_id: int) -> TeamInvitation:
    result = await db.execute(
        select(TeamInvitation).where(
            TeamInvitation.id == invitation_id,
            TeamInvitation.user_id == user.id,
            TeamInvitation.status == "pending",
        )
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise NotFound("Invitation not found or already processed")
    return invitation


async def accept_invitation(db: AsyncSession, user: User, invitation_id: int) -> Team:
    """
    Join the team as a collaborator and mark the invitation accepted.

    Raises:
        NotFound: invitation missing, not the caller's, not pending, or team inactive
    """
    invitation = await _pending_invitation(db, user, invitation_id)
    try:
        team = await get_active_team(db, invitation.team_id)
    except NotFound:
        raise NotFound("Invitation not found or already processed")

    if not team.get_member(user.id):
        team.members.append(TeamMember(
            user_id=user.id,
            role=TeamRole.COLLABORATOR.value,
            invited_by_id=invitation.invited_by_id,
        ))

    invitation.status = "accepted"
    invitation.responded_at = datetime.now(timezone.utc)
    if user.current_team_id is None:
        user.current_team_id = team.id

    await db.commit()
    logger.info("Invitation accepted", team_id=team.id, user_id=user.id)
    return await get_active_team(db, team.id)


async def decline_invitation(db: AsyncSession, user: User, invitation_id: int) -> TeamInvitation:
    invitation = await _pending_invitation(db, user, invitation_id)
    invitation.status = "declined"
    invitation.responded_at = datetime.now(timezone.utc)
    await db.commit()
    return invitation


# ==================== Membership ====================

def _require_member(team: Team, user_id: int) -> TeamMember:
    member = team.get_member(user_id)
    if not member:
        raise NotFound("Member not found in this team")
    return member


async def _lock_team(db: AsyncSession, team: Team, actor: User, action: Optional[Action] = None) -> Team:
    """
    Reload ``team`` under a row lock and re-check the actor's capability.

    Another request may have changed the roster between the permission
    dependency and this point; the checks below always see the locked state.

    Raises:
        NotFound: team deactivated meanwhile
        Forbidden: actor lost the capability meanwhile
    """
    locked = await get_active_team(db, team.id, for_update=True)
    if action is not None and not has_permission(member_role(locked, actor.id), Resource.TEAM, action):
        raise Forbidden(f"Insufficient permissions: {action.value} on {Resource.TEAM.value}")
    return locked


async def _commit_roster(db: AsyncSession, team_id: int) -> None:
    """Commit a member change, mapping a lost race on the owner index to 409."""
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Concurrent ownership change rejected", team_id=team_id)
        raise Conflict("Team membership was changed by another request, please retry")


async def _clear_current_team(db: AsyncSession, user_id: int, team_id: int) -> None:
    user = await db.get(User, user_id)
    if user is not None and user.current_team_id == team_id:
        user.current_team_id = None


async def remove_member(db: AsyncSession, team: Team, actor: User, member_user_id: int) -> Team:
    """
    Remove another member from the team.

    Raises:
        NotFound: target is not a member
        ValidationError: target is the caller or the owner
    """
    team = await _lock_team(db, team, actor, Action.REMOVE)
    member = _require_member(team, member_user_id)
    if member.user_id == actor.id:
        raise ValidationError("Use leave to remove yourself from the team")
    if member.role == TeamRole.OWNER.value:
        raise ValidationError("The team owner cannot be removed")

    team.members.remove(member)
    await _clear_current_team(db, member_user_id, team.id)
    await _commit_roster(db, team.id)

    logger.info("Member removed", team_id=team.id, user_id=member_user_id, actor_id=actor.id)
    return await get_active_team(db, team.id)


async def leave_team(db: AsyncSession, team: Team, user: User) -> Optional[Team]:
    """
    Leave a team. The team is deactivated when its last member leaves.

    Raises:
        ValidationError: the owner tries to leave while others remain

    Returns:
        The team, or None when it was deactivated
    """
    team = await _lock_team(db, team, user)
    member = _require_member(team, user.id)
    others = [m for m in team.members if m.user_id != user.id]
    if member.role == TeamRole.OWNER.value and others:
        raise ValidationError("Transfer ownership before leaving the team")

    team.members.remove(member)
    if user.current_team_id == team.id:
        user.current_team_id = None
    if not others:
        team.is_active = False

    await _commit_roster(db, team.id)
    logger.info("Member left team", team_id=team.id, user_id=user.id, deactivated=not others)
    if not others:
        return None
    return await get_active_team(db, team.id)


async def change_member_role(db: AsyncSession, team: Team, actor: User, member_user_id: int, role: str) -> Team:
    """
    Promote or demote a non-owner member between admin and collaborator.

    Raises:
        NotFound: target is not a member
        ValidationError: target is the owner, or the change would leave no manager
    """
    team = await _lock_team(db, team, actor, Action.MANAGE)
    member = _require_member(team, member_user_id)
    if member.role == TeamRole.OWNER.value:
        raise ValidationError("Use transfer ownership to change the owner's role")

    if role == TeamRole.COLLABORATOR.value and member.role == TeamRole.ADMIN.value:
        managers = [
            m for m in team.members
            if m.role in (TeamRole.OWNER.value, TeamRole.ADMIN.value) and m.user_id != member.user_id
        ]
        if not managers:
            raise ValidationError("Cannot demote the last admin while no owner exists")

    member.role = role
    await _commit_roster(db, team.id)

    logger.info("Member role changed", team_id=team.id, user_id=member_user_id, role=role, actor_id=actor.id)
    return await get_active_team(db, team.id)


async def transfer_ownership(db: AsyncSession, team: Team, actor: User, member_user_id: int) -> Team:
    """
    Hand the owner slot to another member; the previous owner becomes admin.

    Both role changes are committed together so the team never has zero or
    two owners.

    Raises:
        Forbidden: the caller no longer owns the team
        NotFound: target is not a member
        Conflict: target already owns the team, or a concurrent transfer won
    """
    team = await _lock_team(db, team, actor, Action.TRANSFER)
    target = _require_member(team, member_user_id)
    if target.role == TeamRole.OWNER.value:
        raise Conflict("User is already the owner of this team")

    current = _require_member(team, actor.id)
    current.role = TeamRole.ADMIN.value
    # The owner index allows one owner row at a time
    await db.flush()
    target.role = TeamRole.OWNER.value
    await _commit_roster(db, team.id)

    logger.great("Ownership transferred", team_id=team.id, from_user=actor.id, to_user=member_user_id)
    return await get_active_team(db, team.id)


def _successor(team: Team, leaving_user_id: int) -> Optional[TeamMember]:
    """Earliest-joined admin, else earliest-joined collaborator."""
    candidates = [m for m in team.members if m.user_id != leaving_user_id]
    for role in (TeamRole.ADMIN.value, TeamRole.COLLABORATOR.value):
        ranked = sorted(
            (m for m in candidates if m.role == role),
            key=lambda m: (m.joined_at, m.id),
        )
        if ranked:
            return ranked[0]
    return None


async def detach_user_from_teams(db: AsyncSession, user: User) -> None:
    """
    Remove the user from every team without committing.

    Owned teams pass to a successor; teams left empty are deactivated.
    """
    result = await db.execute(
        select(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user.id)
        .order_by(Team.id)
        .with_for_update(of=Team)
        .execution_options(populate_existing=True)
    )
    for team in result.scalars().unique().all():
        member = team.get_member(user.id)
        if member is None:
            continue
        successor = None
        if member.role == TeamRole.OWNER.value:
            successor = _successor(team, user.id)
        team.members.remove(member)
        if successor is not None:
            # Delete the old owner row before promoting
            await db.flush()
            successor.role = TeamRole.OWNER.value
            logger.info("Ownership passed on account deletion", team_id=team.id, to_user=successor.user_id)
        if not team.members:
            team.is_active = False
