"""
Identity service: accounts, credentials, profile and soft delete.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import Conflict, Unauthorized, ValidationError
from app.core.security import (
    create_session_token,
    generate_reset_token,
    get_password_hash_async,
    hash_reset_token,
    verify_password_async,
)
from app.helpers.getters import isProductionMode
from app.logging import get_logger
from app.models.password_reset import PasswordReset
from app.models.team import Team
from app.models.team_invitation import TeamInvitation
from app.models.team_member import TeamMember
from app.models.user import User
from app.schemas.auth import Login
from app.schemas.user import PreferencesUpdate, ProfileUpdate, UserCreate
from app.services import teams as team_service

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_RESET_TOKEN = "Invalid or expired reset token"


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Non-deleted user with this email (case-insensitive)."""
    result = await db.execute(
        select(User).where(
            func.lower(User.email) == email.strip().lower(),
            User.is_deleted.is_(False),
        )
    )
    return result.scalars().first()


async def get_active_user(db: AsyncSession, user_id: int) -> Optional[User]:
    result = await db.execute(
        select(User).where(User.id == user_id, User.is_deleted.is_(False))
    )
    return result.scalar_one_or_none()


async def register(db: AsyncSession, data: UserCreate) -> Tuple[User, str]:
    """
    Create an account and issue a session token.

    Raises:
        Conflict: email already used by a non-deleted user
    """
    if await get_user_by_email(db, data.email):
        raise Conflict("User already exists with this email")

    user = User(
        name=data.name,
        email=data.email,
        password=await get_password_hash_async(data.password),
        last_active_at=datetime.now(timezone.utc),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent registration won the race on the active-email index
        await db.rollback()
        raise Conflict("User already exists with this email")

    logger.great("User registered", user_id=user.id)
    return user, create_session_token(user)


async def login(db: AsyncSession, data: Login) -> Tuple[User, str]:
    """
    Verify credentials and issue a session token.

    Unknown email and wrong password fail with the same message.
    """
    user = await get_user_by_email(db, data.email)
    if not user or not await verify_password_async(data.password, user.password):
        logger.warning("Failed login attempt")
        raise Unauthorized(INVALID_CREDENTIALS)

    user.last_active_at = datetime.now(timezone.utc)
    await db.commit()
    return user, create_session_token(user)


async def list_memberships(db: AsyncSession, user: User) -> List[Tuple[Team, str]]:
    """Active teams the user belongs to, with the user's role in each."""
    result = await db.execute(
        select(Team, TeamMember.role)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user.id, Team.is_active.is_(True))
        .order_by(Team.created_at, Team.id)
    )
    return [(team, role) for team, role in result.all()]


async def update_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> Tuple[User, str]:
    """
    Change name, email or password.

    Email and password changes require ``currentPassword``.

    Returns:
        Updated user and a fresh token carrying the new claims
    """
    email_changed = data.email is not None and data.email != user.email
    if (email_changed or data.new_password) and not data.current_password:
        raise ValidationError(
            "Current password is required to change email or password",
            error=[{"field": "currentPassword", "message": "Field required"}],
        )
    if data.current_password and (email_changed or data.new_password):
        if not await verify_password_async(data.current_password, user.password):
            raise ValidationError(
                "Current password is incorrect",
                error=[{"field": "currentPassword", "message": "Current password is incorrect"}],
            )

    if email_changed:
        existing = await get_user_by_email(db, data.email)
        if existing and existing.id != user.id:
            raise Conflict("Email is already in use")
        user.email = data.email

    if data.name is not None:
        user.name = data.name

    if data.new_password:
        user.password = await get_password_hash_async(data.new_password)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Email is already in use")
    logger.info("Profile updated", user_id=user.id, email_changed=email_changed)
    return user, create_session_token(user)


async def update_preferences(db: AsyncSession, user: User, data: PreferencesUpdate) -> User:
    if data.theme is not None:
        user.theme = data.theme
    if data.timezone is not None:
        user.timezone = data.timezone
    if data.notifications is not None:
        if data.notifications.email is not None:
            user.notify_email = data.notifications.email
        if data.notifications.push is not None:
            user.notify_push = data.notifications.push
        if data.notifications.task_reminders is not None:
            user.notify_task_reminders = data.notifications.task_reminders

    await db.commit()
    return user


async def soft_delete(db: AsyncSession, user: User) -> None:
    """
    Flag the account as deleted and detach it from every team.

    The record is kept so task references still resolve. Ownership of any
    team the user owned passes to the next member in one transaction.
    """
    await team_service.detach_user_from_teams(db, user)

    pending = await db.execute(
        select(TeamInvitation).where(
            TeamInvitation.user_id == user.id,
            TeamInvitation.status == "pending",
        )
    )
    now = datetime.now(timezone.utc)
    for invitation in pending.scalars().all():
        invitation.status = "declined"
        invitation.responded_at = now

    user.is_deleted = True
    user.deleted_at = now
    user.current_team_id = None
    await db.commit()

    logger.info("User soft-deleted", user_id=user.id)


# ==================== Password Reset ====================

async def forgot_password(db: AsyncSession, email: str) -> Optional[str]:
    """
    Start a password reset.

    Silently does nothing for unknown emails. Email delivery is out of scope;
    outside production the reset link is logged.

    Returns:
        The raw reset token, or None when no account matched
    """
    user = await get_user_by_email(db, email)
    if not user:
        logger.warning("Password reset requested for unknown email")
        return None

    token = generate_reset_token()
    db.add(PasswordReset(
        user_id=user.id,
        token_hash=hash_reset_token(token),
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
    ))
    await db.commit()

    if not isProductionMode():
        logger.info(
            "Password reset link generated",
            user_id=user.id,
            reset_url=f"{settings.CLIENT_URL}/reset-password/{token}",
        )
    return token


async def reset_password(db: AsyncSession, token: str, password: str) -> Tuple[User, str]:
    """
    Consume a reset token and set a new password.

    Raises:
        ValidationError: token unknown, consumed or expired
    """
    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(PasswordReset).where(PasswordReset.token_hash == hash_reset_token(token))
    )
    reset = result.scalar_one_or_none()
    if not reset or reset.consumed_at is not None or reset.expires_at <= now:
        raise ValidationError(INVALID_RESET_TOKEN)

    user = await get_active_user(db, reset.user_id)
    if not user:
        raise ValidationError(INVALID_RESET_TOKEN)

    user.password = await get_password_hash_async(password)
    user.last_active_at = now
    reset.consumed_at = now
    await db.commit()

    logger.info("Password reset completed", user_id=user.id)
    return user, create_session_token(user)
