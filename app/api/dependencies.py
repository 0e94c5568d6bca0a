from typing import Dict, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError as SchemaError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import Forbidden, Unauthorized, ValidationError
from app.core.permissions import Action, Resource, has_permission, member_role
from app.core.security import decode_access_token
from app.db.session import SessionAsync
from app.models.user import User
from app.schemas.task import TaskQuery
from app.services import identity as identity_service
from app.services import teams as team_service

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/auth/token",
    description="Session token from /api/auth/login or /api/auth/register",
    auto_error=False,
)

NOT_AUTHORIZED = "Not authorized"


async def get_db():
    async with SessionAsync() as session:
        yield session


def _session_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    if bearer:
        return bearer
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the caller from the session token.

    Missing, invalid or expired tokens and tokens of deleted accounts all
    fail with the same message.
    """
    raw = _session_token(request, token)
    if not raw:
        raise Unauthorized(NOT_AUTHORIZED)

    caller = decode_access_token(raw)
    if caller is None:
        raise Unauthorized(NOT_AUTHORIZED)

    user = await identity_service.get_active_user(db, caller.id)
    if user is None:
        raise Unauthorized(NOT_AUTHORIZED)

    request.state.user = user
    return user


# ==================== Permission Dependencies ====================

async def get_team_member_context(
    team_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> Dict:
    """
    Get team member context for the current user.

    Returns a context dict with user, team and role.

    Raises:
        NotFound: team missing or inactive
        Forbidden: user is not a member of the team
    """
    team = await team_service.get_active_team(db, team_id)
    role = member_role(team, current_user.id)
    if role is None:
        raise Forbidden("You are not a member of this team")

    return {
        "team_id": team_id,
        "team": team,
        "user": current_user,
        "role": role,
    }


def require_permission(resource: Resource, action: Action):
    """
    Factory to create a dependency that checks if user has permission.

    Usage:
        @router.put("/{team_id}")
        async def update_team(
            team_id: int,
            context = Depends(require_permission(Resource.TEAM, Action.UPDATE)),
            db: AsyncSession = Depends(get_db)
        ):
            # Only admins and owners get here
            ...

    Args:
        resource: Resource being accessed
        action: Action being performed

    Returns:
        Dependency function that validates permissions
    """
    async def permission_checker(
        context: Dict = Depends(get_team_member_context)
    ) -> Dict:
        if not has_permission(context["role"], resource, action):
            raise Forbidden(f"Insufficient permissions: {action.value} on {resource.value}")
        return context

    return permission_checker


def get_task_query(request: Request) -> TaskQuery:
    """
    Validate listing query parameters against the filter allowlist.

    Raises:
        ValidationError: unknown key or malformed value
    """
    try:
        return TaskQuery.model_validate(dict(request.query_params))
    except SchemaError as exc:
        details = [
            {
                "field": ".".join(str(part) for part in err["loc"]) or "query",
                "message": "Unknown filter" if err["type"] == "extra_forbidden" else err["msg"],
            }
            for err in exc.errors()
        ]
        first = details[0]
        raise ValidationError(f"{first['field']}: {first['message']}", error=details)
