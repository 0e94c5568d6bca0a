"""
User account endpoints for the caller's own record.
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user, get_db
from app.core.config import settings
from app.models.user import User
from app.schemas.base import MessageOut
from app.schemas.user import PreferencesUpdate, UserOut
from app.services import identity as identity_service

router = APIRouter()


@router.delete("/me", response_model=MessageOut)
async def delete_me(
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Soft-delete the caller's account.

    The caller leaves every team; owned teams pass to the next admin (or
    collaborator). Tasks keep their references, rendered as a deleted user.
    """
    await identity_service.soft_delete(db, current_user)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"message": "Account deleted successfully"}


@router.patch("/me/preferences", response_model=UserOut)
async def update_preferences(
    data: PreferencesUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Update theme, notification switches or timezone.

    Unknown keys are rejected with 400.
    """
    return await identity_service.update_preferences(db, current_user, data)
