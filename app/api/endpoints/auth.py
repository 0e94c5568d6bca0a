"""
    Authentication Endpoints

    Account registration, login and logout, the caller's profile, and the
    password reset flow. Session tokens are returned in the body and also set
    as an httponly cookie so browser clients can rely on either.

    Endpoints:
    - /register: creates an account and issues a session token.
    - /login: verifies credentials and issues a session token.
    - /token: OAuth2 password flow used by the Swagger "Authorize" button.
    - /logout: clears the session cookie.
    - /me: returns the caller's profile and team memberships.
    - /profile: updates name, email or password.
    - /forgot-password: starts a reset without revealing whether the email exists.
    - /reset-password/{token}: consumes a reset token and sets a new password.
"""
from fastapi import APIRouter, Depends, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import ValidationError as SchemaError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user, get_db
from app.core.config import settings
from app.core.exceptions import Unauthorized
from app.helpers.getters import isProductionMode
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    ForgotPasswordIn,
    Login,
    MeResponse,
    ProfileResponse,
    ResetPasswordIn,
)
from app.schemas.base import MessageOut
from app.schemas.user import ProfileUpdate, UserCreate
from app.services import identity as identity_service

router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a password reset link has been sent"


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=isProductionMode(),
        samesite="strict" if isProductionMode() else "lax",
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(data: UserCreate, response: Response, db: AsyncSession = Depends(get_db)):
    """
    Create an account.

    Fails with 409 when the email is already used by an active account.
    """
    user, token = await identity_service.register(db, data)
    _set_session_cookie(response, token)
    return {"user": user, "token": token}


@router.post("/login", response_model=AuthResponse)
async def login(data: Login, response: Response, db: AsyncSession = Depends(get_db)):
    """
    Authenticate with email and password.

    Unknown email and wrong password both answer 401 "Invalid credentials".
    """
    user, token = await identity_service.login(db, data)
    _set_session_cookie(response, token)
    return {"user": user, "token": token}


@router.post("/token")
async def oauth2_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db)
):
    """
    Standard OAuth2 password flow for the Swagger UI.

    The OAuth2 ``username`` field carries the email.
    """
    try:
        credentials = Login(email=form_data.username, password=form_data.password)
    except SchemaError:
        raise Unauthorized(identity_service.INVALID_CREDENTIALS)
    _, token = await identity_service.login(db, credentials)
    return {"access_token": token, "token_type": "bearer"}


@router.post("/logout", response_model=MessageOut)
async def logout(response: Response):
    """Tokens are stateless; logging out clears the cookie."""
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
async def read_me(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    memberships = await identity_service.list_memberships(db, current_user)
    return {
        "user": current_user,
        "teams": [{"id": team.id, "name": team.name, "role": role} for team, role in memberships],
    }


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
    data: ProfileUpdate,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Update name, email or password.

    Changing email or password requires ``currentPassword``. A new token is
    issued because the token carries the name and email.
    """
    user, token = await identity_service.update_profile(db, current_user, data)
    _set_session_cookie(response, token)
    return {"message": "Profile updated successfully", "user": user, "token": token}


@router.post("/forgot-password", response_model=MessageOut)
async def forgot_password(data: ForgotPasswordIn, db: AsyncSession = Depends(get_db)):
    """Always answers with the same message to avoid account enumeration."""
    await identity_service.forgot_password(db, data.email)
    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.post("/reset-password/{token}", response_model=AuthResponse)
async def reset_password(
    token: str,
    data: ResetPasswordIn,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    user, session_token = await identity_service.reset_password(db, token, data.password)
    _set_session_cookie(response, session_token)
    return {"user": user, "token": session_token}
