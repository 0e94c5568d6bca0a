"""
Credential hashing, session tokens and password-reset tokens.

Password hashing sits behind ``PasswordHasher`` so the algorithm or work
factor can be rotated in one place. Session tokens are signed JWTs that carry
everything needed to build a caller context without touching the database.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt
from starlette.concurrency import run_in_threadpool

from app.core.config import settings

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


# ==================== Password Hashing ====================

class PasswordHasher:
    """Interface for one-way password hashing."""

    def hash(self, password: str) -> str:
        raise NotImplementedError

    def verify(self, password: str, hashed: str) -> bool:
        raise NotImplementedError


class BcryptPasswordHasher(PasswordHasher):
    """bcrypt with a configurable cost (2^rounds iterations)."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    @staticmethod
    def _encode(password: str) -> bytes:
        return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(self._encode(password), salt).decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        if not password or not hashed:
            return False
        try:
            return bcrypt.checkpw(self._encode(password), hashed.encode("utf-8"))
        except ValueError:
            # Malformed hash
            return False


password_hasher: PasswordHasher = BcryptPasswordHasher(rounds=settings.BCRYPT_ROUNDS)


def get_password_hash(password: str) -> str:
    return password_hasher.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return password_hasher.verify(plain_password, hashed_password)


async def get_password_hash_async(password: str) -> str:
    """Hash in a worker thread so the event loop keeps serving requests."""
    return await run_in_threadpool(get_password_hash, password)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    """Verify in a worker thread so the event loop keeps serving requests."""
    return await run_in_threadpool(verify_password, plain_password, hashed_password)


# ==================== Session Tokens ====================

@dataclass(frozen=True)
class CallerContext:
    """Identity carried by a verified session token."""

    id: int
    email: Optional[str]
    role: str
    name: Optional[str]


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Sign a JWT with ``iat`` and ``exp`` claims added to ``data``.

    Args:
        data: Claims to embed (``sub`` must be a string)
        expires_delta: Lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded token
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = data.copy()
    to_encode.update({"iat": now, "exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_session_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a session token for a user record."""
    return create_access_token(
        {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role,
            "name": user.name,
        },
        expires_delta=expires_delta,
    )


def decode_access_token(token: str) -> Optional[CallerContext]:
    """
    Verify a session token and build the caller context.

    Pure function of the token and the signing secret.

    Returns:
        CallerContext, or None when the token is invalid, expired or malformed
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

    sub = payload.get("sub")
    if sub is None:
        return None
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        return None

    return CallerContext(
        id=user_id,
        email=payload.get("email"),
        role=payload.get("role", "user"),
        name=payload.get("name"),
    )


# ==================== Password Reset Tokens ====================

def generate_reset_token() -> str:
    """32 random bytes, hex encoded. Only the hash is persisted."""
    return secrets.token_hex(32)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
