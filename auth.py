import uuid
from datetime import datetime, timedelta, timezone
from typing import Literal

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from config import (
    JWT_ALGORITHM,
    JWT_AUDIENCE,
    JWT_ISSUER,
    JWT_SECRET_KEY,
    SESSION_TOKEN_EXPIRE_MINUTES,
)
from errors import AuthenticationError, PermissionDeniedError

Role = Literal["user", "admin"]


class TokenPayload(BaseModel):
    """JWT token payload structure."""

    sub: str  # user id
    role: Role
    exp: datetime | None = None  # expiration time

    @property
    def user_id(self) -> int:
        return int(self.sub)


security = HTTPBearer(auto_error=False)


def create_session_token(
    user_id: int,
    role: Role,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed session token.

    Args:
        user_id: The user's database id
        role: Either "user" or "admin"
        expires_delta: Custom expiration time (optional)

    Returns:
        Encoded JWT token string
    """
    now = datetime.now(timezone.utc)

    if expires_delta is not None:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=SESSION_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(user_id),
        "role": role,
        "exp": expire,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }

    return jwt.encode(to_encode, str(JWT_SECRET_KEY), algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> TokenPayload:
    """
    Decode and validate a session token.

    Only the signature and expiry are checked; there is no revocation list,
    so a token stays valid until it expires.

    Raises:
        AuthenticationError: If the token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            str(JWT_SECRET_KEY),
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
        return TokenPayload(**payload)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except (jwt.InvalidTokenError, ValueError):
        raise AuthenticationError("Invalid authentication credentials")


async def get_current_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TokenPayload:
    """
    Dependency to get and validate the bearer token of the current request.

    Raises:
        AuthenticationError: If authorization header is missing or token is invalid
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    return decode_token(credentials.credentials)


async def require_admin(
    token: TokenPayload = Depends(get_current_token),
) -> TokenPayload:
    if token.role != "admin":
        raise PermissionDeniedError("Admin access required")
    return token
