"""
Bearer-token authentication.

Tokens are issued by the account service; here they are only verified and
reduced to the user id they carry in the ``user_id`` claim.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .deps import get_settings
from .errors import Unauthorized
from .settings import SocialSettings

oauth2_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN_EXPIRE_SECONDS = 60 * 60


class Authenticator:
    def __init__(self, settings: SocialSettings) -> None:
        self.settings = settings

    def current_user(self, token: str | None) -> str:
        """
        Resolve a bearer token to a user id.

        Raises:
            Unauthorized: missing, expired or malformed token
        """
        if not token:
            raise Unauthorized("Authentication required", operation="current_user")
        if not self.settings.jwt_secret_key:
            raise Unauthorized("Token verification is not configured", operation="current_user")

        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise Unauthorized("Token expired", operation="current_user")
        except jwt.InvalidTokenError:
            raise Unauthorized("Invalid token", operation="current_user")

        user_id = payload.get("user_id")
        if not user_id or not isinstance(user_id, str):
            raise Unauthorized("Invalid token: missing user_id", operation="current_user")
        return user_id


def create_access_token(
    user_id: str, settings: SocialSettings, expires_in_seconds: int | None = None
) -> str:
    """Create a JWT access token for a user (tooling and tests)."""
    if expires_in_seconds is None:
        expires_in_seconds = ACCESS_TOKEN_EXPIRE_SECONDS

    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user_id,
        "exp": now + timedelta(seconds=expires_in_seconds),
        "iat": now,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def get_authenticator(settings: SocialSettings = Depends(get_settings)) -> Authenticator:
    return Authenticator(settings)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    authenticator: Authenticator = Depends(get_authenticator),
) -> str:
    """Current user id from the Bearer token."""
    return authenticator.current_user(credentials.credentials if credentials else None)


def get_current_user_id_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(oauth2_scheme),
    authenticator: Authenticator = Depends(get_authenticator),
) -> str | None:
    """Current user id if a valid token was sent, None otherwise."""
    if credentials is None:
        return None
    try:
        return authenticator.current_user(credentials.credentials)
    except Unauthorized:
        return None
