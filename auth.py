"""Authentication helpers for identity-provider access tokens.

This module provides a FastAPI dependency ``get_current_user`` that:
1. Extracts the ``Authorization: Bearer <access_token>`` header.
2. Verifies the HS256 signature, expiration and audience.
3. Returns a ``UserIdentity`` carrying the token for downstream calls.

In development mode (``SKIP_AUTH=true``) no token is needed and the
environment's mock user is returned instead.
"""
from __future__ import annotations

from typing import Annotated, Optional

import structlog
from fastapi import Depends, Request
from jose import JWTError, jwt
from pydantic import BaseModel

from exceptions import AuthorizationError
from schemas import UserIdentity
from settings import Environment, get_environment, get_settings

logger = structlog.get_logger(__name__)


class TokenPayload(BaseModel):
    sub: str
    exp: int
    aud: Optional[str] = None
    email: Optional[str] = None
    user_metadata: dict = {}


def verify_token(token: str) -> UserIdentity:
    """Verify an access token and return the identity it names.

    Raises AuthorizationError on failure.
    """
    settings = get_settings()
    if not settings.jwt_secret:
        logger.error("JWT secret is not configured")
        raise AuthorizationError("Authentication is not configured")

    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
        )
        payload = TokenPayload.model_validate(claims)
    except (JWTError, ValueError) as exc:
        logger.warning("JWT verification failed", exc=str(exc))
        raise AuthorizationError("Invalid token") from exc

    return UserIdentity(
        id=payload.sub,
        first_name=payload.user_metadata.get("first_name"),
        last_name=payload.user_metadata.get("last_name"),
        access_token=token,
    )


# Helper to extract Authorization header (works with FastAPI DI)
def _get_authorization_header(request: Request) -> Optional[str]:
    return request.headers.get("Authorization")


# --- FastAPI dependency ---
async def get_current_user(
    authorization: Annotated[Optional[str], Depends(_get_authorization_header)],
    environment: Annotated[Environment, Depends(get_environment)],
) -> UserIdentity:
    if environment.skip_auth and environment.mock_user is not None:
        return environment.mock_user

    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthorizationError("Missing bearer token")

    token = authorization.split(" ", 1)[1].strip()
    return verify_token(token)
