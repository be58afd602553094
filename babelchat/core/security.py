# babelchat/core/security.py
"""
Access token verification.

Tokens are issued by the auth provider (Supabase) and signed with HS256.
The ``sub`` claim is the user id. HTTP routes take the token from the
``Authorization: Bearer`` header, the WebSocket from the ``token`` query
parameter.
"""
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from babelchat.core import state
from babelchat.core.config import settings
from babelchat.core.errors import AuthenticationRequired
from babelchat.core.logging import get_logger
from babelchat.models.models import Profile

logger = get_logger(__name__)

ALGORITHMS = ["HS256"]


def decode_token(token: Optional[str]) -> Dict[str, Any]:
    """
    Verify a token and return its claims.

    Raises:
        AuthenticationRequired: if the token is missing, invalid or expired
    """
    if not token:
        raise AuthenticationRequired()
    if not settings.SUPABASE_JWT_SECRET:
        logger.error("SUPABASE_JWT_SECRET is not configured; rejecting token")
        raise AuthenticationRequired("Authentication is not configured")

    try:
        claims = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=ALGORITHMS,
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.info("Rejected token: %s", e)
        raise AuthenticationRequired("Invalid or expired token") from e

    if not claims.get("sub"):
        raise AuthenticationRequired("Token has no subject")
    return claims


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def profile_from_claims(claims: Dict[str, Any]) -> Profile:
    """Load the user's profile, creating it on the first authenticated visit."""
    metadata = claims.get("user_metadata") or {}
    email = claims.get("email") or ""
    display_name = metadata.get("display_name") or email.split("@")[0] or "Anonymous"
    return await state.profiles.get_or_create(
        claims["sub"], display_name, metadata.get("preferred_language")
    )


async def get_current_user(request: Request) -> Dict[str, Any]:
    """
    Claims of the authenticated user.
    Use as dependency for protected endpoints.
    """
    try:
        return decode_token(bearer_token(request))
    except AuthenticationRequired as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_profile(claims: Dict[str, Any] = Depends(get_current_user)) -> Profile:
    return await profile_from_claims(claims)
