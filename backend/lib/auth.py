"""
Request authentication

Resolves the bearer token on each request to a profile-backed User.
"""
from typing import Optional

from fastapi import Header, HTTPException

from nursing_study_tutor.errors import AuthError
from nursing_study_tutor.identity import IdentityService, User, UserRole, require_role

from .supabase_client import get_supabase_client, supabase_configured

_identity: Optional[IdentityService] = None


def get_identity_service() -> IdentityService:
    global _identity
    if _identity is None:
        _identity = IdentityService(get_supabase_client())
    return _identity


async def get_current_user(authorization: Optional[str] = Header(None)) -> User:
    """
    Validate the Authorization header and return the user.

    Raises:
        HTTPException: 401 when the header is missing or the token is invalid,
            503 when Supabase is not configured
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    if not supabase_configured():
        raise HTTPException(status_code=503, detail="Authentication backend is not configured")

    token = authorization[len("Bearer "):]
    try:
        return await get_identity_service().get_user_for_token(token)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))


def require_lecturer(user: User):
    """Raise 403 unless the user is a lecturer."""
    try:
        require_role(user, UserRole.LECTURER)
    except AuthError as e:
        raise HTTPException(status_code=403, detail=str(e))
