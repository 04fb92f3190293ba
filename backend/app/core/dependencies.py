"""
Authentication dependencies for FastAPI.

The identity context is consumed as a verified ``{user_id, role}`` claim.
The core trusts the claim verbatim once the token signature checks out.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backend.app.core.jwt import decode_access_token
from backend.app.core.exceptions import AuthenticationError
from backend.app.models.enums import UserRole

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Checks:
    1. Validates JWT token signature and expiry
    2. Requires a user_id claim
    3. Requires a role claim naming a known role

    Returns:
        Decoded token payload; ``role`` is normalized to a UserRole

    Raises:
        AuthenticationError: 401 if any check fails
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    try:
        role = UserRole(payload.get("role"))
    except ValueError:
        raise AuthenticationError("Invalid role in token")

    return {
        "sub": payload.get("sub"),
        "user_id": user_id,
        "role": role,
    }
