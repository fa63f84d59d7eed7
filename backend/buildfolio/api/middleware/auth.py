"""
Bearer token dependencies. Tokens come from the external auth provider;
use CurrentIdentity for protected routes and OptionalIdentity where a
token only changes what the caller may do.
"""
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from buildfolio.utils.logger import get_logger
from buildfolio.utils.security import AuthIdentity, decode_access_token

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)


async def get_optional_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Optional[AuthIdentity]:
    """Identity from a valid bearer token, or None if absent or invalid."""
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    return decode_access_token(credentials.credentials)


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> AuthIdentity:
    """
    Extract and validate JWT from Authorization header.
    Raises 401 if missing or invalid.
    """
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    identity = decode_access_token(credentials.credentials)
    if not identity:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


# Type aliases for dependency injection
CurrentIdentity = Annotated[AuthIdentity, Depends(get_current_identity)]
OptionalIdentity = Annotated[Optional[AuthIdentity], Depends(get_optional_identity)]
