"""
Access token handling for the external authentication provider.
The provider signs JWTs with a shared secret; this service only verifies them.
create_access_token exists for local development and tests.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from buildfolio.config import get_settings
from buildfolio.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthIdentity:
    """Authenticated caller as asserted by the provider's token."""

    user_id: str
    email: str | None

    @property
    def normalized_email(self) -> str:
        return (self.email or "").strip().lower()


def create_access_token(
    subject: str,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a provider-shaped access token. Subject is the provider user id."""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"sub": str(subject), "exp": expire, "role": "authenticated"}
    if email:
        to_encode["email"] = email
    if settings.auth_jwt_audience:
        to_encode["aud"] = settings.auth_jwt_audience
    return jwt.encode(
        to_encode,
        settings.auth_jwt_secret,
        algorithm=settings.auth_jwt_algorithm,
    )


def decode_access_token(token: str) -> AuthIdentity | None:
    """Decode and validate an access token. Returns the identity or None."""
    settings = get_settings()
    options = {"verify_aud": settings.auth_jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
            options=options,
        )
    except JWTError as e:
        logger.debug("Access token rejected: %s", e)
        return None
    subject = payload.get("sub")
    if not subject:
        return None
    return AuthIdentity(user_id=str(subject), email=payload.get("email"))
