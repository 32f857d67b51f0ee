from datetime import timedelta
from typing import Annotated, Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser, UserRole
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now

settings = get_settings()
security = HTTPBearer()

# Lifetime of tokens minted for service-to-service calls
SERVICE_TOKEN_TTL = timedelta(minutes=5)


async def get_current_user(
    request: Request,
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthUser:
    """
    Validate the bearer JWT and return the authenticated user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token.credentials,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            options={"verify_aud": False},
        )
        user = AuthUser(**payload)
    except (JWTError, ValidationError):
        raise credentials_exception

    # Exposed for per-user rate limiting
    request.state.user = user
    return user


def require_roles(*roles: UserRole) -> Callable:
    """
    Build a dependency that only admits users holding one of ``roles``.
    """

    async def _check(
        current_user: Annotated[AuthUser, Depends(get_current_user)]
    ) -> AuthUser:
        if not current_user.has_role(*roles):
            allowed = ", ".join(r.value for r in roles)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires one of the roles: {allowed}",
            )
        return current_user

    return _check


def _service_role_jwt(calling_service: str) -> str:
    """Mint a short-lived service-role token for internal calls."""
    now = utc_now()
    payload = {
        "sub": calling_service,
        "role": "service_role",
        "iat": int(now.timestamp()),
        "exp": int((now + SERVICE_TOKEN_TTL).timestamp()),
    }
    return jwt.encode(
        payload, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM
    )
