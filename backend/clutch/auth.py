"""
Clutch Backend — Bearer Token Authentication
==============================================

What:  FastAPI dependencies that turn `Authorization: Bearer <jwt>` into a Caller.
Why:   Token issuance and user management live in the auth service; this API
       only verifies the signature and trusts the `sub`/`role` claims verbatim.
How:   python-jose decodes the token with the shared JWT_SECRET.
         - missing header         → 401 AUTHENTICATION_REQUIRED
         - bad signature/expired  → 401 INVALID_TOKEN
         - role not allowed       → 403 INSUFFICIENT_PERMISSIONS
       `admin` passes every role check.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from clutch.config import settings
from clutch.exceptions import AuthenticationError, ForbiddenError, ValidationError
from clutch.services.filters import parse_id

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """The authenticated user on whose behalf a request runs."""

    id: str
    role: str = "user"
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Caller:
    """Verifies the bearer token and returns the caller it identifies."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")

    try:
        claims = jwt.decode(
            credentials.credentials,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.info("Rejected bearer token: %s", str(e))
        raise AuthenticationError("Invalid or expired token", code="INVALID_TOKEN")

    subject = claims.get("sub") or claims.get("userId")
    try:
        user_id = parse_id(subject, "sub")
    except ValidationError:
        raise AuthenticationError("Token subject is not a valid user id", code="INVALID_TOKEN")

    return Caller(
        id=user_id,
        role=str(claims.get("role") or "user"),
        email=claims.get("email"),
    )


def require_roles(*roles: str):
    """
    Builds a dependency that admits only callers holding one of `roles`.

    Example:
        @router.post("/send")
        async def send(caller: Caller = Depends(require_roles("marketing_manager"))):
    """

    async def dependency(caller: Caller = Depends(get_caller)) -> Caller:
        if not caller.is_admin and caller.role not in roles:
            logger.warning(
                "Role '%s' denied; requires one of %s", caller.role, ", ".join(roles)
            )
            raise ForbiddenError(
                message="Insufficient permissions",
                code="INSUFFICIENT_PERMISSIONS",
                context={"required_roles": list(roles)},
            )
        return caller

    return dependency
