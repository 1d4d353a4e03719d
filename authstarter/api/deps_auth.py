from typing import Iterable

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from authstarter.core.errors import forbidden, unauthorized
from authstarter.models.user import Role
from authstarter.services.auth_service import AuthService, Principal


bearer = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


async def current_principal(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    auth: AuthService = Depends(get_auth_service),
) -> Principal:
    """
    Authenticate with a Bearer access token bound to a still-valid session.
    Every failure is a plain 401 UNAUTHORIZED.
    """
    if not creds or creds.scheme.lower() != "bearer":
        raise unauthorized()
    return await auth.authenticate(creds.credentials)


def require_role(*allowed: Role):
    """
    Usage:
        principal = Depends(require_role(Role.ADMIN))
    """
    allowed_roles: Iterable[Role] = set(allowed)

    async def dep(principal: Principal = Depends(current_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise forbidden()
        return principal

    return dep
