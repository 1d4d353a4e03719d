from uuid import UUID

from fastapi import APIRouter, Depends

from authstarter.api.deps_auth import current_principal, get_auth_service, require_role
from authstarter.core.errors import AppError, ErrorCode, forbidden
from authstarter.models.user import Role
from authstarter.schemas.auth import StatusOut, UserOut
from authstarter.services.auth_service import AuthService, Principal

router = APIRouter(tags=["protected"])


@router.get("/admin/ping", response_model=StatusOut, summary="Admin-only liveness probe")
async def admin_ping(_: Principal = Depends(require_role(Role.ADMIN))):
    return StatusOut()


@router.get("/users/{user_id}", response_model=UserOut, summary="Read a user (self or admin)")
async def get_user(
    user_id: UUID,
    principal: Principal = Depends(current_principal),
    auth: AuthService = Depends(get_auth_service),
):
    if principal.user_id != user_id and principal.role != Role.ADMIN:
        raise forbidden()
    user = await auth.get_user(user_id)
    if user is None:
        raise AppError("User not found", 404, ErrorCode.USER_NOT_FOUND)
    return UserOut.model_validate(user)
