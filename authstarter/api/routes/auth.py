from fastapi import APIRouter, Depends, Request, Response, status

from authstarter.api.deps_auth import current_principal, get_auth_service
from authstarter.schemas.auth import (
    LoginBody, RefreshBody, RegisterBody, RegisterOut, RequestPasswordResetBody,
    ResetPasswordBody, SessionListOut, SessionOut, StatusOut, TokenPairOut, VerifyEmailBody,
)
from authstarter.services.auth_service import AuthService, Principal


router = APIRouter(prefix="/auth", tags=["auth"])


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


# ---------- REGISTER ----------
@router.post(
    "/register",
    response_model=RegisterOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
    description="""
Creates a user with a **unique email**.

When email verification is required, a verification email is sent and no
tokens are issued. Otherwise the user is signed in right away.
""",
)
async def register(body: RegisterBody, auth: AuthService = Depends(get_auth_service)):
    result = await auth.register(body.email, body.password)
    return RegisterOut(
        email_verification_required=result.email_verification_required,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
    )


# ---------- LOGIN ----------
@router.post("/login", response_model=TokenPairOut, summary="Sign in with email and password")
async def login(body: LoginBody, request: Request, auth: AuthService = Depends(get_auth_service)):
    pair = await auth.login(
        body.email,
        body.password,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return TokenPairOut(access_token=pair.access_token, refresh_token=pair.refresh_token)


# ---------- REFRESH ----------
@router.post("/refresh", response_model=TokenPairOut, summary="Rotate the refresh token")
async def refresh(body: RefreshBody, auth: AuthService = Depends(get_auth_service)):
    pair = await auth.refresh(body.refresh_token)
    return TokenPairOut(access_token=pair.access_token, refresh_token=pair.refresh_token)


# ---------- LOGOUT ----------
@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="End the session of a refresh token")
async def logout(body: RefreshBody, auth: AuthService = Depends(get_auth_service)):
    await auth.logout(body.refresh_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- VERIFY EMAIL ----------
@router.post("/verify-email", status_code=status.HTTP_204_NO_CONTENT, summary="Confirm an email address")
async def verify_email(body: VerifyEmailBody, auth: AuthService = Depends(get_auth_service)):
    await auth.verify_email(body.token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- PASSWORD RESET ----------
@router.post(
    "/request-password-reset",
    response_model=StatusOut,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Email a password reset link",
    description="Always answers 202, whether or not the email belongs to an account.",
)
async def request_password_reset(body: RequestPasswordResetBody, auth: AuthService = Depends(get_auth_service)):
    await auth.request_password_reset(body.email)
    return StatusOut()


@router.post("/reset-password", status_code=status.HTTP_204_NO_CONTENT, summary="Set a new password")
async def reset_password(body: ResetPasswordBody, auth: AuthService = Depends(get_auth_service)):
    await auth.reset_password(body.token, body.password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- SESSIONS ----------
@router.get("/sessions", response_model=SessionListOut, summary="List the caller's sessions")
async def list_sessions(
    principal: Principal = Depends(current_principal),
    auth: AuthService = Depends(get_auth_service),
):
    sessions = await auth.list_sessions(principal.user_id, principal.session_id)
    items = [SessionOut.model_validate(s) for s in sessions]
    return SessionListOut(sessions=items, count=len(items))


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT, summary="End every session of the caller")
async def logout_all(
    principal: Principal = Depends(current_principal),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.logout_all(principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
