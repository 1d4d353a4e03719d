from typing import Annotated, Optional, List
from datetime import datetime
from pydantic import AfterValidator, BaseModel, EmailStr, Field, ConfigDict
from pydantic.alias_generators import to_camel
from uuid import UUID

from authstarter.core.security import PASSWORD_POLICY_MESSAGE, password_meets_policy
from authstarter.models.user import Role


class CamelModel(BaseModel):
    """JSON bodies are camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _policy(v: str) -> str:
    if not password_meets_policy(v):
        raise ValueError(PASSWORD_POLICY_MESSAGE)
    return v


PolicyPassword = Annotated[str, AfterValidator(_policy)]


class RegisterBody(CamelModel):
    email: EmailStr
    password: PolicyPassword


class LoginBody(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshBody(CamelModel):
    # empty string is accepted here and rejected by the service as REFRESH_REQUIRED
    refresh_token: str


class VerifyEmailBody(CamelModel):
    token: str = Field(..., min_length=1, description="Raw verification token from the email link.")


class RequestPasswordResetBody(CamelModel):
    email: EmailStr = Field(..., description="Account email.")


class ResetPasswordBody(CamelModel):
    token: str = Field(..., min_length=1, description="Raw reset token from the email link.")
    password: PolicyPassword = Field(..., description="New password.")


# --- responses ---

class TokenPairOut(CamelModel):
    access_token: str
    refresh_token: str


class RegisterOut(CamelModel):
    email_verification_required: bool
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class StatusOut(BaseModel):
    status: str = "ok"


class SessionOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
    id: UUID
    created_at: datetime
    updated_at: datetime
    valid: bool
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    current: bool


class SessionListOut(BaseModel):
    sessions: List[SessionOut]
    count: int


class UserOut(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
    id: UUID
    email: str
    role: Role
    email_verified_at: Optional[datetime] = None
    created_at: datetime
