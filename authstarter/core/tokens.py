"""
Access/refresh bearer tokens.

Both kinds are HS256 JWTs carrying the user id (`sub`) and the session id
(`sid`). They are signed with different secrets so one can never be replayed
as the other. Refresh tokens also carry a fresh `jti` so every issuance yields
a distinct string, which the session store relies on when rotating hashes.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID, uuid4

import jwt

from authstarter.core.config import Settings
from authstarter.core.errors import ErrorCode, TokenExpired, TokenInvalid
from authstarter.core.security import now_utc

ALGO = "HS256"
ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    user_id: UUID
    session_id: UUID


class TokenCodec:
    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        issuer: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self._issuer = issuer
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], datetime] = now_utc) -> "TokenCodec":
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            issuer=settings.jwt_issuer,
            access_ttl=timedelta(minutes=settings.access_ttl_min),
            refresh_ttl=timedelta(days=settings.refresh_ttl_days),
            clock=clock,
        )

    @property
    def refresh_ttl(self) -> timedelta:
        return self._refresh_ttl

    def sign_access(self, user_id: UUID, session_id: UUID) -> str:
        return self._sign(ACCESS, user_id, session_id, self._access_ttl, self._access_secret)

    def sign_refresh(self, user_id: UUID, session_id: UUID) -> str:
        return self._sign(
            REFRESH, user_id, session_id, self._refresh_ttl, self._refresh_secret, jti=uuid4().hex
        )

    def verify_access(self, token: str) -> TokenClaims:
        return self._verify(
            token, ACCESS, self._access_secret,
            invalid=ErrorCode.JWT_ACCESS_INVALID, expired=ErrorCode.JWT_ACCESS_EXPIRED,
        )

    def verify_refresh(self, token: str) -> TokenClaims:
        return self._verify(
            token, REFRESH, self._refresh_secret,
            invalid=ErrorCode.JWT_REFRESH_INVALID, expired=ErrorCode.JWT_REFRESH_EXPIRED,
        )

    @staticmethod
    def decode_unverified(token: str) -> Optional[dict]:
        """Read claims without checking signature or expiry. Never trust the result for auth."""
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError:
            return None
        return claims if isinstance(claims, dict) else None

    # ---- internals ----

    def _sign(
        self,
        typ: str,
        user_id: UUID,
        session_id: UUID,
        ttl: timedelta,
        secret: str,
        jti: Optional[str] = None,
    ) -> str:
        issued = self._clock()
        payload = {
            "iss": self._issuer,
            "sub": str(user_id),
            "sid": str(session_id),
            "typ": typ,
            "iat": int(issued.timestamp()),
            "exp": int((issued + ttl).timestamp()),
        }
        if jti:
            payload["jti"] = jti
        return jwt.encode(payload, secret, algorithm=ALGO)

    def _verify(
        self, token: str, typ: str, secret: str, *, invalid: ErrorCode, expired: ErrorCode
    ) -> TokenClaims:
        label = "access" if typ == ACCESS else "refresh"
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[ALGO],
                issuer=self._issuer,
                options={"require": ["exp", "sub", "sid"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired(f"Expired {label} token", expired)
        except jwt.PyJWTError:
            raise TokenInvalid(f"Invalid {label} token", invalid)

        if payload.get("typ") != typ:
            raise TokenInvalid(f"Invalid {label} token", invalid)
        try:
            return TokenClaims(user_id=UUID(str(payload["sub"])), session_id=UUID(str(payload["sid"])))
        except ValueError:
            raise TokenInvalid(f"Invalid {label} token", invalid)
