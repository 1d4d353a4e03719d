"""
Registration, login, refresh rotation, logout, email verification and
password reset over the relational store.

Every public operation opens its own AsyncSession and commits once. Where a
failure must leave a trace (failed-login bookkeeping, reuse detection, expired
sessions) the bookkeeping is committed before the error is raised.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.concurrency import run_in_threadpool

from authstarter.core.config import Settings
from authstarter.core.errors import AppError, ErrorCode, TokenExpired, unauthorized, validation_error
from authstarter.core.security import (
    check_password_policy, hash_password, hash_token, normalize_email, now_utc,
    password_needs_rehash, token_matches, verify_password,
)
from authstarter.core.tokens import TokenCodec
from authstarter.models.password_reset import PasswordReset
from authstarter.models.session import UserSession
from authstarter.models.user import Role, User
from authstarter.models.verification import EmailVerification
from authstarter.services.login_attempts import LoginAttemptTracker
from authstarter.services.mailer import EmailDispatcher, Mailer
from authstarter.services.single_use_tokens import SingleUseTokens

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class RegisterResult:
    email_verification_required: bool
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


@dataclass(frozen=True)
class SessionInfo:
    id: UUID
    created_at: datetime
    updated_at: datetime
    valid: bool
    ip: Optional[str]
    user_agent: Optional[str]
    current: bool


@dataclass(frozen=True)
class Principal:
    user_id: UUID
    session_id: UUID
    role: Role


def _invalid_credentials() -> AppError:
    return AppError("Invalid email or password", 401, ErrorCode.INVALID_CREDENTIALS)


def _session_invalid() -> AppError:
    return AppError("Session is no longer valid", 401, ErrorCode.SESSION_INVALID)


class AuthService:
    def __init__(
        self,
        sessions: async_sessionmaker,
        codec: TokenCodec,
        settings: Settings,
        mailer: Mailer,
        dispatcher: Optional[EmailDispatcher] = None,
    ) -> None:
        self._sessions = sessions
        self.codec = codec
        self.settings = settings
        self.mailer = mailer
        self.dispatcher = dispatcher or EmailDispatcher()
        self.attempts = LoginAttemptTracker(
            max_attempts=settings.login_max_attempts,
            window=timedelta(minutes=settings.login_attempt_window_min),
            lockout=timedelta(minutes=settings.login_lockout_min),
        )
        self.verifications: SingleUseTokens[EmailVerification] = SingleUseTokens(
            EmailVerification,
            ttl=timedelta(minutes=settings.email_verify_ttl_min),
            invalid_code=ErrorCode.EMAIL_VERIFICATION_INVALID,
            expired_code=ErrorCode.EMAIL_VERIFICATION_EXPIRED,
            label="verification",
        )
        self.resets: SingleUseTokens[PasswordReset] = SingleUseTokens(
            PasswordReset,
            ttl=timedelta(minutes=settings.password_reset_ttl_min),
            invalid_code=ErrorCode.PASSWORD_RESET_INVALID,
            expired_code=ErrorCode.PASSWORD_RESET_EXPIRED,
            label="password reset",
        )

    # ---------- register ----------

    async def register(self, email: str, password: str) -> RegisterResult:
        email = normalize_email(email or "")
        if "@" not in email:
            raise validation_error("Invalid email address")
        check_password_policy(password)
        password_hash = await run_in_threadpool(hash_password, password)
        verification_required = self.settings.email_verification_required

        async with self._sessions() as db:
            user = User(
                email=email,
                password_hash=password_hash,
                role=Role.USER,
                email_verified_at=None if verification_required else now_utc(),
            )
            db.add(user)
            try:
                await db.flush()
            except IntegrityError:
                await db.rollback()
                raise AppError("Email is already registered", 409, ErrorCode.EMAIL_TAKEN)

            if verification_required:
                raw = await self.verifications.issue(db, user.id)
                await db.commit()
                logger.info("User registered, verification pending", extra={"user_id": user.id})
                self.dispatcher.dispatch(self.mailer.send_verification_email(email, raw), "verification")
                return RegisterResult(email_verification_required=True)

            pair = await self._open_session(db, user.id)
            await db.commit()
            logger.info("User registered", extra={"user_id": user.id})
            return RegisterResult(False, pair.access_token, pair.refresh_token)

    # ---------- login ----------

    async def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str],
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        email = normalize_email(email or "")
        async with self._sessions() as db:
            # a locked key is rejected before credentials are looked at
            await self.attempts.ensure_not_locked(db, email, ip_address)

            user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
            ok = await run_in_threadpool(verify_password, password or "", user.password_hash if user else None)
            if ok and self.settings.email_verification_required and user.email_verified_at is None:
                ok = False

            if not ok:
                await self.attempts.record_failure(db, email, ip_address, user.id if user else None)
                await db.commit()
                logger.info("Login failed", extra={"user_id": user.id if user else None})
                raise _invalid_credentials()

            if password_needs_rehash(user.password_hash):
                user.password_hash = await run_in_threadpool(hash_password, password)

            await self.attempts.clear(db, email, ip_address)
            pair = await self._open_session(db, user.id, ip_address, user_agent)
            await db.commit()
            logger.info("Login succeeded", extra={"user_id": user.id})
            return pair

    # ---------- refresh ----------

    async def refresh(self, refresh_token: str) -> TokenPair:
        if not refresh_token:
            raise AppError("Refresh token is required", 400, ErrorCode.REFRESH_REQUIRED)

        fallback_session_id = self._session_id_hint(refresh_token)
        try:
            claims = self.codec.verify_refresh(refresh_token)
        except TokenExpired:
            # only reached once the signature has been checked, so the hint is authentic
            if fallback_session_id is not None:
                async with self._sessions() as db:
                    await self._invalidate(db, UserSession.id == fallback_session_id)
                    await db.commit()
                logger.info("Expired refresh token, session invalidated", extra={"session_id": fallback_session_id})
            raise AppError("Session has expired", 401, ErrorCode.SESSION_EXPIRED)

        async with self._sessions() as db:
            sess = await db.get(UserSession, claims.session_id)
            if sess is None or not sess.valid or sess.user_id != claims.user_id:
                raise _session_invalid()

            if not token_matches(refresh_token, sess.refresh_token_hash):
                count = await self._invalidate(db, UserSession.user_id == sess.user_id)
                await db.commit()
                logger.warning(
                    "Refresh token reuse detected, all sessions invalidated",
                    extra={"user_id": sess.user_id, "session_id": sess.id, "count": count},
                )
                raise AppError("Refresh token reuse detected", 401, ErrorCode.REFRESH_REUSE)

            pair = self._mint(sess.user_id, sess.id)
            sess.refresh_token_hash = hash_token(pair.refresh_token)
            sess.updated_at = now_utc()
            await db.commit()
            return pair

    # ---------- logout ----------

    async def logout(self, refresh_token: str) -> None:
        try:
            claims = self.codec.verify_refresh(refresh_token or "")
        except AppError:
            return
        async with self._sessions() as db:
            await self._invalidate(
                db, UserSession.id == claims.session_id, UserSession.user_id == claims.user_id
            )
            await db.commit()

    async def logout_all(self, user_id: UUID) -> int:
        async with self._sessions() as db:
            count = await self._invalidate(db, UserSession.user_id == user_id)
            await db.commit()
        logger.info("Logged out of all sessions", extra={"user_id": user_id, "count": count})
        return count

    # ---------- email verification ----------

    async def verify_email(self, raw_token: str) -> None:
        async with self._sessions() as db:
            rec = await self.verifications.consume(db, raw_token)
            user = await db.get(User, rec.user_id)
            if user is not None and user.email_verified_at is None:
                user.email_verified_at = now_utc()
            await db.commit()
        logger.info("Email verified", extra={"user_id": rec.user_id})

    # ---------- password reset ----------

    async def request_password_reset(self, email: str) -> None:
        """Same outcome whether or not the address belongs to a user."""
        email = normalize_email(email or "")
        async with self._sessions() as db:
            user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
            if user is None:
                return
            raw = await self.resets.issue(db, user.id)
            await db.commit()
        self.dispatcher.dispatch(self.mailer.send_password_reset_email(email, raw), "password-reset")

    async def reset_password(self, raw_token: str, new_password: str) -> None:
        check_password_policy(new_password)
        password_hash = await run_in_threadpool(hash_password, new_password)
        async with self._sessions() as db:
            rec = await self.resets.consume(db, raw_token)
            user = await db.get(User, rec.user_id)
            if user is None:
                raise AppError("Invalid password reset token", 400, ErrorCode.PASSWORD_RESET_INVALID)
            user.password_hash = password_hash
            count = await self._invalidate(db, UserSession.user_id == user.id)
            await db.commit()
        logger.info("Password reset, sessions invalidated", extra={"user_id": rec.user_id, "count": count})

    # ---------- sessions ----------

    async def list_sessions(self, user_id: UUID, current_session_id: Optional[UUID] = None) -> List[SessionInfo]:
        async with self._sessions() as db:
            rows = (
                await db.execute(
                    select(UserSession)
                    .where(UserSession.user_id == user_id)
                    .order_by(UserSession.created_at.desc())
                )
            ).scalars().all()
        return [
            SessionInfo(
                id=s.id,
                created_at=s.created_at,
                updated_at=s.updated_at,
                valid=s.valid,
                ip=s.ip,
                user_agent=s.user_agent,
                current=current_session_id is not None and s.id == current_session_id,
            )
            for s in rows
        ]

    async def authenticate(self, access_token: str) -> Principal:
        try:
            claims = self.codec.verify_access(access_token or "")
        except AppError:
            raise unauthorized()
        async with self._sessions() as db:
            sess = await db.get(UserSession, claims.session_id)
            if sess is None or not sess.valid or sess.user_id != claims.user_id:
                raise unauthorized()
            user = await db.get(User, claims.user_id)
            if user is None:
                raise unauthorized()
            return Principal(user_id=user.id, session_id=sess.id, role=Role(user.role))

    async def get_user(self, user_id: UUID) -> Optional[User]:
        async with self._sessions() as db:
            return await db.get(User, user_id)

    # ---------- helpers ----------

    def _mint(self, user_id: UUID, session_id: UUID) -> TokenPair:
        return TokenPair(
            access_token=self.codec.sign_access(user_id, session_id),
            refresh_token=self.codec.sign_refresh(user_id, session_id),
        )

    async def _open_session(
        self,
        db: AsyncSession,
        user_id: UUID,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> TokenPair:
        session_id = uuid4()
        pair = self._mint(user_id, session_id)
        db.add(
            UserSession(
                id=session_id,
                user_id=user_id,
                refresh_token_hash=hash_token(pair.refresh_token),
                valid=True,
                ip=ip_address[:64] if ip_address else None,
                user_agent=user_agent[:255] if user_agent else None,
            )
        )
        await db.flush()
        return pair

    @staticmethod
    async def _invalidate(db: AsyncSession, *criteria) -> int:
        result = await db.execute(
            update(UserSession)
            .where(*criteria, UserSession.valid.is_(True))
            .values(valid=False, refresh_token_hash=None, updated_at=now_utc())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _session_id_hint(self, token: str) -> Optional[UUID]:
        claims = self.codec.decode_unverified(token)
        if not claims:
            return None
        try:
            return UUID(str(claims.get("sid")))
        except ValueError:
            return None
