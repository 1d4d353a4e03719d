from datetime import timedelta
from typing import Generic, Type, TypeVar, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authstarter.core.errors import AppError, ErrorCode
from authstarter.core.security import ensure_aware, hash_token, now_utc, random_token
from authstarter.models.password_reset import PasswordReset
from authstarter.models.verification import EmailVerification

TokenRow = TypeVar("TokenRow", bound=Union[EmailVerification, PasswordReset])


class SingleUseTokens(Generic[TokenRow]):
    """
    Issue and consume hashed, expiring, one-shot tokens for a single purpose.

    Issuing marks every earlier unconsumed token of the user as consumed, so at
    most one live token exists per user. Consumption only ever moves
    `consumed_at` from NULL to a timestamp.
    """

    def __init__(
        self,
        model: Type[TokenRow],
        ttl: timedelta,
        invalid_code: ErrorCode,
        expired_code: ErrorCode,
        label: str,
    ) -> None:
        self.model = model
        self.ttl = ttl
        self.invalid_code = invalid_code
        self.expired_code = expired_code
        self.label = label

    async def issue(self, db: AsyncSession, user_id: UUID) -> str:
        """Create a fresh token row (hash only) and return the raw token for out-of-band delivery."""
        await self._consume_all(db, user_id)
        raw = random_token(32)
        db.add(self.model(user_id=user_id, token_hash=hash_token(raw), expires_at=now_utc() + self.ttl))
        await db.flush()
        return raw

    async def consume(self, db: AsyncSession, raw: str) -> TokenRow:
        """
        Consume `raw` and every sibling token of the same user.

        An expired token is consumed as well and the consumption is committed
        before the error is raised, so it can never be retried.
        """
        model = self.model
        rec = (
            await db.execute(
                select(model)
                .where(model.token_hash == hash_token(raw or ""))
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if rec is None or rec.consumed_at is not None:
            raise AppError(f"Invalid {self.label} token", 400, self.invalid_code)

        now = now_utc()
        claimed = await self._claim(db, rec.id, now)
        if not claimed:
            # lost a race with another consumer of the same token
            raise AppError(f"Invalid {self.label} token", 400, self.invalid_code)

        if ensure_aware(rec.expires_at) <= now:
            await db.commit()
            raise AppError(f"{self.label.capitalize()} token has expired", 400, self.expired_code)

        await self._consume_all(db, rec.user_id, now)
        return rec

    async def _claim(self, db: AsyncSession, token_id: UUID, now) -> bool:
        model = self.model
        result = await db.execute(
            update(model)
            .where(model.id == token_id, model.consumed_at.is_(None))
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _consume_all(self, db: AsyncSession, user_id: UUID, now=None) -> int:
        model = self.model
        result = await db.execute(
            update(model)
            .where(model.user_id == user_id, model.consumed_at.is_(None))
            .values(consumed_at=now or now_utc())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
