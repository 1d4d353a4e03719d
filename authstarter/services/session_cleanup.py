from datetime import datetime, timedelta
from typing import Optional
import logging

from sqlalchemy import delete, or_
from sqlalchemy.ext.asyncio import async_sessionmaker

from authstarter.core.security import now_utc
from authstarter.models.session import UserSession

logger = logging.getLogger(__name__)


async def cleanup_expired_sessions(
    sessions: async_sessionmaker,
    refresh_ttl: timedelta,
    reference: Optional[datetime] = None,
) -> int:
    """
    Delete sessions that were invalidated or have not been refreshed within the
    refresh-token lifetime (any refresh token they hold has expired by now).
    Returns the number of rows removed.
    """
    cutoff = (reference or now_utc()) - refresh_ttl
    async with sessions() as db:
        result = await db.execute(
            delete(UserSession)
            .where(or_(UserSession.valid.is_(False), UserSession.updated_at < cutoff))
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    count = result.rowcount or 0
    logger.info("Session cleanup sweep finished", extra={"count": count})
    return count
