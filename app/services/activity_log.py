import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity_log import ActivityLogEntry

logger = logging.getLogger(__name__)


class ActivityLog:
    """Append-only audit sink.

    Entries are written after the operation they describe has committed, so a
    failing write only loses the entry itself and is never raised to callers.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        user_id: Optional[int],
        action: str,
        target_id: Optional[int] = None,
        detail: Optional[Any] = None
    ) -> None:
        try:
            await self._persist(ActivityLogEntry(
                user_id=user_id,
                action=action,
                target_id=target_id,
                detail=detail
            ))
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(
                "Activity log write failed (user=%s action=%s target=%s): %s",
                user_id, action, target_id, e
            )

    async def _persist(self, entry: ActivityLogEntry) -> None:
        self.db.add(entry)
        await self.db.commit()
