from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assistline.core.repository.base import BaseRepository
from assistline.core.result import DatabaseError, Result, failure, success
from assistline.domain.models import DeclineReason, RequestDecline

logger = logging.getLogger(__name__)


class DeclineRepository(BaseRepository[RequestDecline]):
    def __init__(self, session: AsyncSession):
        super().__init__(RequestDecline, session)

    async def find(self, request_id: int, assistant_id: str) -> Optional[RequestDecline]:
        return await self.session.scalar(
            select(RequestDecline).where(
                RequestDecline.request_id == request_id,
                RequestDecline.assistant_id == assistant_id,
            )
        )

    async def record(
        self,
        request_id: int,
        assistant_id: str,
        *,
        reason: str = DeclineReason.DECLINED,
        at: Optional[datetime] = None,
    ) -> Result[tuple[RequestDecline, bool], DatabaseError]:
        """
        Append a decline unless this assistant already has one for the request.

        Returns:
            Result with ``(decline, created)``; ``created`` is False when an
            earlier decline row was found and reused.
        """
        try:
            existing = await self.find(request_id, assistant_id)
        except SQLAlchemyError as e:
            logger.error("Database error in RequestDecline.find(request=%s)", request_id, exc_info=True)
            return failure(DatabaseError(operation="RequestDecline.find", message=str(e), original_exception=e))
        if existing is not None:
            return success((existing, False))

        decline = RequestDecline(request_id=request_id, assistant_id=assistant_id, reason=reason)
        if at is not None:
            decline.declined_at = at
        added = await self.add(decline)
        if added.is_failure():
            return added
        return success((added.unwrap(), True))
