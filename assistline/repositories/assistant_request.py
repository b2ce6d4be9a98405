"""Assistant request repository: list queries and guarded state writes."""

from __future__ import annotations

from datetime import date, time
from typing import Any, Iterable, Mapping, Optional, Sequence, Set

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from assistline.core.repository.base import BaseRepository
from assistline.core.time_utils import utcnow
from assistline.domain.models import ACTIVE_STATUSES, AssistantRequest, RequestStatus

# Sentinel for "do not constrain assistant_id" in guarded updates.
ANY = object()

_ORDERING = (AssistantRequest.request_date, AssistantRequest.start_time, AssistantRequest.id)


class AssistantRequestRepository(BaseRepository[AssistantRequest]):
    def __init__(self, session: AsyncSession):
        super().__init__(AssistantRequest, session)

    async def reload(self, request_id: int) -> Optional[AssistantRequest]:
        """Fetch the stored row, overwriting whatever the identity map holds."""
        stmt = (
            select(AssistantRequest)
            .where(AssistantRequest.id == request_id)
            .options(selectinload(AssistantRequest.declines))
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def guarded_update(
        self,
        request_id: int,
        *,
        expected_status: str | Iterable[str],
        values: Mapping[str, Any],
        assistant_id: Any = ANY,
        accepted: Optional[bool] = None,
        expected_version: Optional[int] = None,
    ) -> int:
        """
        Compare-and-set update of a single request.

        Only writes when the stored row still has the expected status,
        assistant and accepted condition (and version, when given). Bumps
        ``version`` and ``updated_at``.

        Returns:
            Number of rows changed: 1 on success, 0 when the precondition
            no longer holds.
        """
        statuses = (expected_status,) if isinstance(expected_status, str) else tuple(expected_status)
        conditions = [AssistantRequest.id == request_id, AssistantRequest.status.in_(statuses)]
        if assistant_id is not ANY:
            if assistant_id is None:
                conditions.append(AssistantRequest.assistant_id.is_(None))
            else:
                conditions.append(AssistantRequest.assistant_id == assistant_id)
        if accepted is True:
            conditions.append(AssistantRequest.accepted_at.is_not(None))
        elif accepted is False:
            conditions.append(AssistantRequest.accepted_at.is_(None))
        if expected_version is not None:
            conditions.append(AssistantRequest.version == expected_version)

        stmt = (
            update(AssistantRequest)
            .where(and_(*conditions))
            .values(
                **dict(values),
                version=AssistantRequest.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def list_filtered(
        self,
        *,
        stylist_id: Optional[str] = None,
        assistant_id: Optional[str] = None,
        location_id: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        dates: Optional[Iterable[date]] = None,
    ) -> Sequence[AssistantRequest]:
        stmt = select(AssistantRequest).options(selectinload(AssistantRequest.declines))
        if stylist_id is not None:
            stmt = stmt.where(AssistantRequest.stylist_id == stylist_id)
        if assistant_id is not None:
            stmt = stmt.where(AssistantRequest.assistant_id == assistant_id)
        if location_id is not None:
            stmt = stmt.where(AssistantRequest.location_id == location_id)
        if statuses is not None:
            stmt = stmt.where(AssistantRequest.status.in_(tuple(statuses)))
        if dates is not None:
            stmt = stmt.where(AssistantRequest.request_date.in_(tuple(dates)))
        result = await self.session.execute(stmt.order_by(*_ORDERING))
        return result.scalars().all()

    async def list_active(self, *, location_id: Optional[str] = None) -> Sequence[AssistantRequest]:
        return await self.list_filtered(location_id=location_id, statuses=ACTIVE_STATUSES)

    async def list_awaiting_response(self) -> Sequence[AssistantRequest]:
        stmt = (
            select(AssistantRequest)
            .options(selectinload(AssistantRequest.declines))
            .where(
                AssistantRequest.status == RequestStatus.ASSIGNED,
                AssistantRequest.accepted_at.is_(None),
                AssistantRequest.assigned_at.is_not(None),
            )
            .order_by(AssistantRequest.assigned_at, AssistantRequest.id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def busy_assistants(
        self,
        request_date: date,
        start_time: time,
        end_time: time,
        *,
        exclude_request_id: Optional[int] = None,
    ) -> Set[str]:
        """Assistants holding an assigned request that overlaps the given window."""
        stmt = select(AssistantRequest.assistant_id).where(
            AssistantRequest.status == RequestStatus.ASSIGNED,
            AssistantRequest.assistant_id.is_not(None),
            AssistantRequest.request_date == request_date,
            AssistantRequest.start_time < end_time,
            AssistantRequest.end_time > start_time,
        )
        if exclude_request_id is not None:
            stmt = stmt.where(AssistantRequest.id != exclude_request_id)
        result = await self.session.execute(stmt)
        return {row for row in result.scalars().all() if row}
