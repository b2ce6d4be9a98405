from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assistline.core.repository.base import BaseRepository
from assistline.domain.models import AssistantRotation


class RotationRepository(BaseRepository[AssistantRotation]):
    """Round-robin counters used by automatic matching."""

    def __init__(self, session: AsyncSession):
        super().__init__(AssistantRotation, session)

    async def for_assistants(self, assistant_ids: Iterable[str]) -> Dict[str, AssistantRotation]:
        ids = list(assistant_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(AssistantRotation).where(AssistantRotation.assistant_id.in_(ids))
        )
        return {row.assistant_id: row for row in result.scalars().all()}

    async def bump(self, assistant_id: str, *, at: datetime, location_id: Optional[str] = None) -> AssistantRotation:
        row = await self.session.scalar(
            select(AssistantRotation).where(AssistantRotation.assistant_id == assistant_id)
        )
        if row is None:
            row = AssistantRotation(assistant_id=assistant_id, location_id=location_id, total_assignments=0)
            self.session.add(row)
        row.total_assignments = (row.total_assignments or 0) + 1
        row.last_assigned_at = at
        if location_id is not None:
            row.location_id = location_id
        await self.session.flush()
        return row
