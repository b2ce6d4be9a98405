from __future__ import annotations

import json
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assistline.core.repository.base import BaseRepository
from assistline.domain.models import AuditLog


def _normalize_changes(changes: Optional[Dict[str, Any]]) -> Optional[dict]:
    if not changes:
        return None
    # JSON columns reject datetime/date values
    return json.loads(json.dumps(changes, default=str))


class AuditRepository(BaseRepository[AuditLog]):
    def __init__(self, session: AsyncSession):
        super().__init__(AuditLog, session)

    def record(
        self,
        action: str,
        *,
        entity_id: Any,
        username: Optional[str],
        changes: Optional[Dict[str, Any]] = None,
        entity_type: str = "assistant_request",
    ) -> AuditLog:
        """Stage an audit row in the current transaction."""
        row = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            username=username or "system",
            changes=_normalize_changes(changes),
        )
        self.session.add(row)
        return row

    async def for_entity(self, entity_id: Any, entity_type: str = "assistant_request") -> Sequence[AuditLog]:
        result = await self.session.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
            .order_by(AuditLog.id)
        )
        return result.scalars().all()
