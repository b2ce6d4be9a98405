"""
Unit of Work for assistant request transactions.

One ``UnitOfWork`` owns one session; every repository it exposes shares
that session, so a transition's guarded update, decline row and audit row
commit or roll back together.

Example:
    async with UnitOfWork() as uow:
        changed = await uow.requests.guarded_update(...)
        uow.audit.record("assistant_request.accept", entity_id=request_id, username=user)
        await uow.commit()
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import TYPE_CHECKING, Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession

from assistline.core.db import new_async_session

if TYPE_CHECKING:
    from assistline.repositories import (
        AssistantRequestRepository,
        AuditRepository,
        DeclineRepository,
        RotationRepository,
    )

logger = logging.getLogger(__name__)


class UnitOfWork:
    requests: AssistantRequestRepository
    declines: DeclineRepository
    rotations: RotationRepository
    audit: AuditRepository

    def __init__(self, session: Optional[AsyncSession] = None):
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> UnitOfWork:
        if self._session is None:
            self._session = new_async_session()
        self._bind_repositories(self._session)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        """Roll back on exception; committing is always explicit."""
        session, self._session = self._session, (None if self._owns_session else self._session)
        try:
            if exc_type is not None and session is not None:
                await session.rollback()
                logger.debug("uow rolled back after %s: %s", exc_type.__name__, exc_val)
        finally:
            if self._owns_session and session is not None:
                await session.close()

    def _bind_repositories(self, session: AsyncSession) -> None:
        # repositories import core modules, so bind them lazily
        from assistline.repositories import (
            AssistantRequestRepository,
            AuditRepository,
            DeclineRepository,
            RotationRepository,
        )

        self.requests = AssistantRequestRepository(session)
        self.declines = DeclineRepository(session)
        self.rotations = RotationRepository(session)
        self.audit = AuditRepository(session)

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork is not active; use 'async with UnitOfWork()'")
        return self._session

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except Exception:
            logger.error("uow commit failed", exc_info=True)
            await self.session.rollback()
            raise

    async def rollback(self) -> None:
        await self.session.rollback()

