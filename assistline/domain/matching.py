"""Round-robin matching of pending requests to available assistants."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from .errors import ConflictError
from .interfaces import AvailabilityProvider
from .models import AssistantRequest, RequestStatus

if TYPE_CHECKING:
    from .assignment_service import AssignmentStateMachine

logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


class AssistantMatcher:
    """
    Picks the assistant who has been offered the fewest requests.

    Assistants who declined the request, or who already hold an assigned
    request overlapping its window, are skipped. With ``match_location``
    the assistant must also work at the request's location on that weekday.
    """

    def __init__(
        self,
        machine: "AssignmentStateMachine",
        availability: Optional[AvailabilityProvider],
        *,
        match_location: bool = True,
    ):
        self.machine = machine
        self.availability = availability
        self.match_location = match_location

    async def _works_there(self, assistant_id: str, request: AssistantRequest) -> bool:
        schedule = await self.availability.working_days(assistant_id)
        return request.request_date.weekday() in schedule.get(request.location_id, set())

    async def candidates(self, request: AssistantRequest) -> List[str]:
        if self.availability is None:
            return []
        try:
            pool = list(dict.fromkeys(await self.availability.active_assistants()))
        except Exception:
            logger.warning("availability_fetch_failed request=%s", request.id, exc_info=True)
            return []

        declined = set(request.declined_by)
        pool = [aid for aid in pool if aid not in declined]
        if self.match_location and request.location_id:
            try:
                pool = [aid for aid in pool if await self._works_there(aid, request)]
            except Exception:
                logger.warning("schedule_fetch_failed request=%s", request.id, exc_info=True)
                return []
        if not pool:
            return []

        async with self.machine.uow_factory() as uow:
            busy = await uow.requests.busy_assistants(
                request.request_date,
                request.start_time,
                request.end_time,
                exclude_request_id=request.id,
            )
            rotation = await uow.rotations.for_assistants(pool)

        eligible = [aid for aid in pool if aid not in busy]

        def _order(aid: str):
            row = rotation.get(aid)
            if row is None:
                return (0, _NEVER, aid)
            last = row.last_assigned_at
            if last is not None and last.tzinfo is None:
                last = last.replace(tzinfo=timezone.utc)
            return (row.total_assignments or 0, last or _NEVER, aid)

        return sorted(eligible, key=_order)

    async def pick(self, request: AssistantRequest) -> Optional[str]:
        ranked = await self.candidates(request)
        return ranked[0] if ranked else None

    async def auto_assign(self, request_id: int) -> Optional[AssistantRequest]:
        """
        Offer a pending request to the next assistant in rotation.

        Returns the updated request, or ``None`` when nobody is eligible
        (the request stays pending). Raises ``ConflictError`` if the request
        is not pending or changes while the pick is made.
        """
        request = await self.machine.get(request_id)
        if request.status != RequestStatus.PENDING:
            raise ConflictError(
                f"Assistant request {request_id} is not pending ({request.status})",
                request_id=request_id,
                current_status=request.status,
            )
        chosen = await self.pick(request)
        if chosen is None:
            logger.info("auto_assign_no_candidate request=%s", request_id)
            return None

        updated = await self.machine.assign(
            request_id, chosen, expected_version=request.version, count_rotation=True
        )
        logger.info("auto_assign request=%s assistant=%s", request_id, chosen)
        return updated

    async def auto_assign_safely(self, request_id: int) -> Optional[AssistantRequest]:
        try:
            return await self.auto_assign(request_id)
        except ConflictError as exc:
            logger.info("auto_assign_skipped request=%s: %s", request_id, exc)
            return None


__all__ = ["AssistantMatcher"]
