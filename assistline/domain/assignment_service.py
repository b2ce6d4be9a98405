"""Assistant request lifecycle: create, assign, accept, decline, cancel, complete.

Every transition loads the request, checks the caller's permission, then
issues one guarded ``UPDATE ... WHERE`` keyed on the state it observed
(status, assistant, accepted flag and version). If another session changed
the row in between, the update matches nothing and ``ConflictError`` is
raised; the caller re-reads and decides again. The audit row is written in
the same transaction; notifications go out only after commit.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from assistline.core.result import Failure, RecordNotFound
from assistline.core.settings import get_settings
from assistline.core.time_utils import ensure_aware_utc, utcnow, window_has_passed
from assistline.core.uow import UnitOfWork
from assistline.repositories.assistant_request import ANY
from assistline.services.notifications import EventType, safe_dispatch

from . import deadlines
from .errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from .interfaces import AvailabilityProvider, LocationDirectory, NotificationDispatcher, NotificationEvent
from .models import AssistantRequest, DeclineReason, RecurrenceType, RequestStatus
from .permissions import (
    Principal,
    can_accept,
    can_assign,
    can_cancel,
    can_complete,
    can_create,
    can_decline,
    can_view,
    can_view_all,
)

logger = logging.getLogger(__name__)

_RECURRENCE_STEP = {
    RecurrenceType.WEEKLY: timedelta(weeks=1),
    RecurrenceType.BIWEEKLY: timedelta(weeks=2),
}


def _actor(principal: Optional[Principal]) -> str:
    return principal.user_id if principal is not None else "system"


def _parse_date(value: Any, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", field=field)


def _parse_time(value: Any, field: str) -> time:
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a time of day (HH:MM)", field=field)


def _required(value: Optional[str], field: str) -> str:
    cleaned = str(value).strip() if value is not None else ""
    if not cleaned:
        raise ValidationError(f"{field} is required", field=field)
    return cleaned


def occurrence_dates(
    first: date,
    recurrence_type: Optional[str],
    until: Optional[date],
    *,
    limit: int,
) -> List[date]:
    """Dates of a recurring series starting at ``first``; always includes ``first``."""
    if not recurrence_type:
        return [first]
    step = _RECURRENCE_STEP[recurrence_type]
    dates = [first]
    current = first + step
    while until is not None and current <= until and len(dates) < limit:
        dates.append(current)
        current += step
    return dates


class AssignmentStateMachine:
    def __init__(
        self,
        *,
        dispatcher: Optional[NotificationDispatcher] = None,
        locations: Optional[LocationDirectory] = None,
        availability: Optional[AvailabilityProvider] = None,
        clock: Callable[[], datetime] = utcnow,
        uow_factory: Callable[[], UnitOfWork] = UnitOfWork,
        settings=None,
    ):
        self.dispatcher = dispatcher
        self.locations = locations
        self.availability = availability
        self.clock = clock
        self.uow_factory = uow_factory
        self.settings = settings or get_settings()
        self._matcher = None

    # ------------------------------------------------------------------ helpers

    @property
    def matcher(self):
        if self._matcher is None:
            from .matching import AssistantMatcher

            self._matcher = AssistantMatcher(self, self.availability)
        return self._matcher

    def _now(self) -> datetime:
        return ensure_aware_utc(self.clock())

    async def _load(self, uow: UnitOfWork, request_id: int) -> AssistantRequest:
        result = await uow.requests.get(request_id)
        if isinstance(result, Failure):
            if isinstance(result.error, RecordNotFound):
                raise NotFoundError(request_id)
            result.unwrap()
        return result.unwrap()

    @staticmethod
    def _observed_version(request: AssistantRequest, expected_version: Optional[int]) -> int:
        if expected_version is not None and expected_version != request.version:
            raise ConflictError(
                f"Assistant request {request.id} changed (version {request.version}, expected {expected_version})",
                request_id=request.id,
                current_status=request.status,
            )
        return request.version

    async def _guarded(
        self,
        uow: UnitOfWork,
        request: AssistantRequest,
        *,
        action: str,
        expected_status: str | Sequence[str],
        values: Dict[str, Any],
        principal: Optional[Principal],
        expected_version: Optional[int],
        assistant_id: Any = ANY,
        accepted: Optional[bool] = None,
    ) -> None:
        version = self._observed_version(request, expected_version)
        before = {"status": request.status, "assistant_id": request.assistant_id, "version": version}
        changed = await uow.requests.guarded_update(
            request.id,
            expected_status=expected_status,
            values=values,
            assistant_id=assistant_id,
            accepted=accepted,
            expected_version=version,
        )
        if not changed:
            current = await uow.requests.reload(request.id)
            status = current.status if current is not None else None
            logger.info(
                "assistant_request.%s rejected: state changed (id=%s status=%s)",
                action,
                request.id,
                status,
                extra={"request_id": request.id, "action": action, "actor": _actor(principal)},
            )
            raise ConflictError(
                f"Cannot {action} assistant request {request.id} in its current state ({status})",
                request_id=request.id,
                current_status=status,
            )
        uow.audit.record(
            f"assistant_request.{action}",
            entity_id=request.id,
            username=_actor(principal),
            changes={"before": before, "after": {k: v for k, v in values.items()}},
        )

    async def _finish(
        self,
        uow: UnitOfWork,
        request_id: int,
        *,
        action: str,
        principal: Optional[Principal],
    ) -> AssistantRequest:
        await uow.commit()
        updated = await uow.requests.reload(request_id)
        logger.info(
            "assistant_request.%s id=%s actor=%s",
            action,
            request_id,
            _actor(principal),
            extra={"request_id": request_id, "action": action, "actor": _actor(principal)},
        )
        return updated

    async def _notify(self, event_type: str, request: AssistantRequest, recipient: Optional[str], **payload) -> None:
        event = NotificationEvent(
            type=event_type,
            request_id=request.id,
            recipient_id=recipient,
            payload={
                "status": request.status,
                "request_date": request.request_date.isoformat(),
                "start_time": request.start_time.isoformat(timespec="minutes"),
                "end_time": request.end_time.isoformat(timespec="minutes"),
                **payload,
            },
            occurred_at=self._now(),
        )
        await safe_dispatch(self.dispatcher, event)

    # ------------------------------------------------------------------ mutations

    async def create(
        self,
        *,
        stylist_id: str,
        client_name: str,
        service_id: str,
        request_date: Any,
        start_time: Any,
        end_time: Any,
        location_id: Optional[str] = None,
        notes: Optional[str] = None,
        recurrence_type: Optional[str] = None,
        recurrence_end_date: Any = None,
        response_deadline_hours: Optional[int] = None,
        principal: Optional[Principal] = None,
    ) -> AssistantRequest:
        """
        Create a pending request, plus the rest of its series when recurring.

        Returns the first (parent) instance; children link to it through
        ``parent_request_id``.
        """
        stylist_id = _required(stylist_id, "stylist_id")
        client_name = _required(client_name, "client_name")
        service_id = _required(service_id, "service_id")
        day = _parse_date(request_date, "request_date")
        start = _parse_time(start_time, "start_time")
        end = _parse_time(end_time, "end_time")
        if start >= end:
            raise ValidationError("start_time must be before end_time", field="start_time")

        if not can_create(principal, stylist_id):
            raise PermissionDeniedError("create", user_id=_actor(principal))

        hours = self.settings.response_deadline_hours if response_deadline_hours is None else response_deadline_hours
        if not isinstance(hours, int) or hours < 1:
            raise ValidationError("response_deadline_hours must be a positive integer", field="response_deadline_hours")

        until: Optional[date] = None
        if recurrence_type:
            recurrence_type = recurrence_type.strip().lower()
            if recurrence_type not in _RECURRENCE_STEP:
                raise ValidationError(
                    "recurrence_type must be 'weekly' or 'biweekly'", field="recurrence_type"
                )
            if recurrence_end_date is None:
                raise ValidationError(
                    "recurrence_end_date is required for recurring requests", field="recurrence_end_date"
                )
            until = _parse_date(recurrence_end_date, "recurrence_end_date")
            if until < day:
                raise ValidationError(
                    "recurrence_end_date must not be before request_date", field="recurrence_end_date"
                )
        else:
            recurrence_type = None

        location = (location_id or "").strip() or None
        if location is not None and self.locations is not None:
            if await self.locations.get(location) is None:
                raise ValidationError(f"Unknown location {location}", field="location_id")

        dates = occurrence_dates(day, recurrence_type, until, limit=self.settings.max_recurrence_occurrences)
        note_text = (notes or "").strip() or None

        def _build(on: date, parent_id: Optional[int]) -> AssistantRequest:
            return AssistantRequest(
                stylist_id=stylist_id,
                client_name=client_name,
                service_id=service_id,
                location_id=location,
                notes=note_text,
                request_date=on,
                start_time=start,
                end_time=end,
                status=RequestStatus.PENDING,
                response_deadline_hours=hours,
                parent_request_id=parent_id,
                recurrence_type=recurrence_type if parent_id is None else None,
                recurrence_end_date=until if parent_id is None else None,
                version=1,
            )

        async with self.uow_factory() as uow:
            added = await uow.requests.add(_build(dates[0], None))
            parent = added.unwrap()
            for on in dates[1:]:
                uow.session.add(_build(on, parent.id))
            uow.audit.record(
                "assistant_request.create",
                entity_id=parent.id,
                username=_actor(principal),
                changes={
                    "stylist_id": stylist_id,
                    "request_date": dates[0].isoformat(),
                    "occurrences": len(dates),
                },
            )
            created = await self._finish(uow, parent.id, action="create", principal=principal)

        await self._notify(EventType.CREATED, created, None, occurrences=len(dates))
        return created

    async def assign(
        self,
        request_id: int,
        assistant_id: str,
        *,
        principal: Optional[Principal] = None,
        expected_version: Optional[int] = None,
        count_rotation: bool = False,
    ) -> AssistantRequest:
        """Offer the request to ``assistant_id``; legal while nobody has accepted it.

        ``count_rotation`` bumps the assistant's round-robin counter in the
        same transaction as the assignment.
        """
        assistant_id = _required(assistant_id, "assistant_id")
        async with self.uow_factory() as uow:
            request = await self._load(uow, request_id)
            if not can_assign(principal, request, assistant_id):
                raise PermissionDeniedError("assign", user_id=_actor(principal), request_id=request_id)
            if request.status not in (RequestStatus.PENDING, RequestStatus.ASSIGNED) or request.accepted_at is not None:
                raise ConflictError(
                    f"Assistant request {request_id} can no longer be assigned ({request.status})",
                    request_id=request_id,
                    current_status=request.status,
                )
            previous = request.assistant_id
            now = self._now()
            await self._guarded(
                uow,
                request,
                action="assign",
                expected_status=request.status,
                assistant_id=previous,
                accepted=False,
                values={
                    "assistant_id": assistant_id,
                    "status": RequestStatus.ASSIGNED,
                    "assigned_at": now,
                    "accepted_at": None,
                    "response_time_seconds": None,
                },
                principal=principal,
                expected_version=expected_version,
            )
            if count_rotation:
                await uow.rotations.bump(assistant_id, at=now, location_id=request.location_id)
            updated = await self._finish(uow, request_id, action="assign", principal=principal)

        await self._notify(EventType.ASSIGNED, updated, assistant_id, previous_assistant_id=previous)
        return updated

    async def accept(
        self,
        request_id: int,
        assistant_id: str,
        *,
        principal: Optional[Principal] = None,
        expected_version: Optional[int] = None,
    ) -> AssistantRequest:
        assistant_id = _required(assistant_id, "assistant_id")
        async with self.uow_factory() as uow:
            request = await self._load(uow, request_id)
            if not can_accept(principal, request, assistant_id):
                raise PermissionDeniedError("accept", user_id=_actor(principal), request_id=request_id)
            now = self._now()
            assigned_at = ensure_aware_utc(request.assigned_at)
            response_time = int((now - assigned_at).total_seconds()) if assigned_at else None
            await self._guarded(
                uow,
                request,
                action="accept",
                expected_status=RequestStatus.ASSIGNED,
                assistant_id=assistant_id,
                accepted=False,
                values={"accepted_at": now, "response_time_seconds": response_time},
                principal=principal,
                expected_version=expected_version,
            )
            updated = await self._finish(uow, request_id, action="accept", principal=principal)

        await self._notify(EventType.ACCEPTED, updated, updated.stylist_id, assistant_id=assistant_id)
        return updated

    async def decline(
        self,
        request_id: int,
        assistant_id: str,
        *,
        principal: Optional[Principal] = None,
        expected_version: Optional[int] = None,
        auto_reassign: bool = False,
    ) -> AssistantRequest:
        """
        Hand the request back to the pool and remember who declined it.

        With ``auto_reassign`` the matcher offers it to the next eligible
        assistant once the decline is committed; if nobody is available
        the request simply stays pending.
        """
        assistant_id = _required(assistant_id, "assistant_id")
        async with self.uow_factory() as uow:
            request = await self._load(uow, request_id)
            if not can_decline(principal, request, assistant_id):
                raise PermissionDeniedError("decline", user_id=_actor(principal), request_id=request_id)
            await self._guarded(
                uow,
                request,
                action="decline",
                expected_status=RequestStatus.ASSIGNED,
                assistant_id=assistant_id,
                accepted=False,
                values={
                    "assistant_id": None,
                    "status": RequestStatus.PENDING,
                    "assigned_at": None,
                    "accepted_at": None,
                },
                principal=principal,
                expected_version=expected_version,
            )
            recorded = await uow.declines.record(
                request_id, assistant_id, reason=DeclineReason.DECLINED, at=self._now()
            )
            recorded.unwrap()
            updated = await self._finish(uow, request_id, action="decline", principal=principal)

        await self._notify(EventType.DECLINED, updated, updated.stylist_id, assistant_id=assistant_id)

        if auto_reassign:
            reassigned = await self.matcher.auto_assign_safely(request_id)
            if reassigned is not None:
                return reassigned
        return updated

    async def cancel(
        self,
        request_id: int,
        *,
        principal: Optional[Principal] = None,
        expected_version: Optional[int] = None,
    ) -> AssistantRequest:
        async with self.uow_factory() as uow:
            request = await self._load(uow, request_id)
            if not can_cancel(principal, request):
                raise PermissionDeniedError("cancel", user_id=_actor(principal), request_id=request_id)
            if request.is_terminal:
                raise ConflictError(
                    f"Assistant request {request_id} is already {request.status}",
                    request_id=request_id,
                    current_status=request.status,
                )
            if request.status == RequestStatus.ASSIGNED and window_has_passed(
                request.request_date,
                request.end_time,
                now=self._now(),
                tz_name=self.settings.timezone,
            ):
                raise ConflictError(
                    f"Assistant request {request_id} has already taken place",
                    request_id=request_id,
                    current_status=request.status,
                )
            previous = request.assistant_id
            await self._guarded(
                uow,
                request,
                action="cancel",
                expected_status=request.status,
                assistant_id=previous,
                values={
                    "status": RequestStatus.CANCELLED,
                    "assistant_id": None,
                    "accepted_at": None,
                },
                principal=principal,
                expected_version=expected_version,
            )
            updated = await self._finish(uow, request_id, action="cancel", principal=principal)

        if previous:
            await self._notify(EventType.CANCELLED, updated, previous)
        return updated

    async def complete(
        self,
        request_id: int,
        *,
        principal: Optional[Principal] = None,
        expected_version: Optional[int] = None,
    ) -> AssistantRequest:
        async with self.uow_factory() as uow:
            request = await self._load(uow, request_id)
            if not can_complete(principal, request):
                raise PermissionDeniedError("complete", user_id=_actor(principal), request_id=request_id)
            await self._guarded(
                uow,
                request,
                action="complete",
                expected_status=RequestStatus.ASSIGNED,
                assistant_id=request.assistant_id,
                accepted=True,
                values={"status": RequestStatus.COMPLETED},
                principal=principal,
                expected_version=expected_version,
            )
            updated = await self._finish(uow, request_id, action="complete", principal=principal)

        await self._notify(EventType.COMPLETED, updated, updated.assistant_id)
        return updated

    async def expire(self, request_id: int, *, now: Optional[datetime] = None) -> AssistantRequest:
        """
        Return an overdue, unanswered assignment to pending as the system actor.

        The assigned assistant gets a ``timeout`` decline so the matcher
        skips them next time.
        """
        current = ensure_aware_utc(now) if now is not None else self._now()
        async with self.uow_factory() as uow:
            request = await self._load(uow, request_id)
            if not deadlines.is_overdue(request, current):
                raise ConflictError(
                    f"Assistant request {request_id} is not awaiting an overdue response",
                    request_id=request_id,
                    current_status=request.status,
                )
            assistant_id = request.assistant_id
            await self._guarded(
                uow,
                request,
                action="expire",
                expected_status=RequestStatus.ASSIGNED,
                assistant_id=assistant_id,
                accepted=False,
                values={
                    "assistant_id": None,
                    "status": RequestStatus.PENDING,
                    "assigned_at": None,
                    "accepted_at": None,
                },
                principal=None,
                expected_version=None,
            )
            recorded = await uow.declines.record(
                request_id, assistant_id, reason=DeclineReason.TIMEOUT, at=current
            )
            recorded.unwrap()
            updated = await self._finish(uow, request_id, action="expire", principal=None)

        await self._notify(EventType.EXPIRED, updated, updated.stylist_id, assistant_id=assistant_id)
        return updated

    # ------------------------------------------------------------------ queries

    async def get(self, request_id: int, *, principal: Optional[Principal] = None) -> AssistantRequest:
        async with self.uow_factory() as uow:
            request = await self._load(uow, request_id)
        if not can_view(principal, request):
            raise PermissionDeniedError("view", user_id=_actor(principal), request_id=request_id)
        return request

    async def _list(self, **filters) -> List[AssistantRequest]:
        try:
            async with self.uow_factory() as uow:
                return list(await uow.requests.list_filtered(**filters))
        except SQLAlchemyError:
            logger.error("assistant_request_list_failed filters=%s", filters, exc_info=True)
            return []

    async def list_by_stylist(self, stylist_id: str, location_id: Optional[str] = None) -> List[AssistantRequest]:
        return await self._list(stylist_id=stylist_id, location_id=location_id)

    async def list_by_assistant(self, assistant_id: str, location_id: Optional[str] = None) -> List[AssistantRequest]:
        return await self._list(assistant_id=assistant_id, location_id=location_id)

    async def list_all(
        self,
        location_id: Optional[str] = None,
        *,
        principal: Optional[Principal] = None,
    ) -> List[AssistantRequest]:
        if not can_view_all(principal):
            raise PermissionDeniedError("list all", user_id=_actor(principal))
        return await self._list(location_id=location_id)

    async def list_active(self, location_id: Optional[str] = None) -> List[AssistantRequest]:
        return await self._list(
            location_id=location_id,
            statuses=(RequestStatus.PENDING, RequestStatus.ASSIGNED),
        )

    async def list_open(self, location_id: Optional[str] = None) -> List[AssistantRequest]:
        """Pending requests any assistant may claim."""
        return await self._list(location_id=location_id, statuses=(RequestStatus.PENDING,))

    async def list_needing_attention(self, now: Optional[datetime] = None) -> List[AssistantRequest]:
        try:
            async with self.uow_factory() as uow:
                awaiting = list(await uow.requests.list_awaiting_response())
        except SQLAlchemyError:
            logger.error("assistant_request_attention_failed", exc_info=True)
            return []
        return deadlines.needs_attention(awaiting, now if now is not None else self._now())


__all__ = ["AssignmentStateMachine", "occurrence_dates"]
