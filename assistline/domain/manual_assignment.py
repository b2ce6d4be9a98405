"""Administrative assignment with advisory warnings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from assistline.core.time_utils import windows_overlap

from .errors import PermissionDeniedError
from .interfaces import AppointmentSnapshotSource, AvailabilityProvider
from .models import AssistantRequest, RequestStatus
from .permissions import Principal

if TYPE_CHECKING:
    from .assignment_service import AssignmentStateMachine

logger = logging.getLogger(__name__)

WARN_PREVIOUSLY_DECLINED = "previously_declined"
WARN_APPOINTMENT_CONFLICT = "appointment_conflict"
WARN_DOUBLE_BOOKING = "double_booking"
WARN_NOT_SCHEDULED = "not_scheduled"


@dataclass(frozen=True)
class AssignmentWarning:
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AssignmentOutcome:
    request: AssistantRequest
    warnings: List[AssignmentWarning] = field(default_factory=list)


class ManualAssignmentResolver:
    """
    Lets an admin or manager put a specific assistant on a request.

    Anything that looks wrong (a calendar clash, a double booking, an
    assistant who already said no) is reported back as a warning; the
    assignment still goes through the guarded ``assign``.
    """

    def __init__(
        self,
        machine: "AssignmentStateMachine",
        *,
        appointments: Optional[AppointmentSnapshotSource] = None,
        availability: Optional[AvailabilityProvider] = None,
    ):
        self.machine = machine
        self.appointments = appointments
        self.availability = availability

    async def _calendar_warnings(self, request: AssistantRequest, assistant_id: str) -> List[AssignmentWarning]:
        if self.appointments is None:
            return []
        try:
            slice_ = await self.appointments.fetch([request.request_date], [assistant_id])
        except Exception:
            logger.warning("appointment_fetch_failed request=%s assistant=%s", request.id, assistant_id, exc_info=True)
            return []
        warnings = []
        for appt in slice_:
            if appt.party_id != assistant_id or appt.date != request.request_date:
                continue
            if (appt.status or "").lower() == "cancelled":
                continue
            if windows_overlap(request.start_time, request.end_time, appt.start_time, appt.end_time):
                warnings.append(
                    AssignmentWarning(
                        WARN_APPOINTMENT_CONFLICT,
                        f"{assistant_id} has appointment {appt.appointment_id} at "
                        f"{appt.start_time:%H:%M}-{appt.end_time:%H:%M}",
                        {"appointment_id": appt.appointment_id},
                    )
                )
        return warnings

    async def _double_booking_warnings(self, request: AssistantRequest, assistant_id: str) -> List[AssignmentWarning]:
        async with self.machine.uow_factory() as uow:
            others = await uow.requests.list_filtered(
                assistant_id=assistant_id,
                statuses=(RequestStatus.ASSIGNED,),
                dates=(request.request_date,),
            )
        return [
            AssignmentWarning(
                WARN_DOUBLE_BOOKING,
                f"{assistant_id} is already on request {other.id} at "
                f"{other.start_time:%H:%M}-{other.end_time:%H:%M}",
                {"request_id": other.id},
            )
            for other in others
            if other.id != request.id
            and windows_overlap(request.start_time, request.end_time, other.start_time, other.end_time)
        ]

    async def _schedule_warnings(self, request: AssistantRequest, assistant_id: str) -> List[AssignmentWarning]:
        if self.availability is None or not request.location_id:
            return []
        try:
            schedule = await self.availability.working_days(assistant_id)
        except Exception:
            logger.warning("availability_fetch_failed assistant=%s", assistant_id, exc_info=True)
            return []
        if request.request_date.weekday() in schedule.get(request.location_id, set()):
            return []
        return [
            AssignmentWarning(
                WARN_NOT_SCHEDULED,
                f"{assistant_id} is not scheduled at {request.location_id} on {request.request_date:%A}",
                {"location_id": request.location_id},
            )
        ]

    async def preview(self, request: AssistantRequest, assistant_id: str) -> List[AssignmentWarning]:
        warnings: List[AssignmentWarning] = []
        if assistant_id in request.declined_by:
            warnings.append(
                AssignmentWarning(WARN_PREVIOUSLY_DECLINED, f"{assistant_id} already declined this request")
            )
        warnings.extend(await self._calendar_warnings(request, assistant_id))
        warnings.extend(await self._double_booking_warnings(request, assistant_id))
        warnings.extend(await self._schedule_warnings(request, assistant_id))
        return warnings

    async def assign(
        self,
        request_id: int,
        assistant_id: str,
        *,
        principal: Optional[Principal],
        expected_version: Optional[int] = None,
    ) -> AssignmentOutcome:
        if principal is not None and not principal.is_admin:
            raise PermissionDeniedError("reassign", user_id=principal.user_id, request_id=request_id)
        request = await self.machine.get(request_id, principal=principal)
        warnings = await self.preview(request, assistant_id)
        if expected_version is None:
            expected_version = request.version
        updated = await self.machine.assign(
            request_id,
            assistant_id,
            principal=principal,
            expected_version=expected_version,
        )
        if warnings:
            logger.info(
                "manual_assign_warnings request=%s assistant=%s codes=%s",
                request_id,
                assistant_id,
                ",".join(w.code for w in warnings),
            )
        return AssignmentOutcome(request=updated, warnings=warnings)


__all__ = [
    "AssignmentWarning",
    "AssignmentOutcome",
    "ManualAssignmentResolver",
    "WARN_PREVIOUSLY_DECLINED",
    "WARN_APPOINTMENT_CONFLICT",
    "WARN_DOUBLE_BOOKING",
    "WARN_NOT_SCHEDULED",
]
