from datetime import time

import pytest

from assistline.domain.errors import ConflictError, PermissionDeniedError
from assistline.domain.interfaces import AppointmentSnapshot, InMemoryAppointmentSource, StaticAvailabilityProvider
from assistline.domain.manual_assignment import (
    WARN_APPOINTMENT_CONFLICT,
    WARN_DOUBLE_BOOKING,
    WARN_NOT_SCHEDULED,
    WARN_PREVIOUSLY_DECLINED,
    ManualAssignmentResolver,
)
from assistline.domain.models import RequestStatus


@pytest.fixture
def appointments():
    return InMemoryAppointmentSource()


@pytest.fixture
def resolver(machine, appointments, availability):
    return ManualAssignmentResolver(machine, appointments=appointments, availability=availability)


@pytest.mark.asyncio
async def test_clean_assignment_has_no_warnings(resolver, new_request, admin):
    request = await new_request()

    outcome = await resolver.assign(request.id, "assistant-x", principal=admin)

    assert outcome.warnings == []
    assert outcome.request.status == RequestStatus.ASSIGNED
    assert outcome.request.assistant_id == "assistant-x"


@pytest.mark.asyncio
async def test_previous_decliner_is_warned_but_assigned(machine, resolver, new_request, admin, assistant_x):
    request = await new_request()
    await machine.assign(request.id, "assistant-x", principal=admin)
    await machine.decline(request.id, "assistant-x", principal=assistant_x)

    outcome = await resolver.assign(request.id, "assistant-x", principal=admin)

    assert [w.code for w in outcome.warnings] == [WARN_PREVIOUSLY_DECLINED]
    assert outcome.request.assistant_id == "assistant-x"
    assert outcome.request.declined_by == ["assistant-x"]


@pytest.mark.asyncio
async def test_calendar_clash_and_double_booking_are_reported(machine, resolver, appointments, new_request, admin):
    request = await new_request()
    appointments.add(
        AppointmentSnapshot("appt-7", "assistant-x", request.request_date, time(9, 30), time(10, 30))
    )
    appointments.add(
        AppointmentSnapshot("appt-8", "assistant-x", request.request_date, time(9, 0), time(10, 0), "cancelled")
    )
    other = await new_request(start_time=time(9, 45), end_time=time(11, 0))
    await machine.assign(other.id, "assistant-x", principal=admin)

    outcome = await resolver.assign(request.id, "assistant-x", principal=admin)

    codes = [w.code for w in outcome.warnings]
    assert codes == [WARN_APPOINTMENT_CONFLICT, WARN_DOUBLE_BOOKING]
    assert outcome.warnings[0].details == {"appointment_id": "appt-7"}
    assert outcome.warnings[1].details == {"request_id": other.id}


@pytest.mark.asyncio
async def test_assistant_not_scheduled_at_location(machine, new_request, admin):
    availability = StaticAvailabilityProvider({"assistant-x": {"loc-uptown": range(7)}})
    resolver = ManualAssignmentResolver(machine, availability=availability)
    request = await new_request(location_id="loc-downtown")

    warnings = await resolver.preview(request, "assistant-x")

    assert [w.code for w in warnings] == [WARN_NOT_SCHEDULED]


@pytest.mark.asyncio
async def test_broken_calendar_does_not_block_assignment(machine, new_request, admin):
    class BrokenSource:
        async def fetch(self, dates, party_ids):
            raise ConnectionError("calendar offline")

    resolver = ManualAssignmentResolver(machine, appointments=BrokenSource())
    request = await new_request()

    outcome = await resolver.assign(request.id, "assistant-y", principal=admin)
    assert outcome.warnings == []
    assert outcome.request.assistant_id == "assistant-y"


@pytest.mark.asyncio
async def test_only_admins_use_manual_assignment(resolver, new_request, stylist, assistant_x):
    request = await new_request()

    for principal in (stylist, assistant_x):
        with pytest.raises(PermissionDeniedError):
            await resolver.assign(request.id, "assistant-x", principal=principal)


@pytest.mark.asyncio
async def test_manual_assignment_cannot_override_acceptance(machine, resolver, new_request, admin, assistant_x):
    request = await new_request()
    await machine.assign(request.id, "assistant-x", principal=admin)
    await machine.accept(request.id, "assistant-x", principal=assistant_x)

    with pytest.raises(ConflictError):
        await resolver.assign(request.id, "assistant-y", principal=admin)


@pytest.mark.asyncio
async def test_manual_assignment_honours_expected_version(machine, resolver, new_request, admin):
    request = await new_request()
    await machine.assign(request.id, "assistant-x", principal=admin)

    with pytest.raises(ConflictError):
        await resolver.assign(request.id, "assistant-y", principal=admin, expected_version=request.version)
