from datetime import time

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from assistline.core.db import async_session
from assistline.domain.errors import ConflictError
from assistline.domain.models import AssistantRotation, RequestStatus
from assistline.repositories import RotationRepository


@pytest.mark.asyncio
async def test_auto_assign_rotates_through_assistants(machine, availability, new_request):
    availability.add("assistant-x")
    availability.add("assistant-y")

    first = await new_request()
    second = await new_request(start_time=time(13, 0), end_time=time(14, 0))

    assigned_first = await machine.matcher.auto_assign(first.id)
    assigned_second = await machine.matcher.auto_assign(second.id)

    assert assigned_first.assistant_id == "assistant-x"
    assert assigned_first.status == RequestStatus.ASSIGNED
    assert assigned_second.assistant_id == "assistant-y"

    async with async_session() as session:
        counters = {
            row.assistant_id: row.total_assignments
            for row in (await session.scalars(select(AssistantRotation))).all()
        }
    assert counters == {"assistant-x": 1, "assistant-y": 1}


@pytest.mark.asyncio
async def test_candidates_skip_decliners(machine, availability, new_request, admin, assistant_x):
    availability.add("assistant-x")
    availability.add("assistant-y")
    request = await new_request()
    await machine.assign(request.id, "assistant-x", principal=admin)
    await machine.decline(request.id, "assistant-x", principal=assistant_x)

    current = await machine.get(request.id)
    assert await machine.matcher.candidates(current) == ["assistant-y"]


@pytest.mark.asyncio
async def test_candidates_skip_assistants_busy_in_the_window(machine, availability, new_request, admin):
    availability.add("assistant-x")
    availability.add("assistant-y")
    busy = await new_request(start_time=time(9, 30), end_time=time(10, 30))
    await machine.assign(busy.id, "assistant-x", principal=admin)
    adjacent = await new_request(start_time=time(10, 30), end_time=time(11, 30))
    overlapping = await new_request()

    assert await machine.matcher.candidates(overlapping) == ["assistant-y"]
    assert await machine.matcher.candidates(adjacent) == ["assistant-x", "assistant-y"]


@pytest.mark.asyncio
async def test_candidates_respect_location_schedule(machine, availability, new_request):
    request = await new_request(location_id="loc-downtown")
    weekday = request.request_date.weekday()
    availability.add("assistant-x", "loc-downtown", [weekday])
    availability.add("assistant-y", "loc-uptown", range(7))
    availability.add("assistant-z", "loc-downtown", [(weekday + 1) % 7])

    assert await machine.matcher.candidates(request) == ["assistant-x"]


@pytest.mark.asyncio
async def test_no_candidate_leaves_request_pending(machine, availability, new_request):
    request = await new_request()

    assert await machine.matcher.auto_assign(request.id) is None
    stored = await machine.get(request.id)
    assert stored.status == RequestStatus.PENDING
    assert stored.assistant_id is None


@pytest.mark.asyncio
async def test_auto_assign_rejects_non_pending(machine, availability, new_request, admin):
    availability.add("assistant-y")
    request = await new_request()
    await machine.assign(request.id, "assistant-x", principal=admin)

    with pytest.raises(ConflictError):
        await machine.matcher.auto_assign(request.id)
    assert await machine.matcher.auto_assign_safely(request.id) is None


@pytest.mark.asyncio
async def test_decline_with_auto_reassign_offers_next_assistant(
    machine, availability, new_request, admin, assistant_x, dispatcher
):
    availability.add("assistant-x")
    availability.add("assistant-y")
    request = await new_request()
    await machine.assign(request.id, "assistant-x", principal=admin)

    result = await machine.decline(request.id, "assistant-x", principal=assistant_x, auto_reassign=True)

    assert result.status == RequestStatus.ASSIGNED
    assert result.assistant_id == "assistant-y"
    assert result.declined_by == ["assistant-x"]
    assert [e.recipient_id for e in dispatcher.of_type("assistant_request.assigned")] == [
        "assistant-x",
        "assistant-y",
    ]


@pytest.mark.asyncio
async def test_failing_availability_means_no_candidates(machine, new_request):
    class BrokenAvailability:
        async def active_assistants(self):
            raise TimeoutError("directory unavailable")

        async def working_days(self, assistant_id):
            return {}

    machine.availability = BrokenAvailability()
    machine._matcher = None
    request = await new_request()

    assert await machine.matcher.candidates(request) == []


class _ScheduleDown:
    async def active_assistants(self):
        return ["assistant-x", "assistant-y"]

    async def working_days(self, assistant_id):
        raise TimeoutError("schedule service down")


@pytest.mark.asyncio
async def test_failing_schedule_lookup_means_no_candidates(machine, new_request):
    machine.availability = _ScheduleDown()
    machine._matcher = None
    request = await new_request(location_id="loc-1")

    assert await machine.matcher.candidates(request) == []


@pytest.mark.asyncio
async def test_decline_survives_failing_schedule_lookup(machine, new_request, admin, assistant_x):
    request = await new_request(location_id="loc-1")
    await machine.assign(request.id, "assistant-x", principal=admin)
    machine.availability = _ScheduleDown()
    machine._matcher = None

    result = await machine.decline(request.id, "assistant-x", principal=assistant_x, auto_reassign=True)

    assert result.status == RequestStatus.PENDING
    assert result.assistant_id is None
    assert result.declined_by == ["assistant-x"]


@pytest.mark.asyncio
async def test_rotation_counter_rolls_back_with_failed_assignment(machine, availability, new_request, monkeypatch):
    availability.add("assistant-x")
    request = await new_request()

    async def _broken_bump(self, assistant_id, *, at, location_id=None):
        raise SQLAlchemyError("rotation table locked")

    monkeypatch.setattr(RotationRepository, "bump", _broken_bump)

    with pytest.raises(SQLAlchemyError):
        await machine.matcher.auto_assign(request.id)

    stored = await machine.get(request.id)
    assert stored.status == RequestStatus.PENDING
    assert stored.assistant_id is None
    async with async_session() as session:
        assert (await session.scalars(select(AssistantRotation))).all() == []
