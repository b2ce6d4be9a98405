from datetime import date, time

import pytest

from assistline.domain.conflicts import (
    PARTY_ASSISTANT,
    PARTY_BOTH,
    detect,
    find_conflicts,
    find_double_bookings,
)
from assistline.domain.interfaces import AppointmentSnapshot, InMemoryAppointmentSource
from assistline.domain.models import AssistantRequest, RequestStatus

DAY = date(2031, 6, 10)


def _request(request_id, start, end, *, status=RequestStatus.PENDING, assistant_id=None, day=DAY, stylist_id="stylist-1"):
    return AssistantRequest(
        id=request_id,
        stylist_id=stylist_id,
        assistant_id=assistant_id,
        client_name="Client",
        service_id="svc",
        request_date=day,
        start_time=start,
        end_time=end,
        status=status,
        response_deadline_hours=2,
    )


def _appt(appointment_id, start, end, *, party_id="stylist-1", day=DAY, status="booked"):
    return AppointmentSnapshot(appointment_id, party_id, day, start, end, status)


def test_overlapping_appointment_is_reported():
    request = _request(1, time(10, 0), time(11, 0))
    appointments = [_appt("a1", time(10, 30), time(11, 30))]

    found = detect([request], appointments)

    assert list(found) == [1]
    [conflict] = found[1]
    assert conflict.appointment_id == "a1"
    assert conflict.party_id == "stylist-1"
    assert conflict.appointment_start == time(10, 30)


def test_touching_windows_do_not_conflict():
    request = _request(1, time(10, 0), time(11, 0))
    appointments = [
        _appt("before", time(9, 0), time(10, 0)),
        _appt("after", time(11, 0), time(12, 0)),
    ]
    assert detect([request], appointments) == {}


def test_other_party_other_day_and_cancelled_are_ignored():
    request = _request(1, time(10, 0), time(11, 0))
    appointments = [
        _appt("someone-else", time(10, 0), time(11, 0), party_id="stylist-2"),
        _appt("next-day", time(10, 0), time(11, 0), day=date(2031, 6, 11)),
        _appt("cancelled", time(10, 0), time(11, 0), status="Cancelled"),
    ]
    assert detect([request], appointments) == {}


def test_terminal_requests_are_skipped():
    requests = [
        _request(1, time(10, 0), time(11, 0), status=RequestStatus.COMPLETED, assistant_id="assistant-x"),
        _request(2, time(10, 0), time(11, 0), status=RequestStatus.CANCELLED),
    ]
    assert detect(requests, [_appt("a1", time(10, 0), time(11, 0))]) == {}


def test_assistant_party_uses_assigned_assistant():
    assigned = _request(1, time(10, 0), time(11, 0), status=RequestStatus.ASSIGNED, assistant_id="assistant-x")
    pending = _request(2, time(10, 0), time(11, 0))
    appointments = [
        _appt("stylist-appt", time(10, 0), time(10, 30)),
        _appt("assistant-appt", time(10, 15), time(10, 45), party_id="assistant-x"),
    ]

    by_assistant = detect([assigned, pending], appointments, party=PARTY_ASSISTANT)
    assert {c.appointment_id for c in by_assistant[1]} == {"assistant-appt"}
    assert 2 not in by_assistant

    by_both = detect([assigned, pending], appointments, party=PARTY_BOTH)
    assert {c.appointment_id for c in by_both[1]} == {"stylist-appt", "assistant-appt"}
    assert [c.appointment_id for c in by_both[2]] == ["stylist-appt"]


def test_unknown_party_selector_is_rejected():
    with pytest.raises(ValueError):
        detect([_request(1, time(10, 0), time(11, 0))], [], party="client")


@pytest.mark.asyncio
async def test_find_conflicts_fetches_only_relevant_slice():
    source = InMemoryAppointmentSource([_appt("a1", time(10, 0), time(10, 30))])
    requests = [
        _request(1, time(10, 0), time(11, 0)),
        _request(2, time(10, 0), time(11, 0), status=RequestStatus.CANCELLED, day=date(2031, 7, 1), stylist_id="stylist-9"),
    ]

    found = await find_conflicts(requests, source)

    assert list(found) == [1]
    assert source.calls == [(frozenset({DAY}), frozenset({"stylist-1"}))]


@pytest.mark.asyncio
async def test_find_conflicts_with_no_active_requests_skips_fetch():
    source = InMemoryAppointmentSource()
    found = await find_conflicts([_request(1, time(9, 0), time(10, 0), status=RequestStatus.CANCELLED)], source)
    assert found == {}
    assert source.calls == []


@pytest.mark.asyncio
async def test_failing_source_yields_no_conflicts():
    class BrokenSource:
        async def fetch(self, dates, party_ids):
            raise ConnectionError("calendar offline")

    found = await find_conflicts([_request(1, time(10, 0), time(11, 0))], BrokenSource())
    assert found == {}


def test_double_bookings_pair_overlapping_assignments():
    requests = [
        _request(1, time(9, 0), time(10, 30), status=RequestStatus.ASSIGNED, assistant_id="assistant-x"),
        _request(2, time(10, 0), time(11, 0), status=RequestStatus.ASSIGNED, assistant_id="assistant-x"),
        _request(3, time(11, 0), time(12, 0), status=RequestStatus.ASSIGNED, assistant_id="assistant-x"),
        _request(4, time(9, 0), time(10, 0), status=RequestStatus.ASSIGNED, assistant_id="assistant-y"),
        _request(5, time(9, 0), time(10, 0), status=RequestStatus.COMPLETED, assistant_id="assistant-y"),
    ]

    [booking] = find_double_bookings(requests)
    assert booking.assistant_id == "assistant-x"
    assert booking.date == DAY
    assert booking.request_ids == (1, 2)
