from datetime import date, datetime, time, timezone

from assistline.domain.models import AssistantRequest, RequestDecline, RequestStatus
from assistline.domain.overview import summarize, week_start

TODAY = date(2031, 6, 11)  # a Wednesday
ACCEPTED_AT = datetime(2031, 6, 1, 9, 0, tzinfo=timezone.utc)


def _request(request_id, day, status, *, accepted=False, declines=()):
    request = AssistantRequest(
        id=request_id,
        stylist_id="stylist-1",
        assistant_id="assistant-x" if status in (RequestStatus.ASSIGNED, RequestStatus.COMPLETED) else None,
        client_name="Client",
        service_id="svc",
        request_date=day,
        start_time=time(9, 0),
        end_time=time(10, 0),
        status=status,
        accepted_at=ACCEPTED_AT if accepted else None,
        response_deadline_hours=2,
    )
    request.declines = [RequestDecline(assistant_id=aid) for aid in declines]
    return request


def test_week_starts_on_sunday():
    assert week_start(TODAY) == date(2031, 6, 8)
    assert week_start(date(2031, 6, 8)) == date(2031, 6, 8)
    assert week_start(date(2031, 6, 14)) == date(2031, 6, 8)


def test_summary_counts():
    requests = [
        _request(1, date(2031, 6, 8), RequestStatus.PENDING, declines=["assistant-y", "assistant-z"]),
        _request(2, date(2031, 6, 12), RequestStatus.ASSIGNED),
        _request(3, date(2031, 6, 14), RequestStatus.ASSIGNED, accepted=True),
        _request(4, date(2031, 6, 15), RequestStatus.COMPLETED, accepted=True, declines=["assistant-y"]),
        _request(5, date(2031, 6, 1), RequestStatus.CANCELLED),
    ]

    overview = summarize(requests, today=TODAY)

    assert overview.total == 5
    assert overview.this_week == 3
    assert overview.pending == 1
    assert overview.awaiting_response == 1
    assert overview.accepted == 2
    assert overview.completed == 1
    assert overview.cancelled == 1
    assert overview.total_declines == 3
    # 2 accepted out of 3 assigned-or-completed
    assert overview.acceptance_rate == 67


def test_empty_summary_has_zero_rate():
    overview = summarize([], today=TODAY)
    assert overview.as_dict() == {
        "total": 0,
        "this_week": 0,
        "pending": 0,
        "awaiting_response": 0,
        "accepted": 0,
        "completed": 0,
        "cancelled": 0,
        "total_declines": 0,
        "acceptance_rate": 0,
    }
