from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from assistline.core.time_utils import utcnow

from .models import AssistantRequest, RequestStatus


@dataclass(frozen=True)
class RequestOverview:
    total: int
    this_week: int
    pending: int
    awaiting_response: int
    accepted: int
    completed: int
    cancelled: int
    total_declines: int
    acceptance_rate: int

    def as_dict(self) -> dict:
        return asdict(self)


def week_start(day: date) -> date:
    """Sunday on or before ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def summarize(requests: Iterable[AssistantRequest], *, today: Optional[date] = None) -> RequestOverview:
    items = list(requests)
    today = today or utcnow().date()
    start = week_start(today)
    end = start + timedelta(days=7)

    accepted = sum(1 for r in items if r.accepted_at is not None)
    offered = sum(1 for r in items if r.status in (RequestStatus.ASSIGNED, RequestStatus.COMPLETED))
    return RequestOverview(
        total=len(items),
        this_week=sum(1 for r in items if start <= r.request_date < end),
        pending=sum(1 for r in items if r.status == RequestStatus.PENDING),
        awaiting_response=sum(1 for r in items if r.is_awaiting_response),
        accepted=accepted,
        completed=sum(1 for r in items if r.status == RequestStatus.COMPLETED),
        cancelled=sum(1 for r in items if r.status == RequestStatus.CANCELLED),
        total_declines=sum(len(r.declined_by) for r in items),
        acceptance_rate=round(accepted / offered * 100) if offered else 0,
    )


__all__ = ["RequestOverview", "summarize", "week_start"]
