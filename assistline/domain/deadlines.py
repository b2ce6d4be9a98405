"""Response-window arithmetic for assigned, not yet accepted requests.

Nothing here touches storage or schedules anything; callers pass ``now``
when they need a stable clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from assistline.core.time_utils import ensure_aware_utc, utcnow

from .models import AssistantRequest, RequestStatus


@dataclass(frozen=True)
class DeadlineSnapshot:
    deadline_at: datetime
    remaining_seconds: int
    overdue: bool


def _tracked(request: AssistantRequest) -> bool:
    return (
        request.status == RequestStatus.ASSIGNED
        and request.accepted_at is None
        and request.assigned_at is not None
    )


def deadline_at(request: AssistantRequest) -> Optional[datetime]:
    if not _tracked(request):
        return None
    hours = request.response_deadline_hours or 0
    return ensure_aware_utc(request.assigned_at) + timedelta(hours=hours)


def remaining(request: AssistantRequest, now: Optional[datetime] = None) -> Optional[timedelta]:
    """Time left to respond; negative once overdue, ``None`` when no window is open."""
    deadline = deadline_at(request)
    if deadline is None:
        return None
    current = ensure_aware_utc(now) if now is not None else utcnow()
    return deadline - current


def is_overdue(request: AssistantRequest, now: Optional[datetime] = None) -> bool:
    left = remaining(request, now)
    return left is not None and left < timedelta(0)


def snapshot(request: AssistantRequest, now: Optional[datetime] = None) -> Optional[DeadlineSnapshot]:
    left = remaining(request, now)
    if left is None:
        return None
    return DeadlineSnapshot(
        deadline_at=deadline_at(request),
        remaining_seconds=int(left.total_seconds()),
        overdue=left < timedelta(0),
    )


def needs_attention(
    requests: Iterable[AssistantRequest], now: Optional[datetime] = None
) -> List[AssistantRequest]:
    """Unanswered assignments, overdue ones first, then by closest deadline."""
    current = ensure_aware_utc(now) if now is not None else utcnow()
    tracked = [request for request in requests if _tracked(request)]
    return sorted(
        tracked,
        key=lambda request: (not is_overdue(request, current), deadline_at(request), request.id),
    )


__all__ = [
    "DeadlineSnapshot",
    "deadline_at",
    "remaining",
    "is_overdue",
    "snapshot",
    "needs_attention",
]
