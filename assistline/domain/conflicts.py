"""Overlap detection between active requests and the external calendar."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, time
from typing import Dict, Iterable, List, Sequence, Tuple

from assistline.core.time_utils import windows_overlap

from .interfaces import AppointmentSnapshot, AppointmentSnapshotSource
from .models import ACTIVE_STATUSES, AssistantRequest, RequestStatus

logger = logging.getLogger(__name__)

PARTY_STYLIST = "stylist"
PARTY_ASSISTANT = "assistant"
PARTY_BOTH = "both"
PARTY_CHOICES = (PARTY_STYLIST, PARTY_ASSISTANT, PARTY_BOTH)


@dataclass(frozen=True)
class Conflict:
    request_id: int
    appointment_id: str
    party_id: str
    date: date
    request_start: time
    request_end: time
    appointment_start: time
    appointment_end: time


@dataclass(frozen=True)
class DoubleBooking:
    assistant_id: str
    date: date
    request_ids: Tuple[int, int]


def _parties(request: AssistantRequest, party: str) -> List[str]:
    if party not in PARTY_CHOICES:
        raise ValueError(f"Unknown party selector: {party!r}")
    ids: List[str] = []
    if party in (PARTY_STYLIST, PARTY_BOTH):
        ids.append(request.stylist_id)
    if party in (PARTY_ASSISTANT, PARTY_BOTH) and request.assistant_id:
        ids.append(request.assistant_id)
    return ids


def detect(
    requests: Iterable[AssistantRequest],
    appointments: Iterable[AppointmentSnapshot],
    *,
    party: str = PARTY_STYLIST,
) -> Dict[int, List[Conflict]]:
    """Group overlaps by request id. Terminal requests and cancelled appointments are ignored."""
    by_key: Dict[Tuple[str, date], List[AppointmentSnapshot]] = defaultdict(list)
    for appt in appointments:
        if (appt.status or "").lower() == "cancelled":
            continue
        by_key[(appt.party_id, appt.date)].append(appt)

    grouped: Dict[int, List[Conflict]] = {}
    for request in requests:
        if request.status not in ACTIVE_STATUSES:
            continue
        for party_id in _parties(request, party):
            for appt in by_key.get((party_id, request.request_date), ()):
                if not windows_overlap(request.start_time, request.end_time, appt.start_time, appt.end_time):
                    continue
                grouped.setdefault(request.id, []).append(
                    Conflict(
                        request_id=request.id,
                        appointment_id=appt.appointment_id,
                        party_id=party_id,
                        date=request.request_date,
                        request_start=request.start_time,
                        request_end=request.end_time,
                        appointment_start=appt.start_time,
                        appointment_end=appt.end_time,
                    )
                )
    return grouped


async def find_conflicts(
    requests: Sequence[AssistantRequest],
    source: AppointmentSnapshotSource,
    *,
    party: str = PARTY_STYLIST,
) -> Dict[int, List[Conflict]]:
    """
    Fetch only the appointments the active requests could collide with and
    run ``detect`` over them.

    A failing appointment source yields no conflicts; the failure is logged.
    """
    active = [request for request in requests if request.status in ACTIVE_STATUSES]
    if not active:
        return {}
    dates = {request.request_date for request in active}
    party_ids = {pid for request in active for pid in _parties(request, party)}
    try:
        appointments = await source.fetch(sorted(dates), sorted(party_ids))
    except Exception:
        logger.warning(
            "appointment_fetch_failed dates=%d parties=%d",
            len(dates),
            len(party_ids),
            exc_info=True,
        )
        return {}
    return detect(active, appointments, party=party)


def find_double_bookings(requests: Iterable[AssistantRequest]) -> List[DoubleBooking]:
    """Pairs of assigned requests that put one assistant in two places at once."""
    buckets: Dict[Tuple[str, date], List[AssistantRequest]] = defaultdict(list)
    for request in requests:
        if request.status == RequestStatus.ASSIGNED and request.assistant_id:
            buckets[(request.assistant_id, request.request_date)].append(request)

    found: List[DoubleBooking] = []
    for (assistant_id, day), bucket in buckets.items():
        bucket.sort(key=lambda r: (r.start_time, r.id))
        for index, first in enumerate(bucket):
            for second in bucket[index + 1:]:
                if windows_overlap(first.start_time, first.end_time, second.start_time, second.end_time):
                    found.append(DoubleBooking(assistant_id, day, (first.id, second.id)))
    return found


__all__ = [
    "PARTY_STYLIST",
    "PARTY_ASSISTANT",
    "PARTY_BOTH",
    "Conflict",
    "DoubleBooking",
    "detect",
    "find_conflicts",
    "find_double_bookings",
]
