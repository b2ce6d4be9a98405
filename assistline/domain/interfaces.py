"""Collaborators the assignment core consumes but does not own.

Each protocol has a small static or in-memory implementation used for
wiring defaults and in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, runtime_checkable


@dataclass(frozen=True)
class AppointmentSnapshot:
    appointment_id: str
    party_id: str
    date: date
    start_time: time
    end_time: time
    status: str = "booked"


@dataclass(frozen=True)
class Location:
    location_id: str
    name: str
    timezone: Optional[str] = None


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    request_id: int
    recipient_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: Optional[datetime] = None


@runtime_checkable
class AvailabilityProvider(Protocol):
    async def active_assistants(self) -> List[str]:
        ...

    async def working_days(self, assistant_id: str) -> Dict[str, Set[int]]:
        """Map of location id to weekdays (Monday=0) the assistant works there."""
        ...


@runtime_checkable
class LocationDirectory(Protocol):
    async def get(self, location_id: str) -> Optional[Location]:
        ...


@runtime_checkable
class AppointmentSnapshotSource(Protocol):
    async def fetch(self, dates: Iterable[date], party_ids: Iterable[str]) -> List[AppointmentSnapshot]:
        ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    async def dispatch(self, event: NotificationEvent) -> None:
        ...


class StaticAvailabilityProvider:
    def __init__(self, schedule: Optional[Mapping[str, Mapping[str, Iterable[int]]]] = None):
        self._schedule: Dict[str, Dict[str, Set[int]]] = {
            assistant_id: {loc: set(days) for loc, days in locations.items()}
            for assistant_id, locations in (schedule or {}).items()
        }

    def add(self, assistant_id: str, location_id: Optional[str] = None, weekdays: Iterable[int] = range(7)) -> None:
        locations = self._schedule.setdefault(assistant_id, {})
        if location_id is not None:
            locations.setdefault(location_id, set()).update(weekdays)

    async def active_assistants(self) -> List[str]:
        return list(self._schedule)

    async def working_days(self, assistant_id: str) -> Dict[str, Set[int]]:
        return {loc: set(days) for loc, days in self._schedule.get(assistant_id, {}).items()}


class StaticLocationDirectory:
    def __init__(self, locations: Sequence[Location] = ()):
        self._locations = {loc.location_id: loc for loc in locations}

    async def get(self, location_id: str) -> Optional[Location]:
        return self._locations.get(location_id)


class InMemoryAppointmentSource:
    def __init__(self, appointments: Sequence[AppointmentSnapshot] = ()):
        self.appointments: List[AppointmentSnapshot] = list(appointments)
        self.calls: List[tuple] = []

    def add(self, appointment: AppointmentSnapshot) -> None:
        self.appointments.append(appointment)

    async def fetch(self, dates: Iterable[date], party_ids: Iterable[str]) -> List[AppointmentSnapshot]:
        wanted_dates = set(dates)
        wanted_parties = set(party_ids)
        self.calls.append((frozenset(wanted_dates), frozenset(wanted_parties)))
        return [
            appt
            for appt in self.appointments
            if appt.date in wanted_dates
            and appt.party_id in wanted_parties
            and appt.status != "cancelled"
        ]


__all__ = [
    "AppointmentSnapshot",
    "Location",
    "NotificationEvent",
    "AvailabilityProvider",
    "LocationDirectory",
    "AppointmentSnapshotSource",
    "NotificationDispatcher",
    "StaticAvailabilityProvider",
    "StaticLocationDirectory",
    "InMemoryAppointmentSource",
]
