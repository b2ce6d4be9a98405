"""Request-scoped dependencies for the API.

Caller identity comes from ``X-User-Id`` / ``X-User-Roles`` headers set
by the gateway in front of this service.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from assistline.domain.assignment_service import AssignmentStateMachine
from assistline.domain.interfaces import AppointmentSnapshotSource
from assistline.domain.manual_assignment import ManualAssignmentResolver
from assistline.domain.permissions import Principal


async def get_principal(
    x_user_id: Optional[str] = Header(default=None),
    x_user_roles: Optional[str] = Header(default=None),
) -> Principal:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    roles = (x_user_roles or "").split(",")
    return Principal.of(x_user_id.strip(), roles)


def get_machine(request: Request) -> AssignmentStateMachine:
    return request.app.state.assignment_machine


def get_resolver(request: Request) -> ManualAssignmentResolver:
    return request.app.state.manual_resolver


def get_appointment_source(request: Request) -> Optional[AppointmentSnapshotSource]:
    return getattr(request.app.state, "appointment_source", None)
