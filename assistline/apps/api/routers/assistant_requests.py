import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from assistline.apps.api.dependencies import (
    get_appointment_source,
    get_machine,
    get_principal,
    get_resolver,
)
from assistline.apps.api.schemas import (
    AssignPayload,
    AssignResponse,
    AssistantRequestCreate,
    AssistantRequestOut,
    ConflictOut,
    ConflictReport,
    DeclinePayload,
    DoubleBookingOut,
    OverviewOut,
    RespondPayload,
    TransitionPayload,
    WarningOut,
)
from assistline.domain.assignment_service import AssignmentStateMachine
from assistline.domain.conflicts import PARTY_CHOICES, PARTY_STYLIST, find_conflicts, find_double_bookings
from assistline.domain.errors import PermissionDeniedError
from assistline.domain.interfaces import AppointmentSnapshotSource
from assistline.domain.manual_assignment import ManualAssignmentResolver
from assistline.domain.overview import summarize
from assistline.domain.permissions import Principal

router = APIRouter(prefix="/api/assistant-requests", tags=["assistant-requests"])
logger = logging.getLogger(__name__)


def _out(items) -> List[AssistantRequestOut]:
    return [AssistantRequestOut.build(item) for item in items]


def _require_admin(principal: Principal, action: str) -> None:
    if not principal.is_admin:
        raise PermissionDeniedError(action, user_id=principal.user_id)


@router.get("", response_model=List[AssistantRequestOut])
async def list_requests(
    view: Optional[str] = Query(default=None, pattern="^(stylist|assistant|all|open)$"),
    location_id: Optional[str] = Query(default=None),
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    if view is None:
        view = "all" if principal.is_admin else "assistant" if principal.is_assistant else "stylist"
    if view == "all":
        items = await machine.list_all(location_id, principal=principal)
    elif view == "assistant":
        items = await machine.list_by_assistant(principal.user_id, location_id)
    elif view == "open":
        if not (principal.is_assistant or principal.is_admin):
            raise PermissionDeniedError("browse open requests", user_id=principal.user_id)
        items = await machine.list_open(location_id)
    else:
        items = await machine.list_by_stylist(principal.user_id, location_id)
    return _out(items)


@router.get("/attention", response_model=List[AssistantRequestOut])
async def attention_queue(
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    _require_admin(principal, "view the attention queue")
    return _out(await machine.list_needing_attention())


@router.get("/overview", response_model=OverviewOut)
async def overview(
    location_id: Optional[str] = Query(default=None),
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    if principal.is_admin:
        items = await machine.list_all(location_id, principal=principal)
    elif principal.is_assistant:
        items = await machine.list_by_assistant(principal.user_id, location_id)
    else:
        items = await machine.list_by_stylist(principal.user_id, location_id)
    return OverviewOut(**summarize(items).as_dict())


@router.get("/conflicts", response_model=ConflictReport)
async def conflicts(
    party: str = Query(default=PARTY_STYLIST),
    location_id: Optional[str] = Query(default=None),
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
    source: Optional[AppointmentSnapshotSource] = Depends(get_appointment_source),
):
    _require_admin(principal, "view conflicts")
    if party not in PARTY_CHOICES:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Unknown party {party}")
    active = await machine.list_active(location_id)
    grouped = await find_conflicts(active, source, party=party) if source is not None else {}
    return ConflictReport(
        conflicts=[ConflictOut(**asdict(c)) for items in grouped.values() for c in items],
        double_bookings=[
            DoubleBookingOut(assistant_id=d.assistant_id, date=d.date, request_ids=list(d.request_ids))
            for d in find_double_bookings(active)
        ],
    )


@router.get("/{request_id}", response_model=AssistantRequestOut)
async def get_request(
    request_id: int,
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    return AssistantRequestOut.build(await machine.get(request_id, principal=principal))


@router.post("", response_model=AssistantRequestOut, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: AssistantRequestCreate,
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    created = await machine.create(
        stylist_id=payload.stylist_id or principal.user_id,
        client_name=payload.client_name,
        service_id=payload.service_id,
        request_date=payload.request_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        location_id=payload.location_id,
        notes=payload.notes,
        recurrence_type=payload.recurrence_type,
        recurrence_end_date=payload.recurrence_end_date,
        response_deadline_hours=payload.response_deadline_hours,
        principal=principal,
    )
    return AssistantRequestOut.build(created)


@router.post("/{request_id}/assign", response_model=AssignResponse)
async def assign_request(
    request_id: int,
    payload: AssignPayload,
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
    resolver: ManualAssignmentResolver = Depends(get_resolver),
):
    assistant_id = payload.assistant_id or principal.user_id
    if principal.is_admin:
        outcome = await resolver.assign(
            request_id,
            assistant_id,
            principal=principal,
            expected_version=payload.expected_version,
        )
        return AssignResponse(
            request=AssistantRequestOut.build(outcome.request),
            warnings=[WarningOut.build(w) for w in outcome.warnings],
        )
    updated = await machine.assign(
        request_id,
        assistant_id,
        principal=principal,
        expected_version=payload.expected_version,
    )
    return AssignResponse(request=AssistantRequestOut.build(updated))


@router.post("/{request_id}/auto-assign", response_model=AssistantRequestOut)
async def auto_assign_request(
    request_id: int,
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    _require_admin(principal, "auto-assign")
    updated = await machine.matcher.auto_assign(request_id)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No eligible assistant available")
    return AssistantRequestOut.build(updated)


@router.post("/{request_id}/accept", response_model=AssistantRequestOut)
async def accept_request(
    request_id: int,
    payload: RespondPayload,
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    updated = await machine.accept(
        request_id,
        payload.assistant_id or principal.user_id,
        principal=principal,
        expected_version=payload.expected_version,
    )
    return AssistantRequestOut.build(updated)


@router.post("/{request_id}/decline", response_model=AssistantRequestOut)
async def decline_request(
    request_id: int,
    payload: DeclinePayload,
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    updated = await machine.decline(
        request_id,
        payload.assistant_id or principal.user_id,
        principal=principal,
        expected_version=payload.expected_version,
        auto_reassign=payload.auto_reassign,
    )
    return AssistantRequestOut.build(updated)


@router.post("/{request_id}/cancel", response_model=AssistantRequestOut)
async def cancel_request(
    request_id: int,
    payload: Optional[TransitionPayload] = None,
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    updated = await machine.cancel(
        request_id,
        principal=principal,
        expected_version=payload.expected_version if payload else None,
    )
    return AssistantRequestOut.build(updated)


@router.post("/{request_id}/complete", response_model=AssistantRequestOut)
async def complete_request(
    request_id: int,
    payload: Optional[TransitionPayload] = None,
    principal: Principal = Depends(get_principal),
    machine: AssignmentStateMachine = Depends(get_machine),
):
    updated = await machine.complete(
        request_id,
        principal=principal,
        expected_version=payload.expected_version if payload else None,
    )
    return AssistantRequestOut.build(updated)
