from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from assistline.core.time_utils import ensure_aware_utc
from assistline.domain import deadlines
from assistline.domain.manual_assignment import AssignmentWarning
from assistline.domain.models import AssistantRequest


class AssistantRequestCreate(BaseModel):
    stylist_id: Optional[str] = Field(default=None, description="Defaults to the calling user")
    client_name: str = Field(..., min_length=1, max_length=160)
    service_id: str = Field(..., min_length=1, max_length=64)
    request_date: date
    start_time: time
    end_time: time
    location_id: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = None
    recurrence_type: Optional[str] = Field(default=None, pattern="^(weekly|biweekly)$")
    recurrence_end_date: Optional[date] = None
    response_deadline_hours: Optional[int] = Field(default=None, ge=1, le=168)


class TransitionPayload(BaseModel):
    expected_version: Optional[int] = Field(default=None, ge=1)


class AssignPayload(TransitionPayload):
    assistant_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class RespondPayload(TransitionPayload):
    assistant_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class DeclinePayload(RespondPayload):
    auto_reassign: bool = False


class DeadlineOut(BaseModel):
    deadline_at: datetime
    remaining_seconds: int
    overdue: bool


class AssistantRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stylist_id: str
    assistant_id: Optional[str]
    location_id: Optional[str]
    client_name: str
    service_id: str
    notes: Optional[str]
    request_date: date
    start_time: time
    end_time: time
    status: str
    assigned_at: Optional[datetime]
    accepted_at: Optional[datetime]
    response_deadline_hours: int
    response_time_seconds: Optional[int]
    parent_request_id: Optional[int]
    recurrence_type: Optional[str]
    recurrence_end_date: Optional[date]
    declined_by: List[str]
    version: int
    created_at: datetime
    updated_at: datetime
    deadline: Optional[DeadlineOut] = None

    @classmethod
    def build(cls, request: AssistantRequest, now: Optional[datetime] = None) -> "AssistantRequestOut":
        out = cls.model_validate(request)
        snap = deadlines.snapshot(request, now)
        return out.model_copy(
            update={
                "assigned_at": ensure_aware_utc(request.assigned_at),
                "accepted_at": ensure_aware_utc(request.accepted_at),
                "created_at": ensure_aware_utc(request.created_at),
                "updated_at": ensure_aware_utc(request.updated_at),
                "deadline": DeadlineOut(**asdict(snap)) if snap else None,
            }
        )


class WarningOut(BaseModel):
    code: str
    message: str
    details: dict = Field(default_factory=dict)

    @classmethod
    def build(cls, warning: AssignmentWarning) -> "WarningOut":
        return cls(code=warning.code, message=warning.message, details=dict(warning.details))


class AssignResponse(BaseModel):
    request: AssistantRequestOut
    warnings: List[WarningOut] = Field(default_factory=list)


class ConflictOut(BaseModel):
    request_id: int
    appointment_id: str
    party_id: str
    date: date
    request_start: time
    request_end: time
    appointment_start: time
    appointment_end: time


class DoubleBookingOut(BaseModel):
    assistant_id: str
    date: date
    request_ids: List[int]


class ConflictReport(BaseModel):
    conflicts: List[ConflictOut] = Field(default_factory=list)
    double_bookings: List[DoubleBookingOut] = Field(default_factory=list)


class OverviewOut(BaseModel):
    total: int
    this_week: int
    pending: int
    awaiting_response: int
    accepted: int
    completed: int
    cancelled: int
    total_declines: int
    acceptance_rate: int
