from datetime import date, datetime, time, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestStatus:
    PENDING = "pending"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.ASSIGNED})
TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED})
ALL_STATUSES = ACTIVE_STATUSES | TERMINAL_STATUSES


class RecurrenceType:
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"


class DeclineReason:
    DECLINED = "declined"
    TIMEOUT = "timeout"


class AssistantRequest(Base):
    __tablename__ = "assistant_requests"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_assistant_requests_time_range"),
        CheckConstraint(
            "status IN ('pending', 'assigned', 'completed', 'cancelled')",
            name="ck_assistant_requests_status",
        ),
        Index("ix_assistant_requests_date_status", "request_date", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    stylist_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    assistant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    location_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    client_name: Mapped[str] = mapped_column(String(160), nullable=False)
    service_id: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    request_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    status: Mapped[str] = mapped_column(String(16), default=RequestStatus.PENDING, nullable=False)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    response_deadline_hours: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    response_time_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    parent_request_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("assistant_requests.id", ondelete="SET NULL"), nullable=True
    )
    recurrence_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    recurrence_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    declines: Mapped[List["RequestDecline"]] = relationship(
        back_populates="request",
        order_by="RequestDecline.declined_at",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @validates("status")
    def _normalize_status(self, _key, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        normalized = str(value).strip().lower()
        if normalized not in ALL_STATUSES:
            raise ValueError(f"Unknown assistant request status: {value!r}")
        return normalized

    @property
    def declined_by(self) -> List[str]:
        """Assistants who declined, oldest first; each appears once."""
        return [decline.assistant_id for decline in self.declines]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_awaiting_response(self) -> bool:
        return self.status == RequestStatus.ASSIGNED and self.accepted_at is None

    def __repr__(self) -> str:
        return (
            f"<AssistantRequest {self.id} {self.request_date} "
            f"{self.start_time}-{self.end_time} {self.status}>"
        )


class RequestDecline(Base):
    """One row per assistant who turned a request down (or let it time out)."""

    __tablename__ = "assistant_request_declines"
    __table_args__ = (
        UniqueConstraint("request_id", "assistant_id", name="uq_request_decline_assistant"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(
        ForeignKey("assistant_requests.id", ondelete="CASCADE"), nullable=False
    )
    assistant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(String(16), default=DeclineReason.DECLINED, nullable=False)
    declined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    request: Mapped["AssistantRequest"] = relationship(back_populates="declines")

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<RequestDecline request={self.request_id} assistant={self.assistant_id} {self.reason}>"


class AssistantRotation(Base):
    __tablename__ = "assistant_rotation"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    assistant_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    location_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    total_assignments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<AssistantRotation {self.assistant_id} total={self.total_assignments}>"


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    changes: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


class OutboxNotification(Base):
    __tablename__ = "outbox_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    request_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    recipient_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<OutboxNotification {self.type} request={self.request_id} status={self.status}>"
