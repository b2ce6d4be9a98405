"""Role checks for assistant request operations.

Each predicate takes the acting ``Principal`` (``None`` is the system actor
used by the matcher and the expiry sweep) and answers one question. The
state machine calls them before touching the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from .models import AssistantRequest, RequestStatus

ADMIN_ROLES = frozenset({"admin", "manager", "super_admin"})
ASSISTANT_ROLES = frozenset({"assistant", "stylist_assistant"})
STYLIST_ROLES = frozenset({"stylist"})


@dataclass(frozen=True)
class Principal:
    user_id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, user_id: str, roles: Iterable[str] = ()) -> "Principal":
        normalized = frozenset(r.strip().lower() for r in roles if r and r.strip())
        return cls(user_id=str(user_id), roles=normalized)

    @property
    def is_admin(self) -> bool:
        return bool(self.roles & ADMIN_ROLES)

    @property
    def is_assistant(self) -> bool:
        return bool(self.roles & ASSISTANT_ROLES)

    @property
    def is_stylist(self) -> bool:
        return bool(self.roles & STYLIST_ROLES)


def _is_system(principal: Optional[Principal]) -> bool:
    return principal is None


def can_create(principal: Optional[Principal], stylist_id: str) -> bool:
    if _is_system(principal) or principal.is_admin:
        return True
    return principal.is_stylist and principal.user_id == stylist_id


def can_assign(principal: Optional[Principal], request: AssistantRequest, assistant_id: str) -> bool:
    """Admins assign anyone; an assistant may only claim a pending request for themselves."""
    if _is_system(principal) or principal.is_admin:
        return True
    if not principal.is_assistant or principal.user_id != assistant_id:
        return False
    if request.status != RequestStatus.PENDING:
        return False
    return assistant_id not in request.declined_by


def _acts_as_assistant(principal: Principal, request: AssistantRequest, assistant_id: Optional[str]) -> bool:
    acting_for = assistant_id or request.assistant_id
    if acting_for is None or principal.user_id != acting_for:
        return False
    # an open offer can only be answered by the assistant holding it
    if request.status == RequestStatus.ASSIGNED and request.accepted_at is None:
        return request.assistant_id == acting_for
    return True


def can_accept(
    principal: Optional[Principal], request: AssistantRequest, assistant_id: Optional[str] = None
) -> bool:
    """Only the assistant holding an open offer answers it.

    Requests that are not open offers (pending, already accepted, terminal)
    pass here and are rejected by the guarded update as conflicts.
    """
    if _is_system(principal):
        return True
    return _acts_as_assistant(principal, request, assistant_id)


def can_decline(
    principal: Optional[Principal], request: AssistantRequest, assistant_id: Optional[str] = None
) -> bool:
    if _is_system(principal):
        return True
    return _acts_as_assistant(principal, request, assistant_id)


def can_cancel(principal: Optional[Principal], request: AssistantRequest) -> bool:
    if _is_system(principal) or principal.is_admin:
        return True
    return principal.user_id == request.stylist_id


def can_complete(principal: Optional[Principal], request: AssistantRequest) -> bool:
    if _is_system(principal) or principal.is_admin:
        return True
    return principal.user_id in {request.stylist_id, request.assistant_id}


def can_view(principal: Optional[Principal], request: AssistantRequest) -> bool:
    if _is_system(principal) or principal.is_admin:
        return True
    if principal.user_id in {request.stylist_id, request.assistant_id}:
        return True
    # open requests are visible to the assistant pool
    return principal.is_assistant and request.status == RequestStatus.PENDING


def can_view_all(principal: Optional[Principal]) -> bool:
    return _is_system(principal) or principal.is_admin


__all__ = [
    "ADMIN_ROLES",
    "ASSISTANT_ROLES",
    "STYLIST_ROLES",
    "Principal",
    "can_create",
    "can_assign",
    "can_accept",
    "can_decline",
    "can_cancel",
    "can_complete",
    "can_view",
    "can_view_all",
]
