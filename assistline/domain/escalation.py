"""Sweep for assignments nobody answered in time."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from assistline.core.time_utils import ensure_aware_utc

from .deadlines import is_overdue
from .errors import ConflictError

if TYPE_CHECKING:
    from .assignment_service import AssignmentStateMachine

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: List[int] = field(default_factory=list)
    reassigned: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "expired": list(self.expired),
            "reassigned": list(self.reassigned),
            "skipped": list(self.skipped),
        }


async def sweep_expired(
    machine: "AssignmentStateMachine",
    *,
    now: Optional[datetime] = None,
    reassign: bool = True,
) -> SweepReport:
    """
    Expire every overdue unanswered assignment and optionally re-offer it.

    Each request goes through its own guarded transition, so a request an
    admin touched in the meantime is skipped rather than overwritten.
    """
    current = ensure_aware_utc(now) if now is not None else machine._now()
    report = SweepReport()
    for request in await machine.list_needing_attention(current):
        if not is_overdue(request, current):
            continue
        try:
            await machine.expire(request.id, now=current)
        except ConflictError:
            report.skipped.append(request.id)
            continue
        report.expired.append(request.id)
        if reassign:
            updated = await machine.matcher.auto_assign_safely(request.id)
            if updated is not None:
                report.reassigned.append(request.id)

    if report.expired or report.skipped:
        logger.info(
            "expired_assignment_sweep expired=%d reassigned=%d skipped=%d",
            len(report.expired),
            len(report.reassigned),
            len(report.skipped),
        )
    return report


__all__ = ["SweepReport", "sweep_expired"]
