"""Periodic expiry sweep for unanswered assignments.

Only started when ``AUTO_ESCALATION_ENABLED`` is set; otherwise overdue
requests wait in the attention queue for an admin.
"""

import asyncio
import logging

from assistline.core.error_handler import resilient_task
from assistline.domain.assignment_service import AssignmentStateMachine
from assistline.domain.escalation import sweep_expired

logger = logging.getLogger(__name__)


@resilient_task(
    task_name="expired_assignment_sweeper",
    retry_on_error=True,
    retry_delay=60.0,
)
async def periodic_expired_assignment_sweep(machine: AssignmentStateMachine, interval_seconds: int = 300) -> None:
    logger.info("Started expired assignment sweeper (interval: %ds)", interval_seconds)

    while True:
        try:
            report = await sweep_expired(machine)
            if report.expired:
                logger.warning(
                    "Expired %d unanswered assignments (%d reassigned)",
                    len(report.expired),
                    len(report.reassigned),
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Error in expired assignment sweep: %s", exc, exc_info=True)

        await asyncio.sleep(interval_seconds)


__all__ = ["periodic_expired_assignment_sweep"]
