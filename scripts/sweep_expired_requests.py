#!/usr/bin/env python3
"""
Expire assignments nobody answered within their response window.

Each overdue request goes back to pending with a ``timeout`` decline for
the silent assistant, then (unless ``--no-reassign``) is offered to the
next assistant in rotation.

Usage:
    python scripts/sweep_expired_requests.py [--no-reassign] [--assistants a1,a2]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from assistline.core.logging import configure_logging
from assistline.domain.assignment_service import AssignmentStateMachine
from assistline.domain.escalation import sweep_expired
from assistline.domain.interfaces import StaticAvailabilityProvider
from assistline.services.notifications import OutboxNotificationDispatcher

logger = logging.getLogger("assistline.scripts.sweep")


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--no-reassign", action="store_true", help="only expire, do not re-offer")
    parser.add_argument(
        "--assistants",
        default="",
        help="comma-separated assistant ids eligible for automatic reassignment",
    )
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = _parse_args(argv)
    configure_logging()

    availability = StaticAvailabilityProvider()
    for assistant_id in filter(None, (a.strip() for a in args.assistants.split(","))):
        availability.add(assistant_id)

    machine = AssignmentStateMachine(dispatcher=OutboxNotificationDispatcher(), availability=availability)
    try:
        report = await sweep_expired(machine, reassign=not args.no_reassign)
    except Exception:
        logger.exception("Expired assignment sweep failed")
        return 1
    print(json.dumps(report.as_dict()))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
