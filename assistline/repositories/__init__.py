"""Repository implementations for domain models."""

from .assistant_request import AssistantRequestRepository
from .audit import AuditRepository
from .decline import DeclineRepository
from .rotation import RotationRepository

__all__ = [
    "AssistantRequestRepository",
    "AuditRepository",
    "DeclineRepository",
    "RotationRepository",
]
