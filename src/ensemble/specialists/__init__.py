"""Specialist roles and the invocation engine."""

from ensemble.specialists.roles import AgentRole, Capability
from ensemble.specialists.models import AgentResponse, SpecialistAgent, SpecialistRequest
from ensemble.specialists.router import SpecialistRouter
from ensemble.specialists.service import SpecialistService

__all__ = [
    "AgentResponse",
    "AgentRole",
    "Capability",
    "SpecialistAgent",
    "SpecialistRequest",
    "SpecialistRouter",
    "SpecialistService",
]
