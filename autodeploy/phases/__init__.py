"""Deployment pipeline phases."""

from autodeploy.phases.base import BasePhase, PhaseContext
from autodeploy.phases.monitoring import MonitoringPhase
from autodeploy.phases.production import ProductionPhase
from autodeploy.phases.staging import StagingPhase
from autodeploy.phases.validation import ValidationPhase

__all__ = [
    "BasePhase",
    "PhaseContext",
    "ValidationPhase",
    "StagingPhase",
    "ProductionPhase",
    "MonitoringPhase",
]
