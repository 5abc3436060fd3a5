"""
Planning Provider Package

This package contains the provider interface and implementations for the
generative planning service used by the repair planner.
"""

from .base import BasePlanningProvider, PlanningRequest, PlanningResponse, ProviderConfig
from .foundry_provider import FoundryPlanningProvider

__all__ = [
    "BasePlanningProvider",
    "PlanningRequest",
    "PlanningResponse",
    "ProviderConfig",
    "FoundryPlanningProvider",
]
