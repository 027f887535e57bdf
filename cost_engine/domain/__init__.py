"""
Domain Layer - Core business entities and services for cost control.

This module contains:
- entities/: Immutable value objects (CostBreakdown, ProjectBudget, CostEntry) and the CostLedger
- services/: Analysis services and the CostControlService application service
- events/: Domain events and the event bus port
"""

from .entities import CostBreakdown, CostEntry, CostLedger, Money, ProjectBudget
from .result import Failure, OperationResult, Success

__all__ = [
    'CostBreakdown', 'CostEntry', 'CostLedger', 'Money', 'ProjectBudget',
    'Success', 'Failure', 'OperationResult',
]
