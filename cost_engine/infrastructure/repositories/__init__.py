"""
Repository implementations for the data access layer.
"""
from .base_repository import BaseRepository
from .project_repository import SqlProjectRepository
from .budget_repository import SqlBudgetRepository
from .cost_repository import SqlCostRepository
from .memory import InMemoryProjectRepository, InMemoryBudgetRepository, InMemoryCostRepository

__all__ = [
    'BaseRepository',
    'SqlProjectRepository',
    'SqlBudgetRepository',
    'SqlCostRepository',
    'InMemoryProjectRepository',
    'InMemoryBudgetRepository',
    'InMemoryCostRepository',
]
