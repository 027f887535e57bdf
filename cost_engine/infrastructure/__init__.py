"""
Infrastructure Layer - Repository implementations.
"""

from .repositories import (
    BaseRepository,
    SqlProjectRepository,
    SqlBudgetRepository,
    SqlCostRepository,
    InMemoryProjectRepository,
    InMemoryBudgetRepository,
    InMemoryCostRepository,
)

__all__ = [
    'BaseRepository',
    'SqlProjectRepository',
    'SqlBudgetRepository',
    'SqlCostRepository',
    'InMemoryProjectRepository',
    'InMemoryBudgetRepository',
    'InMemoryCostRepository',
]
