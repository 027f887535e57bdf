"""
Repository Ports - Interfaces of the external collaborators the engine consumes.

Implementations are injected into CostControlService; see
cost_engine.infrastructure.repositories for SQLAlchemy and in-memory versions.
"""
from typing import List, Optional, Protocol

from .entities import CostEntry, Project, ProjectBudget


class ProjectRepository(Protocol):
    """Read access to the external project aggregate."""

    def find_by_id(self, project_id: str) -> Optional[Project]:
        ...


class BudgetRepository(Protocol):
    """Persistence of project budgets (at most one per project)."""

    def save(self, budget: ProjectBudget) -> ProjectBudget:
        """
        Insert a new budget or update the stored one with the same budget_id.

        Inserting must be a conditional write that raises
        DuplicateBudgetError when the project already has a budget.
        """
        ...

    def find_by_project_id(self, project_id: str) -> Optional[ProjectBudget]:
        ...


class CostRepository(Protocol):
    """Append-only persistence backing the cost ledger."""

    def save(self, entry: CostEntry, expected_version: int) -> CostEntry:
        """
        Persist an entry whose sequence is expected_version + 1.

        Raises ConcurrencyError if another append got there first.
        """
        ...

    def find_by_project_id(self, project_id: str) -> List[CostEntry]:
        """Entries of a project in sequence order."""
        ...
