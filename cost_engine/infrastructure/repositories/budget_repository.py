"""
Budget Repository - Persistence of project budgets.

Implements the BudgetRepository port:
- insert is a conditional write guarded by UNIQUE(project_id)
- updates replace status and categories of the stored budget
"""
from typing import Optional

from sqlalchemy.orm import Session

from cost_engine.domain.entities import BudgetCategory, BudgetStatus, ProjectBudget
from cost_engine.domain.entities.money import from_cents, to_cents
from cost_engine.domain.exceptions import DuplicateBudgetError
from cost_engine.models import BudgetCategoryRecord, BudgetRecord
from .base_repository import BaseRepository


def to_budget(record: BudgetRecord) -> ProjectBudget:
    return ProjectBudget(
        project_id=record.project_id,
        categories=tuple(
            BudgetCategory(c.name, from_cents(c.allocated_cents), c.description or "")
            for c in record.categories
        ),
        currency=record.currency,
        status=BudgetStatus(record.status),
        budget_id=record.budget_id,
    )


class SqlBudgetRepository(BaseRepository[BudgetRecord]):
    """Budgets stored in the budgets and budget_categories tables."""

    def __init__(self, session: Session):
        super().__init__(session, BudgetRecord)

    def find_by_project_id(self, project_id: str) -> Optional[ProjectBudget]:
        record = self._read("find budget", lambda: self._first(project_id=project_id))
        return to_budget(record) if record else None

    def save(self, budget: ProjectBudget) -> ProjectBudget:
        """
        Insert or update a budget.

        Raises:
            DuplicateBudgetError: The project already has a different budget
            RepositoryError: Any other storage failure
        """
        record = self._read("find budget", lambda: self._first(budget_id=budget.budget_id))
        if record is None:
            record = BudgetRecord(budget_id=budget.budget_id, project_id=budget.project_id)
            self.session.add(record)
        elif record.project_id != budget.project_id:
            raise DuplicateBudgetError(budget.project_id)

        record.currency = budget.currency
        record.status = budget.status.value
        self._sync_categories(record, budget)
        self._commit("save budget", on_conflict=lambda: DuplicateBudgetError(budget.project_id))
        return budget

    @staticmethod
    def _sync_categories(record: BudgetRecord, budget: ProjectBudget) -> None:
        # Rows are updated in place by name so UNIQUE(budget_fk, name) holds during flush
        existing = {c.name: c for c in record.categories}
        rows = []
        for position, category in enumerate(budget.categories):
            row = existing.get(category.name) or BudgetCategoryRecord(name=category.name)
            row.position = position
            row.allocated_cents = to_cents(category.allocated_amount)
            row.description = category.description
            rows.append(row)
        record.categories = rows
