"""
Project Budget Entity - Planned allocation across named cost categories.

A project has at most one budget. Budgets move DRAFT -> ACTIVE -> LOCKED;
each transition returns a new budget instance.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple, Union
from uuid import uuid4

from ..exceptions import InvalidBudgetTransitionError, ValidationError
from .cost_breakdown import CostBreakdown
from .money import Money, normalize_currency, quantize_amount, to_decimal


class BudgetStatus(str, Enum):
    """Lifecycle state of a project budget."""
    DRAFT = "draft"
    ACTIVE = "active"
    LOCKED = "locked"


_ALLOWED_TRANSITIONS = {
    BudgetStatus.DRAFT: BudgetStatus.ACTIVE,
    BudgetStatus.ACTIVE: BudgetStatus.LOCKED,
}


@dataclass(frozen=True)
class BudgetCategory:
    """
    One budgeted cost category.

    Attributes:
        name: Category name, unique within a budget (e.g. 'labor')
        allocated_amount: Planned amount (non-negative)
        description: Free-text description
    """

    name: str
    allocated_amount: Decimal
    description: str = ""

    def __post_init__(self):
        name = (self.name or "").strip()
        if not name:
            raise ValidationError("name", "category name must not be empty")
        amount = to_decimal(self.allocated_amount, "allocated_amount")
        if amount < 0:
            raise ValidationError("allocated_amount", f"category '{name}' has a negative allocation")
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'allocated_amount', quantize_amount(amount))

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'allocated_amount': str(self.allocated_amount),
            'description': self.description,
        }


CategoryInput = Union[BudgetCategory, dict]


def _coerce_category(value: CategoryInput) -> BudgetCategory:
    if isinstance(value, BudgetCategory):
        return value
    if isinstance(value, dict):
        return BudgetCategory(
            name=value.get('name', ''),
            allocated_amount=value.get('allocated_amount', value.get('allocatedAmount', 0)),
            description=value.get('description', ''),
        )
    raise ValidationError("categories", f"unsupported category value {value!r}")


@dataclass(frozen=True)
class ProjectBudget:
    """
    Budget for exactly one project.

    Attributes:
        project_id: Owning project (by reference)
        categories: Ordered, uniquely named categories
        currency: Currency shared by every amount in the project
        status: Lifecycle state
        budget_id: Identifier assigned at creation
    """

    project_id: str
    categories: Tuple[BudgetCategory, ...]
    currency: str = "USD"
    status: BudgetStatus = BudgetStatus.DRAFT
    budget_id: str = field(default_factory=lambda: str(uuid4()))

    @classmethod
    def create(
        cls,
        project_id: str,
        categories: Iterable[CategoryInput],
        currency: str = "USD",
        budget_id: Optional[str] = None,
    ) -> 'ProjectBudget':
        """
        Create a validated DRAFT budget.

        Raises:
            ValidationError: On empty project id, no categories, duplicate
                category names or negative allocations
        """
        if not project_id or not str(project_id).strip():
            raise ValidationError("project_id", "must not be empty")

        parsed = tuple(_coerce_category(c) for c in categories)
        if not parsed:
            raise ValidationError("categories", "at least one category is required")

        seen = set()
        for category in parsed:
            if category.name in seen:
                raise ValidationError("categories", f"duplicate category name '{category.name}'")
            seen.add(category.name)

        return cls(
            project_id=str(project_id),
            categories=parsed,
            currency=normalize_currency(currency),
            budget_id=budget_id or str(uuid4()),
        )

    @classmethod
    def from_breakdown(cls, project_id: str, breakdown: CostBreakdown) -> 'ProjectBudget':
        """Build a budget allocating each standard category at the breakdown's total."""
        return cls.create(
            project_id,
            [
                BudgetCategory(category.value, total.amount)
                for category, total in breakdown.category_totals().items()
            ],
            currency=breakdown.currency,
        )

    @property
    def total_budget(self) -> Money:
        return Money(
            sum((c.allocated_amount for c in self.categories), Decimal("0.00")),
            self.currency,
        )

    @property
    def category_names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.categories)

    def get_category(self, name: str) -> Optional[BudgetCategory]:
        for category in self.categories:
            if category.name == name:
                return category
        return None

    def allocations(self) -> Dict[str, Decimal]:
        return {c.name: c.allocated_amount for c in self.categories}

    @property
    def is_locked(self) -> bool:
        return self.status == BudgetStatus.LOCKED

    def _transition(self, target: BudgetStatus) -> 'ProjectBudget':
        if _ALLOWED_TRANSITIONS.get(self.status) != target:
            raise InvalidBudgetTransitionError(self.status.value, target.value)
        return replace(self, status=target)

    def activate(self) -> 'ProjectBudget':
        """DRAFT -> ACTIVE."""
        return self._transition(BudgetStatus.ACTIVE)

    def lock(self) -> 'ProjectBudget':
        """ACTIVE -> LOCKED."""
        return self._transition(BudgetStatus.LOCKED)

    def to_dict(self) -> dict:
        """Persisted-state shape of the budget record."""
        return {
            'budget_id': self.budget_id,
            'project_id': self.project_id,
            'categories': [c.to_dict() for c in self.categories],
            'total_budget': str(self.total_budget.amount),
            'currency': self.currency,
            'status': self.status.value,
        }
