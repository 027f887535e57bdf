"""
Domain Entities - Core immutable business objects.
"""

from .money import Money
from .cost_breakdown import (
    CostCategory,
    CostBreakdown,
    LaborCostItem,
    MaterialCostItem,
    EquipmentCostItem,
    OverheadCostItem,
)
from .budget import BudgetCategory, BudgetStatus, ProjectBudget
from .cost_entry import CostEntry, EntryKind
from .cost_ledger import CostLedger
from .project import Project, ProjectStatus, ProjectTimeline

__all__ = [
    'Money',
    'CostCategory', 'CostBreakdown',
    'LaborCostItem', 'MaterialCostItem', 'EquipmentCostItem', 'OverheadCostItem',
    'BudgetCategory', 'BudgetStatus', 'ProjectBudget',
    'CostEntry', 'EntryKind',
    'CostLedger',
    'Project', 'ProjectStatus', 'ProjectTimeline',
]
