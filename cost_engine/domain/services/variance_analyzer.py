"""
Variance Analyzer - Budget vs actual comparison per category.

For each budget category:
- actual = Σ(ledger entries in the category), reversals subtracted
- variance = actual - allocated (positive = overrun)
- variance % = variance / allocated × 100, undefined when allocated is 0

Pure function of (budget, ledger, as_of): no state, safe to call
concurrently and repeatedly.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Tuple

from cost_engine.config import CostEngineConfig, get_config
from cost_engine.domain.entities import CostLedger, ProjectBudget

PERCENT = Decimal("0.01")
UNDEFINED = "undefined"


class VarianceBand(str, Enum):
    """Reason attribution band for a variance percentage."""
    NORMAL = "normal"
    MINOR = "minor deviation"
    SIGNIFICANT = "significant deviation requiring review"


def variance_percentage(variance: Decimal, allocated: Decimal) -> Optional[Decimal]:
    """
    Variance as a percentage of the allocation.

    Returns:
        Percentage rounded to 0.01, or None (undefined) when allocated is 0
    """
    if allocated == 0:
        return None
    return (variance / allocated * 100).quantize(PERCENT, rounding=ROUND_HALF_UP)


def _format_percentage(value: Optional[Decimal]):
    return str(value) if value is not None else UNDEFINED


@dataclass(frozen=True)
class CategoryVariance:
    """Variance of one budget category."""
    category: str
    allocated: Decimal
    actual: Decimal
    variance: Decimal
    variance_percentage: Optional[Decimal]
    band: VarianceBand
    entry_count: int

    @property
    def percentage_defined(self) -> bool:
        return self.variance_percentage is not None

    @property
    def is_overrun(self) -> bool:
        return self.actual > self.allocated

    def to_dict(self) -> dict:
        return {
            'category': self.category,
            'allocated': str(self.allocated),
            'actual': str(self.actual),
            'variance': str(self.variance),
            'variance_percentage': _format_percentage(self.variance_percentage),
            'reason': self.band.value,
            'entry_count': self.entry_count,
        }


@dataclass(frozen=True)
class VarianceReport:
    """Per-category and aggregate budget vs actual variance."""
    project_id: str
    currency: str
    as_of: Optional[date]
    categories: Tuple[CategoryVariance, ...]
    total_allocated: Decimal
    total_actual: Decimal
    total_variance: Decimal
    total_variance_percentage: Optional[Decimal]
    band: VarianceBand

    def get(self, category: str) -> Optional[CategoryVariance]:
        for item in self.categories:
            if item.category == category:
                return item
        return None

    @property
    def overrun_categories(self) -> Tuple[CategoryVariance, ...]:
        return tuple(c for c in self.categories if c.is_overrun)

    @property
    def is_within_budget(self) -> bool:
        return not self.overrun_categories

    def to_dict(self) -> dict:
        return {
            'project_id': self.project_id,
            'currency': self.currency,
            'as_of': self.as_of.isoformat() if self.as_of else None,
            'categories': [c.to_dict() for c in self.categories],
            'total_allocated': str(self.total_allocated),
            'total_actual': str(self.total_actual),
            'total_variance': str(self.total_variance),
            'total_variance_percentage': _format_percentage(self.total_variance_percentage),
            'reason': self.band.value,
        }


class VarianceAnalyzer:
    """
    Computes budget vs actual variance.

    Bands (configurable, defaults shown):
    - |variance %| < 5: normal
    - 5 <= |variance %| <= 15: minor deviation
    - |variance %| > 15: significant deviation requiring review
    """

    def __init__(self, config: Optional[CostEngineConfig] = None):
        self.config = config or get_config()

    def classify(self, percentage: Optional[Decimal], actual: Decimal = Decimal("0")) -> VarianceBand:
        """
        Attribute a reason band to a variance percentage.

        An undefined percentage (zero allocation) is normal while nothing
        has been spent and significant as soon as anything has.
        """
        if percentage is None:
            return VarianceBand.NORMAL if actual == 0 else VarianceBand.SIGNIFICANT

        magnitude = abs(float(percentage))
        if magnitude < self.config.minor_variance_threshold:
            return VarianceBand.NORMAL
        elif magnitude <= self.config.significant_variance_threshold:
            return VarianceBand.MINOR
        else:
            return VarianceBand.SIGNIFICANT

    def analyze(
        self,
        budget: ProjectBudget,
        ledger: CostLedger,
        as_of: Optional[date] = None,
    ) -> VarianceReport:
        """
        Compare a budget against ledger contents.

        Args:
            budget: Project budget
            ledger: Cost ledger of the same project
            as_of: Only entries dated on or before this date count (all when None)

        Returns:
            VarianceReport; an empty ledger yields zero actuals, never an error
        """
        totals = ledger.totals_by_category(as_of)
        entries = ledger.entries_up_to(as_of)

        items = []
        for category in budget.categories:
            actual = totals.get(category.name, Decimal("0.00"))
            variance = actual - category.allocated_amount
            percentage = variance_percentage(variance, category.allocated_amount)
            items.append(CategoryVariance(
                category=category.name,
                allocated=category.allocated_amount,
                actual=actual,
                variance=variance,
                variance_percentage=percentage,
                band=self.classify(percentage, actual),
                entry_count=sum(1 for e in entries if e.category == category.name),
            ))

        total_allocated = sum((i.allocated for i in items), Decimal("0.00"))
        total_actual = sum((i.actual for i in items), Decimal("0.00"))
        total_variance = total_actual - total_allocated
        total_percentage = variance_percentage(total_variance, total_allocated)

        return VarianceReport(
            project_id=budget.project_id,
            currency=budget.currency,
            as_of=as_of,
            categories=tuple(items),
            total_allocated=total_allocated,
            total_actual=total_actual,
            total_variance=total_variance,
            total_variance_percentage=total_percentage,
            band=self.classify(total_percentage, total_actual),
        )

    def snapshot_series(
        self,
        budget: ProjectBudget,
        ledger: CostLedger,
        as_of: date,
        count: Optional[int] = None,
        period_days: Optional[int] = None,
    ) -> List[VarianceReport]:
        """
        Variance reports at consecutive period cut-offs ending at as_of.

        Used as the evaluation snapshots of the trend alert rule.

        Returns:
            Reports ordered oldest first; the last one is as of as_of
        """
        count = count or self.config.trend_snapshot_count
        period_days = period_days or self.config.period_days
        cutoffs = [as_of - timedelta(days=period_days * k) for k in range(count - 1, -1, -1)]
        return [self.analyze(budget, ledger, cutoff) for cutoff in cutoffs]
