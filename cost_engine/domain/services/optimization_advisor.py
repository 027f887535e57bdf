"""
Optimization Advisor - Efficiency metrics and savings recommendations.

Efficiency per category = allocated / actual; values below 1 mean the
category has overspent. Categories below the efficiency threshold become
opportunities, each mapped to one recommendation type with:
- estimated savings = max(0, actual - allocated) × recovery factor
- feasibility from project and budget status (locked projects score 0)
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from cost_engine.config import CostEngineConfig, get_config
from cost_engine.domain.entities import Project, ProjectBudget
from cost_engine.domain.entities.money import quantize_amount
from .variance_analyzer import VarianceReport


class RecommendationType(str, Enum):
    """Fixed recommendation taxonomy."""
    RESOURCE_REALLOCATION = "resource_reallocation"
    VENDOR_RENEGOTIATION = "vendor_renegotiation"
    SCOPE_REDUCTION = "scope_reduction"


_RATIONALE = {
    RecommendationType.RESOURCE_REALLOCATION: "Reassign crews and equipment from lower-priority work to contain {category} spend",
    RecommendationType.VENDOR_RENEGOTIATION: "Renegotiate {category} pricing or rebid open purchase orders",
    RecommendationType.SCOPE_REDUCTION: "Review {category} scope for deferrable or value-engineered items",
}


def _efficiency(allocated: Decimal, actual: Decimal) -> Optional[float]:
    if actual <= 0:
        return None
    return round(float(allocated / actual), 4)


@dataclass(frozen=True)
class EfficiencyMetric:
    """Efficiency of one category (None while nothing has been spent)."""
    category: str
    allocated: Decimal
    actual: Decimal
    efficiency: Optional[float]

    def to_dict(self) -> dict:
        return {
            'category': self.category,
            'allocated': str(self.allocated),
            'actual': str(self.actual),
            'efficiency': self.efficiency,
        }


@dataclass(frozen=True)
class OptimizationOpportunity:
    """A category below the efficiency threshold and what to do about it."""
    category: str
    efficiency: float
    overspend: Decimal
    recommendation: RecommendationType
    estimated_savings: Decimal
    feasibility: float
    rationale: str

    @property
    def score(self) -> float:
        """Expected recoverable amount: savings weighted by feasibility."""
        return round(float(self.estimated_savings) * self.feasibility, 2)

    def to_dict(self) -> dict:
        return {
            'category': self.category,
            'efficiency': self.efficiency,
            'overspend': str(self.overspend),
            'recommendation': self.recommendation.value,
            'estimated_savings': str(self.estimated_savings),
            'feasibility': self.feasibility,
            'score': self.score,
            'rationale': self.rationale,
        }


@dataclass(frozen=True)
class OptimizationReport:
    """Efficiency metrics and ranked opportunities for a project."""
    project_id: str
    currency: str
    metrics: Tuple[EfficiencyMetric, ...]
    overall_efficiency: Optional[float]
    feasibility: float
    opportunities: Tuple[OptimizationOpportunity, ...]

    @property
    def total_potential_savings(self) -> Decimal:
        return sum((o.estimated_savings for o in self.opportunities), Decimal("0.00"))

    def to_dict(self) -> dict:
        return {
            'project_id': self.project_id,
            'currency': self.currency,
            'metrics': [m.to_dict() for m in self.metrics],
            'overall_efficiency': self.overall_efficiency,
            'feasibility': self.feasibility,
            'opportunities': [o.to_dict() for o in self.opportunities],
            'total_potential_savings': str(self.total_potential_savings),
        }


class OptimizationAdvisor:
    """Derives efficiency metrics and savings recommendations."""

    def __init__(self, config: Optional[CostEngineConfig] = None):
        self.config = config or get_config()

    def feasibility(self, project: Project, budget: ProjectBudget) -> float:
        """
        How actionable recommendations are for this project, 0 to 1.

        Locked budgets and closed projects score 0. Otherwise the status
        factor is scaled by the share of work still ahead.
        """
        if budget.is_locked or project.is_closed:
            return 0.0
        status_factor = self.config.get_status_feasibility(project.status.value)
        remaining_share = 1.0 - project.timeline.percent_complete / 100.0
        return round(max(0.0, min(1.0, status_factor * remaining_share)), 4)

    def recommend(self, category: str, efficiency: float) -> RecommendationType:
        """Recommendation type for an inefficient category."""
        if efficiency < self.config.severe_efficiency_threshold:
            return RecommendationType.SCOPE_REDUCTION
        return RecommendationType(self.config.get_category_strategy(category))

    def advise(
        self,
        variance: VarianceReport,
        project: Project,
        budget: ProjectBudget,
    ) -> OptimizationReport:
        """
        Build the optimization report.

        Returns:
            Report with opportunities ranked by score, highest first; no
            spending yields no opportunities
        """
        feasibility = self.feasibility(project, budget)
        threshold = self.config.efficiency_threshold

        metrics = []
        opportunities = []
        for item in variance.categories:
            efficiency = _efficiency(item.allocated, item.actual)
            metrics.append(EfficiencyMetric(item.category, item.allocated, item.actual, efficiency))
            if efficiency is None or efficiency >= threshold:
                continue

            recommendation = self.recommend(item.category, efficiency)
            overspend = max(Decimal("0.00"), item.actual - item.allocated)
            factor = Decimal(str(self.config.get_recovery_factor(recommendation.value)))
            opportunities.append(OptimizationOpportunity(
                category=item.category,
                efficiency=efficiency,
                overspend=overspend,
                recommendation=recommendation,
                estimated_savings=quantize_amount(overspend * factor),
                feasibility=feasibility,
                rationale=_RATIONALE[recommendation].format(category=item.category),
            ))

        return OptimizationReport(
            project_id=variance.project_id,
            currency=variance.currency,
            metrics=tuple(metrics),
            overall_efficiency=_efficiency(variance.total_allocated, variance.total_actual),
            feasibility=feasibility,
            opportunities=tuple(sorted(opportunities, key=lambda o: -o.score)),
        )
