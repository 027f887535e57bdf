"""
Control Strategy Planner - Measures, targets and monitoring schedule.

Composes the outputs of the other analysis services:
- CostRisks are derived one-to-one from alerts
- each risk maps to a control measure; optimization opportunities with
  non-zero feasibility add OPTIMIZATION measures
- every budget category gets a numeric target (cap, warning threshold,
  remaining headroom, allowed daily burn)
- monitoring checkpoints run at a fixed cadence through the planned end
"""
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from cost_engine.config import CostEngineConfig, get_config
from cost_engine.domain.entities import Project
from cost_engine.domain.entities.money import quantize_amount
from .alert_evaluator import Alert, AlertSeverity, AlertType
from .forecast_engine import ForecastReport
from .optimization_advisor import OptimizationReport
from .variance_analyzer import VarianceReport


class ControlStatus(str, Enum):
    """Overall cost status of a project."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    OVER_BUDGET = "over_budget"


class ControlMeasureType(str, Enum):
    """Kinds of control measures."""
    SPEND_FREEZE = "spend_freeze"
    APPROVAL_GATE = "approval_gate"
    ENTRY_AUDIT = "entry_audit"
    FORECAST_REVIEW = "forecast_review"
    CATEGORY_REVIEW = "category_review"
    OPTIMIZATION = "optimization"


@dataclass(frozen=True)
class CostRisk:
    """A cost risk identified from an alert."""
    risk_type: AlertType
    severity: AlertSeverity
    priority: int
    description: str
    category: Optional[str] = None

    @classmethod
    def from_alert(cls, alert: Alert) -> 'CostRisk':
        return cls(
            risk_type=alert.alert_type,
            severity=alert.severity,
            priority=alert.priority,
            description=alert.message,
            category=alert.category,
        )

    def to_dict(self) -> dict:
        return {
            'type': self.risk_type.value,
            'severity': self.severity.value,
            'priority': self.priority,
            'category': self.category,
            'description': self.description,
        }


@dataclass(frozen=True)
class ControlMeasure:
    """One action in the control strategy."""
    measure_type: ControlMeasureType
    priority: int
    description: str
    category: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'type': self.measure_type.value,
            'priority': self.priority,
            'category': self.category,
            'description': self.description,
        }


@dataclass(frozen=True)
class CategoryTarget:
    """
    Numeric control target for one category.

    Attributes:
        target_amount: Spending cap (the allocation)
        warning_threshold: Spend level that should trigger review
        remaining: Headroom left under the cap, never negative
        daily_burn_limit: Remaining headroom spread over the remaining days
    """
    category: str
    target_amount: Decimal
    warning_threshold: Decimal
    actual: Decimal
    remaining: Decimal
    daily_burn_limit: Decimal

    @property
    def is_above_warning(self) -> bool:
        # A zero allocation with no spend has a zero threshold but nothing to review
        return self.actual > 0 and self.actual >= self.warning_threshold

    def to_dict(self) -> dict:
        return {
            'category': self.category,
            'target_amount': str(self.target_amount),
            'warning_threshold': str(self.warning_threshold),
            'actual': str(self.actual),
            'remaining': str(self.remaining),
            'daily_burn_limit': str(self.daily_burn_limit),
        }


@dataclass(frozen=True)
class MonitoringCheckpoint:
    """Scheduled review with the cumulative spend planned by that date."""
    checkpoint_date: date
    focus_categories: Tuple[str, ...]
    planned_cumulative_spend: Decimal

    def to_dict(self) -> dict:
        return {
            'date': self.checkpoint_date.isoformat(),
            'focus_categories': list(self.focus_categories),
            'planned_cumulative_spend': str(self.planned_cumulative_spend),
        }


@dataclass(frozen=True)
class ControlStrategy:
    """Structured plan to keep a project's costs within bounds."""
    project_id: str
    currency: str
    as_of: date
    status: ControlStatus
    risks: Tuple[CostRisk, ...]
    measures: Tuple[ControlMeasure, ...]
    targets: Tuple[CategoryTarget, ...]
    checkpoints: Tuple[MonitoringCheckpoint, ...]

    def to_dict(self) -> dict:
        return {
            'project_id': self.project_id,
            'currency': self.currency,
            'as_of': self.as_of.isoformat(),
            'status': self.status.value,
            'risks': [r.to_dict() for r in self.risks],
            'measures': [m.to_dict() for m in self.measures],
            'targets': [t.to_dict() for t in self.targets],
            'checkpoints': [c.to_dict() for c in self.checkpoints],
        }


class ControlStrategyPlanner:
    """Builds a ControlStrategy from variance, forecast, alerts and optimization."""

    def __init__(self, config: Optional[CostEngineConfig] = None):
        self.config = config or get_config()

    def plan(
        self,
        project: Project,
        variance: VarianceReport,
        forecast: ForecastReport,
        alerts: Sequence[Alert],
        optimization: OptimizationReport,
        as_of: date,
    ) -> ControlStrategy:
        """
        Develop the control strategy.

        Args:
            project: Project view (timeline end bounds the schedule)
            variance: Variance report as of as_of
            forecast: Forecast report as of as_of
            alerts: Evaluated alerts, any order
            optimization: Optimization report
            as_of: Planning date

        Returns:
            ControlStrategy; a finished timeline gets no checkpoints
        """
        risks = tuple(CostRisk.from_alert(a) for a in alerts)
        targets = self.targets(variance, project, as_of)

        return ControlStrategy(
            project_id=variance.project_id,
            currency=variance.currency,
            as_of=as_of,
            status=self.status(variance, forecast, risks, targets),
            risks=risks,
            measures=self.measures(risks, optimization),
            targets=targets,
            checkpoints=self.checkpoints(project, variance, risks, targets, as_of),
        )

    def status(
        self,
        variance: VarianceReport,
        forecast: ForecastReport,
        risks: Sequence[CostRisk],
        targets: Sequence[CategoryTarget],
    ) -> ControlStatus:
        if not variance.is_within_budget:
            return ControlStatus.OVER_BUDGET
        if forecast.exceeds_budget or risks or any(t.is_above_warning for t in targets):
            return ControlStatus.AT_RISK
        return ControlStatus.ON_TRACK

    def measures(
        self,
        risks: Sequence[CostRisk],
        optimization: OptimizationReport,
    ) -> Tuple[ControlMeasure, ...]:
        """One measure per distinct (type, category), highest priority kept."""
        candidates: List[ControlMeasure] = [self._measure_for(risk) for risk in risks]

        for opportunity in optimization.opportunities:
            if opportunity.feasibility <= 0:
                continue
            candidates.append(ControlMeasure(
                ControlMeasureType.OPTIMIZATION,
                max(1, min(100, int(round(opportunity.feasibility * 100)))),
                f"{opportunity.rationale} (estimated savings {opportunity.estimated_savings:,.2f})",
                category=opportunity.category,
            ))

        kept = {}
        for measure in candidates:
            key = (measure.measure_type, measure.category)
            if key not in kept or measure.priority > kept[key].priority:
                kept[key] = measure
        return tuple(sorted(kept.values(), key=lambda m: -m.priority))

    def _measure_for(self, risk: CostRisk) -> ControlMeasure:
        category = risk.category
        if risk.risk_type == AlertType.OVERRUN:
            if risk.severity == AlertSeverity.CRITICAL:
                return ControlMeasure(
                    ControlMeasureType.SPEND_FREEZE, risk.priority,
                    f"Freeze new commitments in '{category}' until the overrun is resolved",
                    category=category,
                )
            return ControlMeasure(
                ControlMeasureType.APPROVAL_GATE, risk.priority,
                f"Require manager approval for new '{category}' costs",
                category=category,
            )
        if risk.risk_type == AlertType.FORECAST_OVERRUN:
            return ControlMeasure(
                ControlMeasureType.FORECAST_REVIEW, risk.priority,
                "Review estimate at completion with the project team",
            )
        if risk.risk_type == AlertType.ANOMALY:
            return ControlMeasure(
                ControlMeasureType.ENTRY_AUDIT, risk.priority,
                f"Audit unusually large '{category}' entries against invoices",
                category=category,
            )
        return ControlMeasure(
            ControlMeasureType.CATEGORY_REVIEW, risk.priority,
            f"Review the rising variance trend in '{category}'",
            category=category,
        )

    def targets(self, variance: VarianceReport, project: Project, as_of: date) -> Tuple[CategoryTarget, ...]:
        remaining_days = project.timeline.remaining_days(as_of)
        ratio = Decimal(str(self.config.warning_ratio))

        targets = []
        for item in variance.categories:
            remaining = max(Decimal("0.00"), item.allocated - item.actual)
            daily = remaining / remaining_days if remaining_days > 0 else Decimal("0")
            targets.append(CategoryTarget(
                category=item.category,
                target_amount=item.allocated,
                warning_threshold=quantize_amount(item.allocated * ratio),
                actual=item.actual,
                remaining=remaining,
                daily_burn_limit=quantize_amount(daily),
            ))
        return tuple(targets)

    def checkpoints(
        self,
        project: Project,
        variance: VarianceReport,
        risks: Sequence[CostRisk],
        targets: Sequence[CategoryTarget],
        as_of: date,
    ) -> Tuple[MonitoringCheckpoint, ...]:
        """
        Checkpoints every cadence days after as_of, ending on the planned end date.

        Planned cumulative spend rises linearly from the current actual to
        the total budget at the end date (flat once the budget is spent).
        """
        end = project.timeline.end_date
        remaining_days = project.timeline.remaining_days(as_of)
        if remaining_days <= 0:
            return ()

        cadence = self.config.monitoring_cadence_days
        dates = []
        current = as_of + timedelta(days=cadence)
        while current < end:
            dates.append(current)
            current += timedelta(days=cadence)
        dates.append(end)

        focus = []
        for risk in sorted(risks, key=lambda r: -r.priority):
            if risk.category and risk.category not in focus:
                focus.append(risk.category)
        for target in targets:
            if target.is_above_warning and target.category not in focus:
                focus.append(target.category)

        actual = variance.total_actual
        headroom = max(Decimal("0.00"), variance.total_allocated - actual)
        return tuple(
            MonitoringCheckpoint(
                checkpoint_date=day,
                focus_categories=tuple(focus),
                planned_cumulative_spend=quantize_amount(
                    actual + headroom * Decimal((day - as_of).days) / Decimal(remaining_days)
                ),
            )
            for day in dates
        )
