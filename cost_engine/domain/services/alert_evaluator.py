"""
Alert Evaluator - Threshold and anomaly rules over variance and forecast.

Rules, each evaluated independently and emitted in this order:
1. overrun: category actual > allocated, priority scaled by variance %
2. forecast_overrun: combined forecast > total budget
3. anomaly: an entry above multiplier × the category's trailing moving average
4. trend: a category's variance % rose across consecutive snapshots

The output is sorted by priority descending; the sort is stable so ties
keep emission order. A project with every category within budget and a
forecast within budget produces no alerts.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from cost_engine.config import CostEngineConfig, get_config
from cost_engine.domain.entities import CostLedger
from .forecast_engine import ForecastReport
from .variance_analyzer import VarianceReport, variance_percentage

MAX_PRIORITY = 100


class AlertType(str, Enum):
    """Kinds of cost alerts."""
    OVERRUN = "overrun"
    FORECAST_OVERRUN = "forecast_overrun"
    ANOMALY = "anomaly"
    TREND = "trend"


class AlertSeverity(str, Enum):
    """Alert severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Alert:
    """A prioritized cost alert. Delivery is up to the application layer."""
    alert_type: AlertType
    severity: AlertSeverity
    priority: int
    project_id: str
    message: str
    category: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'type': self.alert_type.value,
            'severity': self.severity.value,
            'priority': self.priority,
            'project_id': self.project_id,
            'category': self.category,
            'message': self.message,
            'details': self.details,
        }


def priority_from_percentage(percentage: Optional[Decimal]) -> int:
    """
    Map an overrun percentage to a 1-100 priority.

    An undefined percentage (nothing allocated, something spent) is
    maximal priority.
    """
    if percentage is None:
        return MAX_PRIORITY
    return max(1, min(MAX_PRIORITY, int(round(float(percentage)))))


class AlertEvaluator:
    """
    Stateless, deterministic alert rules.

    Usage:
        evaluator = AlertEvaluator()
        alerts = evaluator.evaluate(variance, forecast, ledger, history)
    """

    def __init__(self, config: Optional[CostEngineConfig] = None):
        self.config = config or get_config()

    def evaluate(
        self,
        variance: VarianceReport,
        forecast: Optional[ForecastReport],
        ledger: CostLedger,
        history: Sequence[VarianceReport] = (),
    ) -> List[Alert]:
        """
        Evaluate every rule.

        Args:
            variance: Current variance report
            forecast: Current forecast report (None skips the forecast rule)
            ledger: Project ledger, scanned for anomalous entries
            history: Variance snapshots, oldest first, for the trend rule

        Returns:
            Alerts sorted by priority descending
        """
        forecast_over = forecast is not None and forecast.exceeds_budget
        if variance.is_within_budget and not forecast_over:
            return []

        alerts: List[Alert] = []
        alerts.extend(self._overrun_alerts(variance))
        if forecast_over:
            alerts.append(self._forecast_alert(variance, forecast))
        alerts.extend(self._anomaly_alerts(variance, ledger))
        alerts.extend(self._trend_alerts(variance, history))

        return sorted(alerts, key=lambda a: -a.priority)

    def _alert(self, alert_type: AlertType, priority: int, variance: VarianceReport, /,
               message: str, category: Optional[str] = None, **details) -> Alert:
        return Alert(
            alert_type=alert_type,
            severity=AlertSeverity(self.config.get_severity(priority)),
            priority=priority,
            project_id=variance.project_id,
            message=message,
            category=category,
            details=details,
        )

    # =========================================================================
    # Rules
    # =========================================================================

    def _overrun_alerts(self, variance: VarianceReport) -> List[Alert]:
        alerts = []
        for item in variance.overrun_categories:
            pct = item.variance_percentage
            pct_text = f"{pct}%" if pct is not None else "an unbudgeted amount"
            alerts.append(self._alert(
                AlertType.OVERRUN,
                priority_from_percentage(pct),
                variance,
                f"Category '{item.category}' is over budget by {item.variance:,.2f} "
                f"{variance.currency} ({pct_text})",
                category=item.category,
                allocated=str(item.allocated),
                actual=str(item.actual),
                variance=str(item.variance),
                variance_percentage=str(pct) if pct is not None else "undefined",
            ))
        return alerts

    def _forecast_alert(self, variance: VarianceReport, forecast: ForecastReport) -> Alert:
        excess = forecast.combined - forecast.total_budget
        pct = variance_percentage(excess, forecast.total_budget)
        return self._alert(
            AlertType.FORECAST_OVERRUN,
            priority_from_percentage(pct),
            variance,
            f"Forecast final cost {forecast.combined:,.2f} {forecast.currency} exceeds "
            f"total budget {forecast.total_budget:,.2f} by {excess:,.2f}",
            forecast=str(forecast.combined),
            total_budget=str(forecast.total_budget),
            projected_overrun=str(excess),
            projected_overrun_percentage=str(pct) if pct is not None else "undefined",
        )

    def _anomaly_alerts(self, variance: VarianceReport, ledger: CostLedger) -> List[Alert]:
        multiplier = self.config.anomaly_multiplier
        window = self.config.anomaly_window
        min_history = self.config.anomaly_min_history

        alerts = []
        for item in variance.categories:
            entries = [
                e for e in ledger.entries_by_category(item.category)
                if not e.is_reversal
                and not ledger.is_reversed(e.entry_id)
                and (variance.as_of is None or e.entry_date <= variance.as_of)
            ]
            for index, entry in enumerate(entries):
                trailing = entries[max(0, index - window):index]
                if len(trailing) < min_history:
                    continue
                average = sum((e.amount for e in trailing), Decimal("0")) / len(trailing)
                if average <= 0 or entry.amount <= average * Decimal(str(multiplier)):
                    continue
                ratio = float(entry.amount / average)
                priority = max(1, min(MAX_PRIORITY, int(round((ratio - 1) * 25))))
                alerts.append(self._alert(
                    AlertType.ANOMALY,
                    priority,
                    variance,
                    f"Entry {entry.entry_id} in '{item.category}' is {ratio:.1f}x the "
                    f"category's moving average",
                    category=item.category,
                    cost_id=entry.entry_id,
                    amount=str(entry.amount),
                    moving_average=str(average.quantize(Decimal("0.01"))),
                    ratio=round(ratio, 2),
                    entry_date=entry.entry_date.isoformat(),
                ))
        return alerts

    def _trend_alerts(self, variance: VarianceReport, history: Sequence[VarianceReport]) -> List[Alert]:
        count = self.config.trend_snapshot_count
        if len(history) < count:
            return []
        snapshots = list(history)[-count:]
        floor = self.config.trend_min_latest_percentage

        alerts = []
        for item in variance.categories:
            series = []
            for snapshot in snapshots:
                point = snapshot.get(item.category)
                series.append(point.variance_percentage if point is not None else None)
            if any(p is None for p in series):
                continue
            rising = all(later > earlier for earlier, later in zip(series, series[1:]))
            if not rising or float(series[-1]) < floor:
                continue
            rise = float(series[-1] - series[0])
            priority = max(10, min(60, 10 + int(round(rise))))
            alerts.append(self._alert(
                AlertType.TREND,
                priority,
                variance,
                f"Variance for '{item.category}' worsened across {count} consecutive "
                f"snapshots ({' -> '.join(f'{p}%' for p in series)})",
                category=item.category,
                snapshots=[str(p) for p in series],
            ))
        return alerts
