"""
Forecast Engine - Estimate at completion from partial cost data.

Three independent forecasters over the same ledger and timeline:
- Historical: recency-weighted linear regression of cumulative cost,
  extrapolated to the planned end date
- Progress: actual / percent complete × 100 (excluded at 0% complete)
- Trend: actual + recent daily velocity × remaining days

The combiner is a weighted average of the forecasters that produced a
value. Weights are non-negative and normalized, so the result is a convex
combination; it is additionally clamped to [min, max] of the contributing
forecasts so cent rounding can never push it outside.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from cost_engine.config import CostEngineConfig, get_config
from cost_engine.domain.entities import CostEntry, CostLedger, ProjectBudget, ProjectTimeline
from cost_engine.domain.entities.money import quantize_amount

logger = logging.getLogger(__name__)


class ForecastMethod(str, Enum):
    """Independent forecasting methods."""
    HISTORICAL = "historical"
    PROGRESS = "progress"
    TREND = "trend"


@dataclass(frozen=True)
class MethodForecast:
    """Output of one forecaster."""
    method: ForecastMethod
    value: Optional[Decimal]
    weight: float
    included: bool
    note: str = ""

    def to_dict(self) -> dict:
        return {
            'method': self.method.value,
            'value': str(self.value) if self.value is not None else None,
            'weight': self.weight,
            'included': self.included,
            'note': self.note,
        }


@dataclass(frozen=True)
class ForecastReport:
    """
    Combined final-cost forecast for a project.

    Attributes:
        actual_to_date: Net recorded cost up to as_of
        methods: Every forecaster's output, included or not
        combined: Weighted average of contributing forecasts (None when none contributed)
        lower: Smallest contributing forecast
        upper: Largest contributing forecast
        accuracy: Retrospective 0-1 accuracy score
        checkpoint_count: Number of checkpoints behind the accuracy score
    """
    project_id: str
    currency: str
    as_of: date
    actual_to_date: Decimal
    total_budget: Decimal
    percent_complete: float
    remaining_days: int
    methods: Tuple[MethodForecast, ...]
    combined: Optional[Decimal]
    lower: Optional[Decimal]
    upper: Optional[Decimal]
    accuracy: float
    checkpoint_count: int

    @property
    def contributing(self) -> Dict[str, Decimal]:
        return {m.method.value: m.value for m in self.methods if m.included}

    @property
    def projected_variance(self) -> Optional[Decimal]:
        """Combined forecast minus total budget (positive = projected overrun)."""
        if self.combined is None:
            return None
        return self.combined - self.total_budget

    @property
    def exceeds_budget(self) -> bool:
        return self.combined is not None and self.combined > self.total_budget

    def get(self, method: ForecastMethod) -> Optional[MethodForecast]:
        for item in self.methods:
            if item.method == method:
                return item
        return None

    def to_dict(self) -> dict:
        return {
            'project_id': self.project_id,
            'currency': self.currency,
            'as_of': self.as_of.isoformat(),
            'actual_to_date': str(self.actual_to_date),
            'total_budget': str(self.total_budget),
            'percent_complete': self.percent_complete,
            'remaining_days': self.remaining_days,
            'methods': [m.to_dict() for m in self.methods],
            'combined': str(self.combined) if self.combined is not None else None,
            'lower': str(self.lower) if self.lower is not None else None,
            'upper': str(self.upper) if self.upper is not None else None,
            'projected_variance': (
                str(self.projected_variance) if self.projected_variance is not None else None
            ),
            'accuracy': self.accuracy,
            'checkpoint_count': self.checkpoint_count,
        }


# =============================================================================
# CALCULATION ENGINES
# =============================================================================

def _daily_totals(entries: Sequence[CostEntry]) -> pd.Series:
    """Net cost per calendar day, indexed by date and sorted."""
    if not entries:
        return pd.Series(dtype=float)
    frame = pd.DataFrame({
        'date': pd.to_datetime([e.entry_date for e in entries]),
        'amount': [float(e.signed_amount) for e in entries],
    })
    return frame.groupby('date')['amount'].sum().sort_index()


def historical_forecast(
    entries: Sequence[CostEntry],
    as_of: date,
    target_date: date,
    half_life_days: float,
) -> Optional[float]:
    """
    Extrapolate cumulative cost to target_date by weighted linear regression.

    Each day's weight halves every half_life_days of age, so recent
    entries pull the fit harder. The result never drops below the cost
    already recorded.

    Returns:
        Forecast, or None with fewer than two distinct entry dates
    """
    daily = _daily_totals(entries)
    if len(daily) < 2:
        return None

    cumulative = daily.cumsum()
    dates = [ts.date() for ts in cumulative.index]
    origin = dates[0]
    x = np.array([(d - origin).days for d in dates], dtype=float)
    y = cumulative.to_numpy(dtype=float)
    recorded = float(y[-1])

    if target_date <= as_of:
        return recorded

    ages = np.array([(as_of - d).days for d in dates], dtype=float)
    if half_life_days > 0:
        weights = np.power(0.5, ages / half_life_days)
    else:
        weights = np.ones_like(ages)

    # polyfit weights multiply residuals, so sqrt gives weighted least squares
    slope, intercept = np.polyfit(x, y, 1, w=np.sqrt(weights))
    predicted = intercept + slope * (target_date - origin).days
    return max(float(predicted), recorded)


def progress_forecast(actual_to_date: Decimal, percent_complete: float) -> Optional[Decimal]:
    """
    Estimate at completion from reported progress.

    Returns:
        actual / percent × 100, or None when percent complete is 0
    """
    if percent_complete <= 0:
        return None
    return actual_to_date / Decimal(str(percent_complete)) * 100


def trend_forecast(
    entries: Sequence[CostEntry],
    window_start_floor: date,
    as_of: date,
    target_date: date,
    window_days: int,
) -> Optional[float]:
    """
    Actual cost plus recent velocity × remaining days.

    Velocity is the average daily cost over the trailing window ending at
    as_of, clipped so the window never starts before window_start_floor.

    Returns:
        Forecast, or None when there are no entries
    """
    daily = _daily_totals(entries)
    if daily.empty:
        return None

    recorded = float(daily.sum())
    window_start = max(window_start_floor, as_of - timedelta(days=window_days - 1))
    days = (as_of - window_start).days + 1
    if days <= 0:
        return recorded

    recent = daily.loc[pd.Timestamp(window_start):pd.Timestamp(as_of)].sum()
    velocity = float(recent) / days
    remaining = max(0, (target_date - as_of).days)
    return recorded + velocity * remaining


def combine_forecasts(
    forecasts: Dict[str, Decimal],
    weights: Dict[str, float],
) -> Optional[Decimal]:
    """
    Weighted average of the given forecasts, bounded by their min and max.

    Forecasts whose weight is missing default to 1.0. If every weight is
    zero the forecasts are averaged equally.

    Returns:
        Combined forecast, or None when forecasts is empty
    """
    if not forecasts:
        return None

    applied = {name: Decimal(str(weights.get(name, 1.0))) for name in forecasts}
    total_weight = sum(applied.values())
    if total_weight <= 0:
        applied = {name: Decimal("1") for name in forecasts}
        total_weight = Decimal(len(forecasts))

    value = sum(forecasts[name] * applied[name] for name in forecasts) / total_weight
    low = min(forecasts.values())
    high = max(forecasts.values())
    return min(max(quantize_amount(value), low), high)


def _to_amount(value: Optional[float]) -> Optional[Decimal]:
    if value is None:
        return None
    return quantize_amount(Decimal(str(round(value, 2))))


# =============================================================================
# FORECAST ENGINE
# =============================================================================

class ForecastEngine:
    """
    Runs the three forecasters and combines their results.

    Stateless: every call is a pure function of its inputs.
    """

    def __init__(self, config: Optional[CostEngineConfig] = None):
        self.config = config or get_config()

    @property
    def window_days(self) -> int:
        return self.config.trend_window_periods * self.config.period_days

    def forecast(
        self,
        budget: ProjectBudget,
        ledger: CostLedger,
        timeline: ProjectTimeline,
        as_of: date,
    ) -> ForecastReport:
        """
        Forecast the project's final cost.

        Args:
            budget: Project budget (for the report's total budget)
            ledger: Project cost ledger
            timeline: Planned window and percent complete
            as_of: Forecast date; later entries are ignored

        Returns:
            ForecastReport; with no usable data the combined forecast is None
        """
        entries = ledger.entries_up_to(as_of)
        actual = ledger.total(as_of)
        target = max(timeline.end_date, as_of)
        floor = self._window_floor(timeline, entries)
        weights = self.config.forecast_weights

        raw = {
            ForecastMethod.HISTORICAL: _to_amount(historical_forecast(
                entries, as_of, target, self.config.recency_half_life_days
            )),
            ForecastMethod.PROGRESS: (
                quantize_amount(progress_forecast(actual, timeline.percent_complete))
                if timeline.percent_complete > 0 else None
            ),
            ForecastMethod.TREND: _to_amount(trend_forecast(
                entries, floor, as_of, target, self.window_days
            )),
        }

        available = {m: v for m, v in raw.items() if v is not None}
        positive = {m for m in available if weights.get(m.value, 1.0) > 0}
        contributors = positive or set(available)

        methods = []
        for method, value in raw.items():
            weight = weights.get(method.value, 1.0)
            if value is None:
                note = self._exclusion_note(method)
                logger.debug(f"Forecaster {method.value} excluded for project {budget.project_id}: {note}")
                methods.append(MethodForecast(method, None, weight, False, note))
            elif method not in contributors:
                methods.append(MethodForecast(method, value, weight, False, "zero weight"))
            else:
                methods.append(MethodForecast(method, value, weight, True))

        contributing = {m.value: raw[m] for m in raw if m in contributors}
        combined = combine_forecasts(contributing, weights)
        accuracy, checkpoints = self.accuracy(ledger, timeline, as_of)

        return ForecastReport(
            project_id=budget.project_id,
            currency=budget.currency,
            as_of=as_of,
            actual_to_date=actual,
            total_budget=budget.total_budget.amount,
            percent_complete=timeline.percent_complete,
            remaining_days=timeline.remaining_days(as_of),
            methods=tuple(methods),
            combined=combined,
            lower=min(contributing.values()) if contributing else None,
            upper=max(contributing.values()) if contributing else None,
            accuracy=accuracy,
            checkpoint_count=checkpoints,
        )

    def accuracy(
        self,
        ledger: CostLedger,
        timeline: ProjectTimeline,
        as_of: date,
    ) -> Tuple[float, int]:
        """
        Retrospective accuracy over completed period checkpoints.

        At each checkpoint the historical and trend forecasters see only
        the entries up to that checkpoint and predict cumulative cost at
        the next one. Each checkpoint scores 1 - |error| / actual, floored
        at 0; the score is the mean. Progress-based forecasts cannot be
        replayed (no historical percent complete) and are left out.

        Returns:
            (score between 0 and 1, number of checkpoints scored)
        """
        entries = ledger.entries_up_to(as_of)
        if not entries:
            return 0.0, 0

        period = self.config.period_days
        anchor = self._window_floor(timeline, entries)
        weights = self.config.forecast_weights
        scores: List[float] = []

        cutoff = anchor + timedelta(days=period)
        while cutoff + timedelta(days=period) <= as_of:
            next_cutoff = cutoff + timedelta(days=period)
            seen = [e for e in entries if e.entry_date <= cutoff]
            actual_next = sum((e.signed_amount for e in entries if e.entry_date <= next_cutoff), Decimal("0"))

            if seen and actual_next > 0:
                predictions = {
                    ForecastMethod.HISTORICAL.value: _to_amount(historical_forecast(
                        seen, cutoff, next_cutoff, self.config.recency_half_life_days
                    )),
                    ForecastMethod.TREND.value: _to_amount(trend_forecast(
                        seen, anchor, cutoff, next_cutoff, self.window_days
                    )),
                }
                predictions = {k: v for k, v in predictions.items() if v is not None}
                predicted = combine_forecasts(predictions, weights)
                if predicted is not None:
                    error = abs(predicted - actual_next)
                    scores.append(max(0.0, 1.0 - float(error / actual_next)))

            cutoff = next_cutoff

        if not scores:
            return 0.0, 0
        score = min(1.0, max(0.0, sum(scores) / len(scores)))
        return round(score, 4), len(scores)

    @staticmethod
    def _window_floor(timeline: ProjectTimeline, entries: Sequence[CostEntry]) -> date:
        if not entries:
            return timeline.start_date
        return min(timeline.start_date, min(e.entry_date for e in entries))

    @staticmethod
    def _exclusion_note(method: ForecastMethod) -> str:
        if method == ForecastMethod.PROGRESS:
            return "percent complete is 0"
        if method == ForecastMethod.HISTORICAL:
            return "fewer than two dated entries"
        return "no recorded entries"
