"""
Domain Services - Variance, forecasting, alerting, optimization and control.
"""

from .variance_analyzer import VarianceAnalyzer, VarianceReport, CategoryVariance, VarianceBand
from .forecast_engine import ForecastEngine, ForecastReport, ForecastMethod, MethodForecast
from .alert_evaluator import AlertEvaluator, Alert, AlertType, AlertSeverity
from .optimization_advisor import (
    OptimizationAdvisor,
    OptimizationReport,
    OptimizationOpportunity,
    RecommendationType,
)
from .control_strategy_planner import (
    ControlStrategyPlanner,
    ControlStrategy,
    ControlStatus,
    ControlMeasureType,
    CostRisk,
)
# Application layer
from .cost_control_service import CostControlService, LedgerLockRegistry
from .forecast_refresh import ForecastRefreshJob, RefreshSummary

__all__ = [
    'VarianceAnalyzer',
    'VarianceReport',
    'CategoryVariance',
    'VarianceBand',
    'ForecastEngine',
    'ForecastReport',
    'ForecastMethod',
    'MethodForecast',
    'AlertEvaluator',
    'Alert',
    'AlertType',
    'AlertSeverity',
    'OptimizationAdvisor',
    'OptimizationReport',
    'OptimizationOpportunity',
    'RecommendationType',
    'ControlStrategyPlanner',
    'ControlStrategy',
    'ControlStatus',
    'ControlMeasureType',
    'CostRisk',
    # Application layer
    'CostControlService',
    'LedgerLockRegistry',
    'ForecastRefreshJob',
    'RefreshSummary',
]
