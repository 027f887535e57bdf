"""
Unit Tests for the AlertEvaluator.

Tests:
- Overrun scenario and severity mapping
- Priority ordering (stable for ties)
- No alerts while within budget
- Forecast, anomaly and trend rules
"""
from datetime import date
from decimal import Decimal

import pytest

from cost_engine.config import CostEngineConfig
from cost_engine.domain.entities import CostEntry, CostLedger, ProjectBudget
from cost_engine.domain.services import (
    AlertEvaluator,
    AlertSeverity,
    AlertType,
    ForecastReport,
    VarianceAnalyzer,
)
from cost_engine.domain.services.alert_evaluator import priority_from_percentage

AS_OF = date(2024, 3, 15)


def record(ledger, category, amount, on=AS_OF):
    return ledger.append_entry(CostEntry(
        project_id=ledger.project_id,
        category=category,
        amount=Decimal(str(amount)),
        entry_date=on,
        recorded_by="tester",
    ))


def forecast_report(combined, total_budget="150000"):
    combined = Decimal(combined).quantize(Decimal("0.01"))
    return ForecastReport(
        project_id="P-1",
        currency="USD",
        as_of=AS_OF,
        actual_to_date=Decimal("0"),
        total_budget=Decimal(total_budget).quantize(Decimal("0.01")),
        percent_complete=0.0,
        remaining_days=100,
        methods=(),
        combined=combined,
        lower=combined,
        upper=combined,
        accuracy=0.0,
        checkpoint_count=0,
    )


@pytest.fixture
def config():
    return CostEngineConfig()


@pytest.fixture
def analyzer(config):
    return VarianceAnalyzer(config)


@pytest.fixture
def evaluator(config):
    return AlertEvaluator(config)


@pytest.fixture
def budget():
    return ProjectBudget.create("P-1", [
        {'name': 'labor', 'allocated_amount': 100000},
        {'name': 'material', 'allocated_amount': 50000},
    ])


@pytest.fixture
def ledger():
    return CostLedger("P-1", "USD")


class TestOverrunAlerts:
    """Tests for the category overrun rule."""

    def test_labor_overrun_scenario(self, analyzer, evaluator, budget, ledger):
        record(ledger, 'labor', 120000)
        variance = analyzer.analyze(budget, ledger, AS_OF)
        alerts = evaluator.evaluate(variance, None, ledger)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.alert_type == AlertType.OVERRUN
        assert alert.category == 'labor'
        assert alert.priority == 20
        assert alert.severity == AlertSeverity.HIGH
        assert alert.details['variance'] == "20000.00"
        assert alert.details['variance_percentage'] == "20.00"

    def test_sorted_by_priority_descending(self, analyzer, evaluator, budget, ledger):
        record(ledger, 'labor', 120000)
        record(ledger, 'material', 80000)
        alerts = evaluator.evaluate(analyzer.analyze(budget, ledger, AS_OF), None, ledger)

        assert [a.category for a in alerts] == ['material', 'labor']
        assert alerts[0].priority == 60
        assert alerts[0].severity == AlertSeverity.CRITICAL
        priorities = [a.priority for a in alerts]
        assert priorities == sorted(priorities, reverse=True)

    def test_ties_keep_category_order(self, analyzer, evaluator, ledger):
        budget = ProjectBudget.create("P-1", [
            {'name': 'labor', 'allocated_amount': 100},
            {'name': 'material', 'allocated_amount': 100},
        ])
        record(ledger, 'labor', 120)
        record(ledger, 'material', 120)
        alerts = evaluator.evaluate(analyzer.analyze(budget, ledger, AS_OF), None, ledger)
        assert [a.category for a in alerts] == ['labor', 'material']

    def test_unbudgeted_spend_is_maximal_priority(self, analyzer, evaluator, ledger):
        budget = ProjectBudget.create("P-1", [{'name': 'contingency', 'allocated_amount': 0}])
        record(ledger, 'contingency', 1)
        alerts = evaluator.evaluate(analyzer.analyze(budget, ledger, AS_OF), None, ledger)
        assert alerts[0].priority == 100
        assert alerts[0].details['variance_percentage'] == "undefined"


class TestQuietProject:
    """No alerts while everything is within budget."""

    def test_no_alerts_within_budget(self, analyzer, evaluator, budget, ledger):
        record(ledger, 'labor', 50000)
        variance = analyzer.analyze(budget, ledger, AS_OF)
        assert evaluator.evaluate(variance, forecast_report("140000"), ledger) == []

    def test_anomalies_suppressed_within_budget(self, analyzer, evaluator, budget, ledger):
        for amount in (100, 100, 100, 5000):
            record(ledger, 'labor', amount)
        variance = analyzer.analyze(budget, ledger, AS_OF)
        assert evaluator.evaluate(variance, forecast_report("150000"), ledger) == []


class TestForecastAlert:
    """Tests for the forecast overrun rule."""

    def test_forecast_above_budget(self, analyzer, evaluator, budget, ledger):
        variance = analyzer.analyze(budget, ledger, AS_OF)
        alerts = evaluator.evaluate(variance, forecast_report("165000"), ledger)

        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.FORECAST_OVERRUN
        assert alerts[0].priority == 10
        assert alerts[0].severity == AlertSeverity.MEDIUM
        assert alerts[0].details['projected_overrun'] == "15000.00"


class TestAnomalyAlert:
    """Tests for the moving-average anomaly rule."""

    def test_entry_above_twice_moving_average(self, analyzer, evaluator, ledger):
        budget = ProjectBudget.create("P-1", [{'name': 'labor', 'allocated_amount': 1000}])
        for amount in (300, 300, 300):
            record(ledger, 'labor', amount)
        spike = record(ledger, 'labor', 700)

        alerts = evaluator.evaluate(analyzer.analyze(budget, ledger, AS_OF), None, ledger)

        assert [a.alert_type for a in alerts] == [AlertType.OVERRUN, AlertType.ANOMALY]
        anomaly = alerts[1]
        assert anomaly.details['cost_id'] == spike.entry_id
        assert anomaly.priority == 33
        assert anomaly.details['moving_average'] == "300.00"

    def test_short_history_is_not_anomalous(self, analyzer, evaluator, ledger):
        budget = ProjectBudget.create("P-1", [{'name': 'labor', 'allocated_amount': 100}])
        record(ledger, 'labor', 10)
        record(ledger, 'labor', 10)
        record(ledger, 'labor', 500)
        alerts = evaluator.evaluate(analyzer.analyze(budget, ledger, AS_OF), None, ledger)
        assert all(a.alert_type != AlertType.ANOMALY for a in alerts)


class TestTrendAlert:
    """Tests for the rising variance trend rule."""

    def test_rising_variance_across_snapshots(self, analyzer, evaluator, ledger):
        budget = ProjectBudget.create("P-1", [{'name': 'labor', 'allocated_amount': 1000}])
        record(ledger, 'labor', 900, date(2024, 3, 1))
        record(ledger, 'labor', 100, date(2024, 3, 8))
        record(ledger, 'labor', 100, date(2024, 3, 15))

        variance = analyzer.analyze(budget, ledger, AS_OF)
        history = analyzer.snapshot_series(budget, ledger, AS_OF)
        alerts = evaluator.evaluate(variance, None, ledger, history)

        assert [a.alert_type for a in alerts] == [AlertType.TREND, AlertType.OVERRUN]
        trend = alerts[0]
        assert trend.details['snapshots'] == ["-10.00", "0.00", "10.00"]
        assert trend.priority == 30

    def test_too_few_snapshots(self, analyzer, evaluator, ledger):
        budget = ProjectBudget.create("P-1", [{'name': 'labor', 'allocated_amount': 1000}])
        record(ledger, 'labor', 1100, date(2024, 3, 15))
        variance = analyzer.analyze(budget, ledger, AS_OF)
        alerts = evaluator.evaluate(variance, None, ledger, [variance])
        assert [a.alert_type for a in alerts] == [AlertType.OVERRUN]


class TestPriority:
    """Tests for priority mapping."""

    @pytest.mark.parametrize("percentage,expected", [
        (Decimal("0.2"), 1),
        (Decimal("20"), 20),
        (Decimal("250"), 100),
        (None, 100),
    ])
    def test_priority_from_percentage(self, percentage, expected):
        assert priority_from_percentage(percentage) == expected

    def test_alert_to_dict(self, analyzer, evaluator, budget, ledger):
        record(ledger, 'labor', 120000)
        data = evaluator.evaluate(analyzer.analyze(budget, ledger, AS_OF), None, ledger)[0].to_dict()
        assert data['type'] == "overrun"
        assert data['severity'] == "high"
        assert data['project_id'] == "P-1"
