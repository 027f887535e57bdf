"""
Unit Tests for OptimizationAdvisor and ControlStrategyPlanner.

Tests:
- Efficiency metrics and opportunity ranking
- Recommendation taxonomy and savings estimates
- Feasibility by project and budget status
- Control status, measures, targets and monitoring checkpoints
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from cost_engine.config import CostEngineConfig
from cost_engine.domain.entities import (
    CostEntry,
    CostLedger,
    Project,
    ProjectBudget,
    ProjectStatus,
    ProjectTimeline,
)
from cost_engine.domain.services import (
    AlertEvaluator,
    ControlMeasureType,
    ControlStatus,
    ControlStrategyPlanner,
    ForecastEngine,
    OptimizationAdvisor,
    RecommendationType,
    VarianceAnalyzer,
)
from cost_engine.domain.services.control_strategy_planner import CategoryTarget

START = date(2024, 1, 1)
END = date(2024, 12, 31)


def record(ledger, category, amount, on):
    ledger.append_entry(CostEntry(
        project_id=ledger.project_id,
        category=category,
        amount=Decimal(str(amount)),
        entry_date=on,
        recorded_by="tester",
    ))


def make_project(status=ProjectStatus.ACTIVE, percent_complete=50.0):
    return Project("P-1", "Clinic", status, ProjectTimeline(START, END, percent_complete))


@pytest.fixture
def config():
    return CostEngineConfig()


@pytest.fixture
def budget():
    return ProjectBudget.create("P-1", [
        {'name': 'labor', 'allocated_amount': 100000},
        {'name': 'material', 'allocated_amount': 50000},
        {'name': 'equipment', 'allocated_amount': 20000},
    ]).activate()


@pytest.fixture
def overspent_ledger():
    ledger = CostLedger("P-1", "USD")
    record(ledger, 'labor', 125000, date(2024, 6, 1))
    record(ledger, 'material', 80000, date(2024, 6, 2))
    record(ledger, 'equipment', 10000, date(2024, 6, 3))
    return ledger


class TestOptimizationAdvisor:
    """Tests for efficiency metrics and recommendations."""

    def test_opportunities_ranked_by_score(self, config, budget, overspent_ledger):
        variance = VarianceAnalyzer(config).analyze(budget, overspent_ledger)
        report = OptimizationAdvisor(config).advise(variance, make_project(), budget)

        assert [o.category for o in report.opportunities] == ['material', 'labor']
        material, labor = report.opportunities
        assert material.recommendation == RecommendationType.SCOPE_REDUCTION
        assert material.estimated_savings == Decimal("15000.00")
        assert labor.recommendation == RecommendationType.RESOURCE_REALLOCATION
        assert labor.efficiency == 0.8
        assert labor.estimated_savings == Decimal("7500.00")
        assert report.feasibility == 0.45
        assert labor.score == 3375.0
        assert report.total_potential_savings == Decimal("22500.00")

    def test_efficiency_metrics(self, config, budget, overspent_ledger):
        variance = VarianceAnalyzer(config).analyze(budget, overspent_ledger)
        report = OptimizationAdvisor(config).advise(variance, make_project(), budget)
        efficiencies = {m.category: m.efficiency for m in report.metrics}
        assert efficiencies == {'labor': 0.8, 'material': 0.625, 'equipment': 2.0}
        assert report.overall_efficiency == round(170000 / 215000, 4)

    def test_material_mapped_to_vendor_renegotiation(self, config, budget):
        ledger = CostLedger("P-1", "USD")
        record(ledger, 'material', 55000, date(2024, 6, 1))
        variance = VarianceAnalyzer(config).analyze(budget, ledger)
        report = OptimizationAdvisor(config).advise(variance, make_project(), budget)
        assert report.opportunities[0].recommendation == RecommendationType.VENDOR_RENEGOTIATION
        assert report.opportunities[0].estimated_savings == Decimal("750.00")

    def test_locked_budget_has_zero_feasibility(self, config, budget, overspent_ledger):
        locked = budget.lock()
        variance = VarianceAnalyzer(config).analyze(locked, overspent_ledger)
        report = OptimizationAdvisor(config).advise(variance, make_project(), locked)
        assert report.feasibility == 0.0
        assert all(o.score == 0.0 for o in report.opportunities)

    @pytest.mark.parametrize("status", [ProjectStatus.COMPLETED, ProjectStatus.CANCELLED])
    def test_closed_project_has_zero_feasibility(self, config, budget, status):
        assert OptimizationAdvisor(config).feasibility(make_project(status), budget) == 0.0

    def test_no_spending_no_opportunities(self, config, budget):
        variance = VarianceAnalyzer(config).analyze(budget, CostLedger("P-1", "USD"))
        report = OptimizationAdvisor(config).advise(variance, make_project(), budget)
        assert report.opportunities == ()
        assert report.overall_efficiency is None
        assert all(m.efficiency is None for m in report.metrics)
        assert report.to_dict()['total_potential_savings'] == "0.00"


def build_strategy(config, budget, ledger, as_of, project=None):
    project = project or make_project()
    analyzer = VarianceAnalyzer(config)
    variance = analyzer.analyze(budget, ledger, as_of)
    forecast = ForecastEngine(config).forecast(budget, ledger, project.timeline, as_of)
    alerts = AlertEvaluator(config).evaluate(
        variance, forecast, ledger, analyzer.snapshot_series(budget, ledger, as_of)
    )
    optimization = OptimizationAdvisor(config).advise(variance, project, budget)
    return ControlStrategyPlanner(config).plan(project, variance, forecast, alerts, optimization, as_of)


class TestControlStrategy:
    """Tests for the control strategy planner."""

    def test_over_budget_strategy(self, config, budget, overspent_ledger):
        strategy = build_strategy(config, budget, overspent_ledger, date(2024, 12, 10))

        assert strategy.status == ControlStatus.OVER_BUDGET
        measures = {(m.measure_type, m.category) for m in strategy.measures}
        assert (ControlMeasureType.SPEND_FREEZE, 'material') in measures
        assert (ControlMeasureType.APPROVAL_GATE, 'labor') in measures
        assert (ControlMeasureType.OPTIMIZATION, 'material') in measures
        priorities = [m.priority for m in strategy.measures]
        assert priorities == sorted(priorities, reverse=True)
        assert {r.category for r in strategy.risks} >= {'labor', 'material'}

    def test_category_targets(self, config, budget, overspent_ledger):
        strategy = build_strategy(config, budget, overspent_ledger, date(2024, 12, 10))
        targets = {t.category: t for t in strategy.targets}

        assert targets['labor'].warning_threshold == Decimal("90000.00")
        assert targets['labor'].remaining == Decimal("0.00")
        assert targets['equipment'].remaining == Decimal("10000.00")
        assert targets['equipment'].daily_burn_limit == Decimal("476.19")

    def test_weekly_checkpoints_through_end_date(self, config, budget, overspent_ledger):
        strategy = build_strategy(config, budget, overspent_ledger, date(2024, 12, 10))
        assert [c.checkpoint_date for c in strategy.checkpoints] == [
            date(2024, 12, 17), date(2024, 12, 24), date(2024, 12, 31),
        ]
        assert strategy.checkpoints[0].focus_categories[0] == 'material'

    def test_on_track_project(self, config, budget):
        ledger = CostLedger("P-1", "USD")
        record(ledger, 'labor', 10000, date(2024, 1, 15))
        strategy = build_strategy(config, budget, ledger, date(2024, 1, 31))

        assert strategy.status == ControlStatus.ON_TRACK
        assert strategy.risks == ()
        assert strategy.measures == ()

        checkpoints = strategy.checkpoints
        assert checkpoints[0].checkpoint_date == date(2024, 2, 7)
        assert checkpoints[-1].checkpoint_date == END
        assert len(checkpoints) == 48
        gaps = {(b.checkpoint_date - a.checkpoint_date) for a, b in zip(checkpoints, checkpoints[1:-1])}
        assert gaps == {timedelta(days=7)}
        assert checkpoints[-1].planned_cumulative_spend == Decimal("170000.00")
        assert checkpoints[0].focus_categories == ()

    def test_no_checkpoints_after_end(self, config, budget):
        ledger = CostLedger("P-1", "USD")
        record(ledger, 'labor', 10000, date(2024, 1, 15))
        strategy = build_strategy(config, budget, ledger, date(2025, 1, 15))
        assert strategy.checkpoints == ()
        assert all(t.daily_burn_limit == Decimal("0.00") for t in strategy.targets)

    def test_strategy_to_dict(self, config, budget, overspent_ledger):
        data = build_strategy(config, budget, overspent_ledger, date(2024, 12, 10)).to_dict()
        assert data['status'] == "over_budget"
        assert data['checkpoints'][-1]['date'] == "2024-12-31"

    def test_unfunded_category_without_spend_is_on_track(self, config):
        budget = ProjectBudget.create("P-1", [
            {'name': 'labor', 'allocated_amount': 100000},
            {'name': 'contingency', 'allocated_amount': 0},
        ]).activate()
        ledger = CostLedger("P-1", "USD")
        record(ledger, 'labor', 10, date(2024, 1, 15))

        strategy = build_strategy(config, budget, ledger, date(2024, 1, 31))
        targets = {t.category: t for t in strategy.targets}

        assert strategy.status == ControlStatus.ON_TRACK
        assert not targets['contingency'].is_above_warning
        assert all('contingency' not in c.focus_categories for c in strategy.checkpoints)

    def test_warning_threshold(self):
        def target(actual, threshold):
            return CategoryTarget(
                category='labor', target_amount=Decimal("100"), warning_threshold=Decimal(threshold),
                actual=Decimal(actual), remaining=Decimal("0"), daily_burn_limit=Decimal("0"),
            )

        assert target("90", "90").is_above_warning
        assert not target("89.99", "90").is_above_warning
        assert not target("0", "0").is_above_warning
        assert target("5", "0").is_above_warning
