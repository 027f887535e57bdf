"""
Tests for CostControlService.

Runs the application service against the in-memory repositories:
- budget creation and lifecycle
- recording and reversing costs, including concurrent writers
- lock rules, validation and not-found errors
- analysis reports, alert events and idempotence
"""
import json
import threading
from datetime import date
from decimal import Decimal

import pytest

from cost_engine.config import CostEngineConfig
from cost_engine.domain.entities import CostEntry, Project, ProjectStatus, ProjectTimeline
from cost_engine.domain.events import (
    BUDGET_CREATED,
    BUDGET_STATUS_CHANGED,
    COST_ALERT,
    COST_RECORDED,
    COST_REVERSED,
    InMemoryEventBus,
)
from cost_engine.domain.exceptions import (
    BudgetNotFoundError,
    CostEntryNotFoundError,
    ProjectNotFoundError,
    RepositoryError,
    ValidationError,
)
from cost_engine.domain.services import AlertSeverity, AlertType, ControlStatus, CostControlService
from cost_engine.infrastructure.repositories import (
    InMemoryBudgetRepository,
    InMemoryCostRepository,
    InMemoryProjectRepository,
)

TODAY = date(2024, 6, 30)
CATEGORIES = [
    {'name': 'labor', 'allocated_amount': 100000},
    {'name': 'material', 'allocated_amount': 50000},
]


def make_project(project_id="P-1", status=ProjectStatus.ACTIVE, percent_complete=50.0):
    timeline = ProjectTimeline(date(2024, 1, 1), date(2024, 12, 31), percent_complete)
    return Project(project_id, f"Project {project_id}", status, timeline, "commercial")


def entry(category, amount, on=date(2024, 6, 1), project_id="P-1", currency="USD"):
    return CostEntry(
        project_id=project_id,
        category=category,
        amount=Decimal(str(amount)),
        entry_date=on,
        recorded_by="site.manager",
        currency=currency,
    )


class BrokenCostRepository(InMemoryCostRepository):
    """Cost repository whose reads fail like a lost connection."""

    def find_by_project_id(self, project_id):
        raise RuntimeError("connection reset")


class StatusChangingCostRepository(InMemoryCostRepository):
    """Cost repository that runs a callback on its next ledger read."""

    def __init__(self):
        super().__init__()
        self.on_next_read = None

    def find_by_project_id(self, project_id):
        callback, self.on_next_read = self.on_next_read, None
        if callback is not None:
            callback()
        return super().find_by_project_id(project_id)


@pytest.fixture
def projects():
    return InMemoryProjectRepository([
        make_project("P-1"),
        make_project("P-DONE", status=ProjectStatus.COMPLETED),
    ])


@pytest.fixture
def bus():
    return InMemoryEventBus()


@pytest.fixture
def service(projects, bus):
    return CostControlService(
        projects,
        InMemoryBudgetRepository(),
        InMemoryCostRepository(),
        event_bus=bus,
        config=CostEngineConfig(),
        clock=lambda: TODAY,
    )


@pytest.fixture
def budgeted(service):
    service.create_project_budget("P-1", CATEGORIES)
    return service


class TestBudgetOperations:
    """Tests for budget creation and status changes."""

    def test_create_budget(self, service, bus):
        result = service.create_project_budget("P-1", CATEGORIES)

        assert result.ok
        assert result.value['total_budget'] == Decimal("150000.00")
        assert result.value['budget_id']
        events = bus.published(BUDGET_CREATED)
        assert len(events) == 1
        assert events[0].payload['total_budget'] == "150000.00"

    def test_second_budget_is_rejected(self, budgeted):
        result = budgeted.create_project_budget("P-1", CATEGORIES)
        assert not result.ok
        assert result.code == "DUPLICATE_BUDGET"

    def test_concurrent_creation_yields_one_budget(self, service):
        results = []

        def create():
            results.append(service.create_project_budget("P-1", CATEGORIES))

        threads = [threading.Thread(target=create) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r.ok) == 1
        assert all(r.code == "DUPLICATE_BUDGET" for r in results if not r.ok)

    def test_unknown_project(self, service):
        with pytest.raises(ProjectNotFoundError):
            service.create_project_budget("P-404", CATEGORIES)

    def test_invalid_categories_raise(self, service):
        with pytest.raises(ValidationError):
            service.create_project_budget("P-1", [])
        with pytest.raises(ValidationError):
            service.create_project_budget("P-1", [{'name': 'labor', 'allocated_amount': -1}])

    def test_status_lifecycle(self, budgeted, bus):
        assert budgeted.activate_budget("P-1").ok
        locked = budgeted.lock_budget("P-1")
        assert locked.ok
        assert locked.value.is_locked

        again = budgeted.activate_budget("P-1")
        assert not again.ok
        assert again.code == "INVALID_BUDGET_TRANSITION"
        changes = [(e.payload['from'], e.payload['to']) for e in bus.published(BUDGET_STATUS_CHANGED)]
        assert changes == [("draft", "active"), ("active", "locked")]

    def test_missing_budget(self, service):
        with pytest.raises(BudgetNotFoundError):
            service.activate_budget("P-1")


class TestRecordActualCost:
    """Tests for cost recording rules."""

    def test_record_returns_cost_id(self, budgeted, bus):
        result = budgeted.record_actual_cost("P-1", entry('labor', 1200))

        assert result.ok
        recorded = bus.published(COST_RECORDED)
        assert recorded[0].payload['amount'] == "1200.00"
        assert budgeted.analyze_cost_variance("P-1").get('labor').actual == Decimal("1200.00")

    def test_negative_amount(self, budgeted):
        with pytest.raises(ValidationError):
            budgeted.record_actual_cost("P-1", entry('labor', -5))

    def test_unknown_category(self, budgeted):
        with pytest.raises(ValidationError):
            budgeted.record_actual_cost("P-1", entry('catering', 100))

    def test_currency_mismatch(self, budgeted):
        with pytest.raises(ValidationError):
            budgeted.record_actual_cost("P-1", entry('labor', 100, currency="EUR"))

    def test_entry_for_other_project(self, budgeted):
        with pytest.raises(ValidationError):
            budgeted.record_actual_cost("P-1", entry('labor', 100, project_id="P-2"))

    def test_locked_budget_rejects_costs(self, budgeted):
        budgeted.activate_budget("P-1")
        budgeted.lock_budget("P-1")

        result = budgeted.record_actual_cost("P-1", entry('labor', 100))
        assert not result.ok
        assert result.code == "PROJECT_LOCKED"
        assert budgeted.cost_repo.find_by_project_id("P-1") == []

    def test_completed_project_rejects_costs(self, service):
        service.create_project_budget("P-DONE", CATEGORIES)
        result = service.record_actual_cost("P-DONE", entry('labor', 100, project_id="P-DONE"))
        assert not result.ok
        assert result.code == "PROJECT_LOCKED"
        assert "completed" in result.message

    def test_concurrent_records_keep_every_entry(self, budgeted):
        errors = []

        def worker():
            for _ in range(25):
                try:
                    budgeted.record_actual_cost("P-1", entry('material', 10))
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        stored = budgeted.cost_repo.find_by_project_id("P-1")
        assert [e.sequence for e in stored] == list(range(1, 201))
        assert budgeted.analyze_cost_variance("P-1").get('material').actual == Decimal("2000.00")

    def test_lock_during_ledger_read_rejects_cost(self, projects):
        costs = StatusChangingCostRepository()
        service = CostControlService(
            projects, InMemoryBudgetRepository(), costs, clock=lambda: TODAY
        )
        service.create_project_budget("P-1", CATEGORIES)
        service.activate_budget("P-1")
        costs.on_next_read = lambda: service.lock_budget("P-1")

        result = service.record_actual_cost("P-1", entry('labor', 100))

        assert not result.ok
        assert result.code == "PROJECT_LOCKED"
        assert costs.find_by_project_id("P-1") == []

    def test_project_locks_released_after_writes(self, budgeted):
        budgeted.activate_budget("P-1")
        budgeted.record_actual_cost("P-1", entry('labor', 100))
        budgeted.lock_budget("P-1")
        budgeted.record_actual_cost("P-1", entry('labor', 100))

        assert budgeted.locks.active_count() == 0


class TestReverseCost:
    """Tests for compensating entries."""

    def test_reversal_restores_totals(self, budgeted, bus):
        cost_id = budgeted.record_actual_cost("P-1", entry('labor', 500)).value['cost_id']

        result = budgeted.reverse_cost("P-1", cost_id, "controller", reason="duplicate invoice")

        assert result.ok
        assert result.value['reverses_cost_id'] == cost_id
        assert budgeted.analyze_cost_variance("P-1").get('labor').actual == Decimal("0.00")
        assert bus.published(COST_REVERSED)[0].payload['date'] == TODAY.isoformat()

    def test_double_reversal_fails(self, budgeted):
        cost_id = budgeted.record_actual_cost("P-1", entry('labor', 500)).value['cost_id']
        budgeted.reverse_cost("P-1", cost_id, "controller")

        result = budgeted.reverse_cost("P-1", cost_id, "controller")
        assert not result.ok
        assert result.code == "ENTRY_NOT_REVERSIBLE"

    def test_unknown_entry(self, budgeted):
        with pytest.raises(CostEntryNotFoundError):
            budgeted.reverse_cost("P-1", "missing", "controller")

    def test_reversal_dated_before_entry(self, budgeted):
        cost_id = budgeted.record_actual_cost("P-1", entry('labor', 500, on=date(2024, 6, 20))).value['cost_id']

        with pytest.raises(ValidationError):
            budgeted.reverse_cost("P-1", cost_id, "controller", on_date=date(2024, 6, 19))
        assert budgeted.analyze_cost_variance("P-1").get('labor').actual == Decimal("500.00")

    def test_lock_during_ledger_read_rejects_reversal(self, projects):
        costs = StatusChangingCostRepository()
        service = CostControlService(
            projects, InMemoryBudgetRepository(), costs, clock=lambda: TODAY
        )
        service.create_project_budget("P-1", CATEGORIES)
        service.activate_budget("P-1")
        cost_id = service.record_actual_cost("P-1", entry('labor', 500)).value['cost_id']
        costs.on_next_read = lambda: service.lock_budget("P-1")

        result = service.reverse_cost("P-1", cost_id, "controller")

        assert not result.ok
        assert result.code == "PROJECT_LOCKED"
        assert len(costs.find_by_project_id("P-1")) == 1


class TestAnalysis:
    """Tests for the analysis operations."""

    def test_labor_overrun_scenario(self, budgeted, bus):
        budgeted.record_actual_cost("P-1", entry('labor', 120000))

        labor = budgeted.analyze_cost_variance("P-1").get('labor')
        assert labor.variance == Decimal("20000.00")
        assert labor.variance_percentage == Decimal("20.00")

        alerts = budgeted.evaluate_cost_alerts("P-1")
        overrun = [a for a in alerts if a.alert_type == AlertType.OVERRUN]
        assert len(overrun) == 1
        assert overrun[0].category == 'labor'
        assert overrun[0].severity == AlertSeverity.HIGH
        assert len(bus.published(COST_ALERT)) == len(alerts)

    def test_forecast_without_progress(self, projects, bus):
        projects.save(make_project("P-NEW", percent_complete=0.0))
        service = CostControlService(
            projects, InMemoryBudgetRepository(), InMemoryCostRepository(),
            event_bus=bus, config=CostEngineConfig(), clock=lambda: TODAY,
        )
        service.create_project_budget("P-NEW", CATEGORIES)
        service.record_actual_cost("P-NEW", entry('labor', 1000, date(2024, 6, 1), "P-NEW"))
        service.record_actual_cost("P-NEW", entry('labor', 1000, date(2024, 6, 15), "P-NEW"))

        report = service.generate_cost_forecast("P-NEW")
        assert set(report.contributing) == {'historical', 'trend'}

    def test_reports_are_idempotent(self, budgeted):
        budgeted.record_actual_cost("P-1", entry('labor', 90000, date(2024, 5, 1)))
        budgeted.record_actual_cost("P-1", entry('material', 40000, date(2024, 6, 1)))

        first = budgeted.develop_cost_control_strategy("P-1")
        second = budgeted.develop_cost_control_strategy("P-1")
        assert json.dumps(first.to_dict(), sort_keys=True) == json.dumps(second.to_dict(), sort_keys=True)
        assert first.as_of == TODAY
        assert first.status == ControlStatus.AT_RISK

    def test_optimization_recommendations(self, budgeted):
        budgeted.record_actual_cost("P-1", entry('labor', 125000))
        report = budgeted.generate_optimization_recommendations("P-1")
        assert [o.category for o in report.opportunities] == ['labor']
        assert report.opportunities[0].estimated_savings == Decimal("7500.00")

    def test_as_of_excludes_later_entries(self, budgeted):
        budgeted.record_actual_cost("P-1", entry('labor', 1000, date(2024, 3, 1)))
        budgeted.record_actual_cost("P-1", entry('labor', 2000, date(2024, 6, 1)))

        report = budgeted.analyze_cost_variance("P-1", as_of=date(2024, 4, 1))
        assert report.total_actual == Decimal("1000.00")

    def test_repository_failure_is_wrapped(self, projects):
        service = CostControlService(
            projects, InMemoryBudgetRepository(), BrokenCostRepository(),
            config=CostEngineConfig(), clock=lambda: TODAY,
        )
        service.create_project_budget("P-1", CATEGORIES)

        with pytest.raises(RepositoryError) as exc_info:
            service.analyze_cost_variance("P-1")
        assert exc_info.value.code == "SYSTEM_ERROR"

    def test_missing_project(self, service):
        with pytest.raises(ProjectNotFoundError):
            service.generate_cost_forecast("P-404")
