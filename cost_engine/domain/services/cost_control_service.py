"""
Cost Control Service - Application-facing operations of the engine.

Orchestrates repositories, the cost ledger and the analysis services:
- budget creation and lifecycle (conditional write, one budget per project)
- recording and reversing actual costs (serialized per project)
- variance, forecast, alerts, optimization and control strategy reports

Repositories and the event bus are injected; nothing is read from globals
except the default configuration.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from cost_engine.config import CostEngineConfig, get_config
from cost_engine.domain.entities import CostEntry, CostLedger, Project, ProjectBudget
from cost_engine.domain.entities.budget import CategoryInput
from cost_engine.domain.events import (
    BUDGET_CREATED,
    BUDGET_STATUS_CHANGED,
    COST_ALERT,
    COST_RECORDED,
    COST_REVERSED,
    DomainEvent,
    EventBus,
    NullEventBus,
)
from cost_engine.domain.exceptions import (
    BudgetNotFoundError,
    BusinessRuleViolation,
    DomainError,
    DuplicateBudgetError,
    ProjectLockedError,
    ProjectNotFoundError,
    RepositoryError,
    ValidationError,
)
from cost_engine.domain.repositories import BudgetRepository, CostRepository, ProjectRepository
from cost_engine.domain.result import Failure, OperationResult, Success
from .alert_evaluator import Alert, AlertEvaluator
from .control_strategy_planner import ControlStrategy, ControlStrategyPlanner
from .forecast_engine import ForecastEngine, ForecastReport
from .optimization_advisor import OptimizationAdvisor, OptimizationReport
from .variance_analyzer import VarianceAnalyzer, VarianceReport

logger = logging.getLogger(__name__)


class _LockSlot:
    """A project's lock and the number of callers holding or waiting on it."""

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class LedgerLockRegistry:
    """
    One lock per project id.

    Ledger appends and budget status changes for the same project are
    mutually exclusive; different projects never share a lock. Locks are
    re-entrant so repository callbacks on the holding thread cannot
    deadlock. A project's lock is dropped once nobody holds or waits on it.
    """

    def __init__(self):
        self._slots: Dict[str, _LockSlot] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, project_id: str) -> Iterator[None]:
        with self._guard:
            slot = self._slots.get(project_id)
            if slot is None:
                slot = _LockSlot()
                self._slots[project_id] = slot
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._slots[project_id]

    def active_count(self) -> int:
        """Number of projects whose lock is currently held or awaited."""
        with self._guard:
            return len(self._slots)


class CostControlService:
    """
    Application service for cost control.

    Mutating operations return Success/Failure for expected business-rule
    outcomes and raise ValidationError / NotFoundError / RepositoryError.
    Analysis operations are read-only and idempotent for a given as_of.

    Usage:
        service = CostControlService(projects, budgets, costs)
        result = service.create_project_budget('P-1', [{'name': 'labor', 'allocated_amount': 1000}])
        if result.ok:
            budget_id = result.value['budget_id']
    """

    def __init__(
        self,
        project_repository: ProjectRepository,
        budget_repository: BudgetRepository,
        cost_repository: CostRepository,
        event_bus: Optional[EventBus] = None,
        config: Optional[CostEngineConfig] = None,
        clock: Callable[[], date] = date.today,
        lock_registry: Optional[LedgerLockRegistry] = None,
    ):
        self.project_repo = project_repository
        self.budget_repo = budget_repository
        self.cost_repo = cost_repository
        self.event_bus = event_bus or NullEventBus()
        self.config = config or get_config()
        self.clock = clock
        self.locks = lock_registry or LedgerLockRegistry()

        self.variance_analyzer = VarianceAnalyzer(self.config)
        self.forecast_engine = ForecastEngine(self.config)
        self.alert_evaluator = AlertEvaluator(self.config)
        self.optimization_advisor = OptimizationAdvisor(self.config)
        self.strategy_planner = ControlStrategyPlanner(self.config)

    # =========================================================================
    # Budgets
    # =========================================================================

    def create_project_budget(
        self,
        project_id: str,
        categories: Iterable[CategoryInput],
        currency: Optional[str] = None,
    ) -> OperationResult[Dict[str, Any]]:
        """
        Create the budget of a project.

        Args:
            project_id: Existing project
            categories: BudgetCategory objects or {'name', 'allocated_amount'} dicts
            currency: Budget currency (configured default when None)

        Returns:
            Success({'budget_id', 'total_budget'}) or Failure(DuplicateBudgetError)

        Raises:
            ValidationError: Invalid categories
            ProjectNotFoundError: Unknown project
        """
        self._load_project(project_id)
        budget = ProjectBudget.create(project_id, categories, currency or self.config.default_currency)

        if self._repository_call("find budget", self.budget_repo.find_by_project_id, project_id):
            return self._reject(DuplicateBudgetError(project_id))
        try:
            saved = self._repository_call("save budget", self.budget_repo.save, budget)
        except DuplicateBudgetError as e:
            return self._reject(e)

        total = saved.total_budget.amount
        logger.info(f"Created budget {saved.budget_id} for project {project_id}: {total} {saved.currency}")
        self._publish(BUDGET_CREATED, project_id, {
            'budget_id': saved.budget_id,
            'total_budget': str(total),
            'currency': saved.currency,
        })
        return Success({'budget_id': saved.budget_id, 'total_budget': total})

    def activate_budget(self, project_id: str) -> OperationResult[ProjectBudget]:
        """DRAFT -> ACTIVE."""
        return self._change_budget_status(project_id, lambda b: b.activate())

    def lock_budget(self, project_id: str) -> OperationResult[ProjectBudget]:
        """ACTIVE -> LOCKED. A locked budget accepts no further costs."""
        return self._change_budget_status(project_id, lambda b: b.lock())

    def _change_budget_status(
        self,
        project_id: str,
        transition: Callable[[ProjectBudget], ProjectBudget],
    ) -> OperationResult[ProjectBudget]:
        with self.locks.hold(project_id):
            budget = self._load_budget(project_id)
            try:
                updated = transition(budget)
            except BusinessRuleViolation as e:
                return self._reject(e)
            saved = self._repository_call("save budget", self.budget_repo.save, updated)

        logger.info(f"Budget {saved.budget_id} of project {project_id}: {budget.status.value} -> {saved.status.value}")
        self._publish(BUDGET_STATUS_CHANGED, project_id, {
            'budget_id': saved.budget_id,
            'from': budget.status.value,
            'to': saved.status.value,
        })
        return Success(saved)

    # =========================================================================
    # Cost Recording
    # =========================================================================

    def record_actual_cost(self, project_id: str, entry: CostEntry) -> OperationResult[Dict[str, str]]:
        """
        Append an actual cost to the project's ledger.

        Returns:
            Success({'cost_id'}) or Failure(ProjectLockedError)

        Raises:
            ValidationError: Negative amount, unknown category, currency or
                project mismatch
            ProjectNotFoundError / BudgetNotFoundError: Missing references
            ConcurrencyError: Another writer appended first
        """
        project = self._load_project(project_id)
        budget = self._load_budget(project_id)

        if entry.project_id != project_id:
            raise ValidationError("project_id", f"entry belongs to project '{entry.project_id}'")
        if entry.is_reversal:
            raise ValidationError("kind", "reversals are recorded through reverse_cost")
        if budget.get_category(entry.category) is None:
            raise ValidationError("category", f"'{entry.category}' is not a budget category")
        if entry.currency != budget.currency:
            raise ValidationError(
                "currency",
                f"entry currency {entry.currency} does not match budget currency {budget.currency}"
            )

        with self.locks.hold(project_id):
            ledger = self._load_ledger(project_id, budget.currency)
            # Budget status is re-read under the lock, after the ledger load
            locked = self._lock_reason(project, self._load_budget(project_id))
            if locked:
                return self._reject(ProjectLockedError(project_id, locked))
            stored = ledger.append_entry(entry)
            self._repository_call("save cost entry", self.cost_repo.save, stored, stored.sequence - 1)

        logger.info(
            f"Recorded cost {stored.entry_id} for project {project_id}: "
            f"{stored.amount} {stored.currency} in {stored.category}"
        )
        self._publish(COST_RECORDED, project_id, stored.to_dict())
        return Success({'cost_id': stored.entry_id})

    def reverse_cost(
        self,
        project_id: str,
        cost_id: str,
        recorded_by: str,
        on_date: Optional[date] = None,
        reason: str = "",
    ) -> OperationResult[Dict[str, str]]:
        """
        Compensate an earlier entry with a reversal entry.

        Returns:
            Success({'cost_id', 'reverses_cost_id'}), or Failure with
            ProjectLockedError / EntryAlreadyReversedError

        Raises:
            CostEntryNotFoundError: cost_id is not in the ledger
            ValidationError: on_date precedes the original entry date
        """
        project = self._load_project(project_id)
        budget = self._load_budget(project_id)

        with self.locks.hold(project_id):
            ledger = self._load_ledger(project_id, budget.currency)
            locked = self._lock_reason(project, self._load_budget(project_id))
            if locked:
                return self._reject(ProjectLockedError(project_id, locked))
            try:
                reversal = ledger.reverse(cost_id, recorded_by, on_date or self.clock(), reason)
            except BusinessRuleViolation as e:
                return self._reject(e)
            self._repository_call("save cost entry", self.cost_repo.save, reversal, reversal.sequence - 1)

        logger.info(f"Reversed cost {cost_id} of project {project_id} with {reversal.entry_id}")
        self._publish(COST_REVERSED, project_id, reversal.to_dict())
        return Success({'cost_id': reversal.entry_id, 'reverses_cost_id': cost_id})

    # =========================================================================
    # Analysis
    # =========================================================================

    def analyze_cost_variance(self, project_id: str, as_of: Optional[date] = None) -> VarianceReport:
        """Budget vs actual variance as of as_of (today by default)."""
        self._load_project(project_id)
        budget = self._load_budget(project_id)
        ledger = self._load_ledger(project_id, budget.currency)
        return self.variance_analyzer.analyze(budget, ledger, as_of or self.clock())

    def generate_cost_forecast(self, project_id: str, as_of: Optional[date] = None) -> ForecastReport:
        """Combined final-cost forecast."""
        project = self._load_project(project_id)
        budget = self._load_budget(project_id)
        ledger = self._load_ledger(project_id, budget.currency)
        return self.forecast_engine.forecast(budget, ledger, project.timeline, as_of or self.clock())

    def evaluate_cost_alerts(self, project_id: str, as_of: Optional[date] = None) -> List[Alert]:
        """
        Evaluate alert rules and publish one CostAlert event per alert.

        Delivery to people (email, push, ...) is left to subscribers.

        Returns:
            Alerts sorted by priority descending
        """
        _, _, _, _, _, alerts = self._assess(project_id, as_of or self.clock())
        for alert in alerts:
            self._publish(COST_ALERT, project_id, alert.to_dict())
        if alerts:
            logger.info(f"Project {project_id}: {len(alerts)} cost alerts, top priority {alerts[0].priority}")
        return alerts

    def generate_optimization_recommendations(
        self,
        project_id: str,
        as_of: Optional[date] = None,
    ) -> OptimizationReport:
        """Efficiency metrics and ranked savings opportunities."""
        project = self._load_project(project_id)
        budget = self._load_budget(project_id)
        ledger = self._load_ledger(project_id, budget.currency)
        variance = self.variance_analyzer.analyze(budget, ledger, as_of or self.clock())
        return self.optimization_advisor.advise(variance, project, budget)

    def develop_cost_control_strategy(self, project_id: str, as_of: Optional[date] = None) -> ControlStrategy:
        """Control measures, category targets and monitoring checkpoints."""
        as_of = as_of or self.clock()
        project, budget, _, variance, forecast, alerts = self._assess(project_id, as_of)
        optimization = self.optimization_advisor.advise(variance, project, budget)
        return self.strategy_planner.plan(project, variance, forecast, alerts, optimization, as_of)

    def _assess(
        self,
        project_id: str,
        as_of: date,
    ) -> Tuple[Project, ProjectBudget, CostLedger, VarianceReport, ForecastReport, List[Alert]]:
        project = self._load_project(project_id)
        budget = self._load_budget(project_id)
        ledger = self._load_ledger(project_id, budget.currency)

        variance = self.variance_analyzer.analyze(budget, ledger, as_of)
        forecast = self.forecast_engine.forecast(budget, ledger, project.timeline, as_of)
        history = self.variance_analyzer.snapshot_series(budget, ledger, as_of)
        alerts = self.alert_evaluator.evaluate(variance, forecast, ledger, history)
        return project, budget, ledger, variance, forecast, alerts

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_project(self, project_id: str) -> Project:
        project = self._repository_call("find project", self.project_repo.find_by_id, project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def _load_budget(self, project_id: str) -> ProjectBudget:
        budget = self._repository_call("find budget", self.budget_repo.find_by_project_id, project_id)
        if budget is None:
            raise BudgetNotFoundError(project_id)
        return budget

    def _load_ledger(self, project_id: str, currency: str) -> CostLedger:
        entries = self._repository_call("load cost entries", self.cost_repo.find_by_project_id, project_id)
        return CostLedger.from_entries(project_id, entries, currency)

    @staticmethod
    def _lock_reason(project: Project, budget: ProjectBudget) -> Optional[str]:
        if budget.is_locked:
            return "budget is locked"
        if project.is_closed:
            return f"project is {project.status.value}"
        return None

    @staticmethod
    def _repository_call(operation: str, func: Callable, *args):
        """Run a repository call, wrapping non-domain failures in RepositoryError."""
        try:
            return func(*args)
        except DomainError:
            raise
        except Exception as e:
            logger.error(f"Repository failure during {operation}: {e}")
            raise RepositoryError(operation, str(e)) from e

    @staticmethod
    def _reject(violation: BusinessRuleViolation) -> Failure:
        logger.warning(f"Rejected: {violation.message}")
        return Failure(violation)

    def _publish(self, event_type: str, project_id: str, payload: Dict[str, Any]) -> None:
        try:
            self.event_bus.publish(DomainEvent(event_type, project_id, payload))
        except Exception:
            logger.exception(f"Failed to publish {event_type} for project {project_id}")
