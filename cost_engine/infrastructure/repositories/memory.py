"""
In-memory repositories implementing the engine's ports.

Used by tests and embedded callers. Each repository guards its state with
a lock so check-and-insert and version checks are atomic.
"""
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from cost_engine.domain.entities import CostEntry, Project, ProjectBudget
from cost_engine.domain.exceptions import ConcurrencyError, DuplicateBudgetError, ValidationError


class InMemoryProjectRepository:
    """Project views held in a dict."""

    def __init__(self, projects: Iterable[Project] = ()):
        self._projects: Dict[str, Project] = {p.project_id: p for p in projects}
        self._lock = threading.Lock()

    def find_by_id(self, project_id: str) -> Optional[Project]:
        with self._lock:
            return self._projects.get(project_id)

    def list_project_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._projects)

    def save(self, project: Project) -> Project:
        with self._lock:
            self._projects[project.project_id] = project
        return project


class InMemoryBudgetRepository:
    """Budgets keyed by project id; insert is check-and-set under the lock."""

    def __init__(self):
        self._budgets: Dict[str, ProjectBudget] = {}
        self._lock = threading.Lock()

    def find_by_project_id(self, project_id: str) -> Optional[ProjectBudget]:
        with self._lock:
            return self._budgets.get(project_id)

    def save(self, budget: ProjectBudget) -> ProjectBudget:
        with self._lock:
            current = self._budgets.get(budget.project_id)
            if current is not None and current.budget_id != budget.budget_id:
                raise DuplicateBudgetError(budget.project_id)
            self._budgets[budget.project_id] = budget
        return budget


class InMemoryCostRepository:
    """Per-project entry streams with an optimistic version check."""

    def __init__(self):
        self._entries: Dict[str, List[CostEntry]] = defaultdict(list)
        self._lock = threading.Lock()

    def find_by_project_id(self, project_id: str) -> List[CostEntry]:
        with self._lock:
            return list(self._entries.get(project_id, []))

    def save(self, entry: CostEntry, expected_version: int) -> CostEntry:
        if not entry.entry_id:
            raise ValidationError("entry_id", "entries must be appended to a ledger before saving")
        with self._lock:
            stream = self._entries[entry.project_id]
            if len(stream) != expected_version:
                raise ConcurrencyError(entry.project_id, expected_version)
            stream.append(entry)
        return entry
