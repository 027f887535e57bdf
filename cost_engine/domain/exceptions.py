"""
Domain Exceptions for the Cost Control Engine.

Custom exceptions enforcing business rules:
- Input validation (amounts, categories, currency)
- Missing projects, budgets and cost entries
- Business rules (one budget per project, locked projects)
- Failures of external repositories
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


# =============================================================================
# Validation Exceptions
# =============================================================================

class ValidationError(DomainError):
    """Raised when input data fails validation. Raised before any mutation."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Validation failed for '{field}': {message}", code="VALIDATION_ERROR")
        self.field = field


# =============================================================================
# Not Found Exceptions
# =============================================================================

class NotFoundError(DomainError):
    """Raised when a referenced record cannot be found."""

    def __init__(self, entity_type: str, entity_id: str, code: str = "NOT_FOUND"):
        message = f"{entity_type} with id '{entity_id}' not found"
        super().__init__(message, code=code)
        self.entity_type = entity_type
        self.entity_id = entity_id


class ProjectNotFoundError(NotFoundError):
    """Raised when a project cannot be found."""

    def __init__(self, project_id: str):
        super().__init__("Project", project_id, code="PROJECT_NOT_FOUND")
        self.project_id = project_id


class BudgetNotFoundError(NotFoundError):
    """Raised when a project has no budget."""

    def __init__(self, project_id: str):
        super().__init__("Budget for project", project_id, code="BUDGET_NOT_FOUND")
        self.project_id = project_id


class CostEntryNotFoundError(NotFoundError):
    """Raised when a cost entry cannot be found in a ledger."""

    def __init__(self, cost_id: str):
        super().__init__("Cost entry", cost_id, code="COST_ENTRY_NOT_FOUND")
        self.cost_id = cost_id


# =============================================================================
# Business Rule Exceptions
# =============================================================================

class BusinessRuleViolation(DomainError):
    """Base for expected business-rule outcomes (returned as Failure reasons)."""

    def __init__(self, message: str, code: str = "BUSINESS_RULE_VIOLATION"):
        super().__init__(message, code=code)


class DuplicateBudgetError(BusinessRuleViolation):
    """Raised when a second budget is created for the same project."""

    def __init__(self, project_id: str):
        message = f"A budget already exists for project '{project_id}'"
        super().__init__(message, code="DUPLICATE_BUDGET")
        self.project_id = project_id


class ProjectLockedError(BusinessRuleViolation):
    """Raised when recording costs against a locked project."""

    def __init__(self, project_id: str, reason: str):
        message = f"Project '{project_id}' is locked ({reason}); costs cannot be recorded"
        super().__init__(message, code="PROJECT_LOCKED")
        self.project_id = project_id
        self.reason = reason


class InvalidBudgetTransitionError(BusinessRuleViolation):
    """Raised when a budget lifecycle transition is not allowed."""

    def __init__(self, current_status: str, target_status: str):
        message = f"Budget cannot move from {current_status} to {target_status}"
        super().__init__(message, code="INVALID_BUDGET_TRANSITION")
        self.current_status = current_status
        self.target_status = target_status


class EntryAlreadyReversedError(BusinessRuleViolation):
    """Raised when reversing an entry twice or reversing a reversal."""

    def __init__(self, cost_id: str):
        message = f"Cost entry '{cost_id}' cannot be reversed"
        super().__init__(message, code="ENTRY_NOT_REVERSIBLE")
        self.cost_id = cost_id


# =============================================================================
# System Exceptions
# =============================================================================

class RepositoryError(DomainError):
    """
    Wraps a failure from an external repository.

    The engine does not retry these; retry policy belongs to the caller.
    """

    def __init__(self, operation: str, message: str, code: str = "SYSTEM_ERROR"):
        super().__init__(f"Repository operation '{operation}' failed: {message}", code=code)
        self.operation = operation


class ConcurrencyError(RepositoryError):
    """Raised when an optimistic ledger version check fails."""

    def __init__(self, project_id: str, expected_version: int):
        super().__init__(
            "append_cost",
            f"Concurrent append detected for project '{project_id}' "
            f"(expected ledger version {expected_version})",
            code="CONCURRENCY_ERROR",
        )
        self.project_id = project_id
        self.expected_version = expected_version
